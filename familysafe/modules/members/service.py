from datetime import datetime
from typing import Iterable, List, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError, NotFoundError, require, service_error
from familysafe.core.geo import DEFAULT_LATITUDE, DEFAULT_LONGITUDE, UNKNOWN_ADDRESS, address_label
from familysafe.core.timeutil import utcnow
from familysafe.modules.members.schemas import (
    Destination, DestinationSet, Location, LocationHistoryEntry, MemberRow, MemberView,
)
from familysafe.modules.profiles.schemas import ProfileResponse

MEMBER_STATUSES = ("safe", "warning", "danger")


def to_member_view(row: MemberRow, profile: Optional[ProfileResponse] = None) -> MemberView:
    """Denormalize a member row (plus the child's profile) into the dashboard view model"""
    return MemberView(
        id=row.id,
        user_id=row.user_id,
        name=(profile.name if profile else None) or row.name or "",
        avatar_url=profile.avatar_url if profile else None,
        phone=profile.phone if profile else None,
        status=row.status or "safe",
        location=Location(
            lat=row.latitude if row.latitude is not None else DEFAULT_LATITUDE,
            lng=row.longitude if row.longitude is not None else DEFAULT_LONGITUDE,
            address=row.address or UNKNOWN_ADDRESS,
        ),
        battery=row.battery if row.battery is not None else 100,
        last_update=row.last_update or utcnow(),
        gps_active=bool(row.gps_enabled),
    )


class MemberService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def get_member(self, member_id: str) -> MemberRow:
        try:
            result = await self.supabase.table("members")\
                .select("*")\
                .eq("id", member_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Member not found", member_id=member_id)
            return MemberRow(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load member", member_id=member_id) from e

    async def find_for_user(self, user_id: str) -> Optional[MemberRow]:
        try:
            result = await self.supabase.table("members")\
                .select("*")\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
            return MemberRow(**result.data[0]) if result.data else None
        except Exception as e:
            raise service_error(e, "Failed to load member", user_id=user_id) from e

    async def list_for_users(self, user_ids: Iterable[str]) -> List[MemberRow]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        try:
            result = await self.supabase.table("members")\
                .select("*")\
                .in_("user_id", ids)\
                .execute()
            return [MemberRow(**row) for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load members") from e

    async def create_for_child(self, user_id: str, name: str, battery: int = 100) -> MemberRow:
        """Member row for a child, created on registration or lazily on first login"""
        try:
            result = await self.supabase.table("members").insert({
                "user_id": user_id,
                "name": name,
                "status": "safe",
                "battery": battery,
                "gps_enabled": False,
                "latitude": DEFAULT_LATITUDE,
                "longitude": DEFAULT_LONGITUDE,
                "address": UNKNOWN_ADDRESS,
                "last_update": utcnow().isoformat(),
            }).execute()
            if not result.data:
                raise NotFoundError("Member record was not created", user_id=user_id)
            return MemberRow(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to create member record", user_id=user_id) from e

    async def _update(self, member_id: str, update_data: dict, detail: str) -> MemberRow:
        try:
            result = await self.supabase.table("members")\
                .update(update_data)\
                .eq("id", member_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Member not found", member_id=member_id)
            return MemberRow(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, detail, member_id=member_id) from e

    async def set_status(self, member_id: str, status: str) -> MemberRow:
        require(status in MEMBER_STATUSES, "Unknown member status", status=status)
        return await self._update(member_id, {"status": status}, "Failed to update status")

    async def set_gps_enabled(self, member_id: str, enabled: bool) -> MemberRow:
        """Remote control: the child's client starts or stops its watch to match this flag"""
        return await self._update(member_id, {"gps_enabled": enabled}, "Failed to change GPS tracking")

    async def update_battery(self, member_id: str, battery: int) -> MemberRow:
        require(0 <= battery <= 100, "Battery must be between 0 and 100", battery=battery)
        return await self._update(member_id, {"battery": battery}, "Failed to update battery")

    async def record_location(
        self,
        member_id: str,
        latitude: float,
        longitude: float,
        battery: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> MemberRow:
        """Append one history row, then move the member row to the new fix"""
        address = address_label(latitude, longitude)
        try:
            await self.supabase.table("location_history").insert({
                "member_id": member_id,
                "latitude": latitude,
                "longitude": longitude,
                "address": address,
            }).execute()
        except Exception as e:
            raise service_error(e, "Failed to save location history", member_id=member_id) from e

        update_data = {
            "latitude": latitude,
            "longitude": longitude,
            "address": address,
            "last_update": (now or utcnow()).isoformat(),
        }
        if battery is not None:
            update_data["battery"] = battery
        return await self._update(member_id, update_data, "Failed to update location")

    async def list_history(self, member_id: str, limit: Optional[int] = None) -> List[LocationHistoryEntry]:
        try:
            result = await self.supabase.table("location_history")\
                .select("*")\
                .eq("member_id", member_id)\
                .order("created_at", desc=True)\
                .limit(limit or settings.history_limit)\
                .execute()
            return [
                LocationHistoryEntry(
                    address=row.get("address"),
                    lat=row["latitude"],
                    lng=row["longitude"],
                    timestamp=row["created_at"],
                )
                for row in result.data or []
            ]
        except Exception as e:
            raise service_error(e, "Failed to load location history", member_id=member_id) from e

    async def get_active_destination(self, member_id: str) -> Optional[Destination]:
        try:
            result = await self.supabase.table("destinations")\
                .select("*")\
                .eq("member_id", member_id)\
                .eq("is_active", True)\
                .execute()
            if not result.data:
                return None
            row = result.data[0]
            return Destination(
                id=row.get("id"),
                name=row["name"],
                lat=row["latitude"],
                lng=row["longitude"],
                category=row.get("category"),
            )
        except Exception as e:
            raise service_error(e, "Failed to load destination", member_id=member_id) from e

    async def set_destination(self, member_id: str, data: DestinationSet) -> Destination:
        """Replace the active destination; the previous one is kept but deactivated"""
        require(bool(data.name.strip()), "Destination name is required")
        await self.clear_destination(member_id)
        try:
            result = await self.supabase.table("destinations").insert({
                "member_id": member_id,
                "name": data.name.strip(),
                "latitude": data.latitude,
                "longitude": data.longitude,
                "category": data.category,
                "is_active": True,
            }).execute()
            row = result.data[0]
            return Destination(
                id=row.get("id"),
                name=row["name"],
                lat=row["latitude"],
                lng=row["longitude"],
                category=row.get("category"),
            )
        except Exception as e:
            raise service_error(e, "Failed to set destination", member_id=member_id) from e

    async def clear_destination(self, member_id: str) -> None:
        try:
            await self.supabase.table("destinations")\
                .update({"is_active": False})\
                .eq("member_id", member_id)\
                .eq("is_active", True)\
                .execute()
        except Exception as e:
            raise service_error(e, "Failed to clear destination", member_id=member_id) from e
