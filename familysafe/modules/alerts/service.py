import logging
from typing import Iterable, List, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError, NotFoundError, require, service_error
from familysafe.core.geo import UNKNOWN_ADDRESS
from familysafe.modules.alerts.schemas import AlertCreate, AlertResponse
from familysafe.modules.members.schemas import Destination, MemberRow
from familysafe.modules.members.service import MemberService

logger = logging.getLogger(__name__)


def sos_message(name: str) -> str:
    return f"{name} sent an SOS!"


def lost_message(name: str, address: Optional[str]) -> str:
    return f"{name} is lost (location: {address or UNKNOWN_ADDRESS})"


def arrival_message(name: str, destination: str) -> str:
    return f"{name} arrived at {destination}"


class AlertService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.members = MemberService(supabase)

    async def list_for_members(self, member_ids: Iterable[str], limit: Optional[int] = None) -> List[AlertResponse]:
        """Newest alerts of the given members"""
        ids = list(dict.fromkeys(member_ids))
        if not ids:
            return []
        try:
            result = await self.supabase.table("alerts")\
                .select("*")\
                .in_("member_id", ids)\
                .order("created_at", desc=True)\
                .limit(limit or settings.alerts_limit)\
                .execute()
            return [AlertResponse(**row) for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load alerts") from e

    async def get_alert(self, alert_id: str) -> AlertResponse:
        try:
            result = await self.supabase.table("alerts")\
                .select("*")\
                .eq("id", alert_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Alert not found", alert_id=alert_id)
            return AlertResponse(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load alert", alert_id=alert_id) from e

    async def create_alert(self, data: AlertCreate) -> AlertResponse:
        require(bool(data.message.strip()), "Alert message is required")
        try:
            result = await self.supabase.table("alerts").insert({
                "member_id": data.member_id,
                "type": data.type,
                "message": data.message.strip(),
                "read": False,
            }).execute()
            if not result.data:
                raise NotFoundError("Alert was not created", member_id=data.member_id)
            logger.info(f"Alert {data.type} raised for member {data.member_id}")
            return AlertResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to send alert", member_id=data.member_id) from e

    async def send_sos(self, member: MemberRow, name: Optional[str] = None) -> AlertResponse:
        """Mark the member in danger and raise an sos alert"""
        await self.members.set_status(member.id, "danger")
        return await self.create_alert(AlertCreate(
            member_id=member.id,
            type="sos",
            message=sos_message(name or member.name or ""),
        ))

    async def send_lost(self, member: MemberRow, name: Optional[str] = None) -> AlertResponse:
        """Mark the member as warning and raise a lost alert carrying the last known address"""
        await self.members.set_status(member.id, "warning")
        return await self.create_alert(AlertCreate(
            member_id=member.id,
            type="lost",
            message=lost_message(name or member.name or "", member.address),
        ))

    async def send_arrival(self, member_id: str, name: str, destination: Destination) -> AlertResponse:
        return await self.create_alert(AlertCreate(
            member_id=member_id,
            type="arrival",
            message=arrival_message(name, destination.name),
        ))

    async def mark_read(self, alert_id: str) -> AlertResponse:
        try:
            result = await self.supabase.table("alerts")\
                .update({"read": True})\
                .eq("id", alert_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Alert not found", alert_id=alert_id)
            return AlertResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to mark alert as read", alert_id=alert_id) from e

    async def delete_alert(self, alert_id: str) -> bool:
        try:
            result = await self.supabase.table("alerts")\
                .delete()\
                .eq("id", alert_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to delete alert", alert_id=alert_id) from e
