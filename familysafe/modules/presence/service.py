from datetime import datetime
from typing import Dict, Iterable, List, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError, service_error
from familysafe.core.timeutil import as_utc, utcnow
from familysafe.modules.presence.schemas import PresenceRow, PresenceResponse

ONLINE = "online"
OFFLINE = "offline"


def effective_status(
    last_seen: Optional[datetime],
    now: Optional[datetime] = None,
    stale_after_sec: Optional[float] = None,
) -> str:
    """online iff last_seen is younger than the staleness window; the stored status is ignored."""
    if last_seen is None:
        return OFFLINE
    window = settings.presence_stale_after_sec if stale_after_sec is None else stale_after_sec
    age = ((now or utcnow()) - as_utc(last_seen)).total_seconds()
    return ONLINE if age < window else OFFLINE


class PresenceService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def set_status(self, user_id: str, status: str, now: Optional[datetime] = None) -> PresenceRow:
        """Upsert the caller's presence row (single writer per user id)."""
        row = {
            "user_id": user_id,
            "status": status,
            "last_seen": (now or utcnow()).isoformat(),
        }
        try:
            result = await self.supabase.table("user_presence")\
                .upsert(row, on_conflict="user_id")\
                .execute()
            return PresenceRow(**(result.data[0] if result.data else row))
        except Exception as e:
            raise service_error(e, "Failed to update presence", user_id=user_id) from e

    async def get_rows(self, user_ids: Iterable[str]) -> List[PresenceRow]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        try:
            result = await self.supabase.table("user_presence")\
                .select("user_id, status, last_seen")\
                .in_("user_id", ids)\
                .execute()
            return [PresenceRow(**row) for row in result.data or []]
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load presence") from e

    async def get_statuses(self, user_ids: Iterable[str], now: Optional[datetime] = None) -> Dict[str, PresenceResponse]:
        """Effective status for each id; ids without a row are left out."""
        now = now or utcnow()
        return {
            row.user_id: PresenceResponse(
                user_id=row.user_id,
                status=effective_status(row.last_seen, now),
                last_seen=row.last_seen,
            )
            for row in await self.get_rows(user_ids)
        }
