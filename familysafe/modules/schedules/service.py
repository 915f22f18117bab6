import re
from typing import List, Optional

from supabase import AsyncClient
from familysafe.core.errors import FamilySafeError, NotFoundError, require, service_error
from familysafe.core.timeutil import today_iso
from familysafe.modules.schedules.schemas import ScheduleCreate, ScheduleResponse

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


class ScheduleService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def list_today(self, member_id: str, day: Optional[str] = None) -> List[ScheduleResponse]:
        try:
            result = await self.supabase.table("schedules")\
                .select("*")\
                .eq("member_id", member_id)\
                .eq("date", day or today_iso())\
                .order("time", desc=False)\
                .execute()
            return [ScheduleResponse(**row) for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load schedule", member_id=member_id) from e

    async def add(self, member_id: str, data: ScheduleCreate) -> ScheduleResponse:
        require(bool(data.title.strip()) and bool(data.time.strip()), "Title and time are required")
        require(bool(_TIME_RE.match(data.time.strip())), "Time must be HH:MM", time=data.time)
        try:
            result = await self.supabase.table("schedules").insert({
                "member_id": member_id,
                "title": data.title.strip(),
                "time": data.time.strip(),
                "type": data.type,
                "location": data.location,
                "date": today_iso(),
                "completed": False,
            }).execute()
            return ScheduleResponse(**result.data[0])
        except Exception as e:
            raise service_error(e, "Failed to add schedule", member_id=member_id) from e

    async def get(self, schedule_id: str) -> ScheduleResponse:
        try:
            result = await self.supabase.table("schedules")\
                .select("*")\
                .eq("id", schedule_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Schedule not found", schedule_id=schedule_id)
            return ScheduleResponse(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load schedule", schedule_id=schedule_id) from e

    async def set_completed(self, schedule_id: str, completed: bool = True) -> ScheduleResponse:
        try:
            result = await self.supabase.table("schedules")\
                .update({"completed": completed})\
                .eq("id", schedule_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Schedule not found", schedule_id=schedule_id)
            return ScheduleResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to update schedule", schedule_id=schedule_id) from e

    async def delete(self, schedule_id: str) -> bool:
        try:
            result = await self.supabase.table("schedules")\
                .delete()\
                .eq("id", schedule_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to delete schedule", schedule_id=schedule_id) from e
