from fastapi import APIRouter, Depends
from familysafe.core.errors import NotFoundError
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.members.schemas import MemberRow
from familysafe.modules.schedules.schemas import ScheduleCompletion, ScheduleCreate, ScheduleResponse
from familysafe.modules.schedules.service import ScheduleService
from familysafe.core.dependencies import check_member_access
from supabase import AsyncClient
from typing import List

router = APIRouter(prefix="/members/{member_id}/schedules", tags=["schedules"])


def get_schedule_service(supabase: AsyncClient = Depends(get_supabase)) -> ScheduleService:
    return ScheduleService(supabase)


async def _member_schedule(service: ScheduleService, member: MemberRow, schedule_id: str) -> ScheduleResponse:
    schedule = await service.get(schedule_id)
    if schedule.member_id != member.id:
        raise NotFoundError("Schedule not found", schedule_id=schedule_id)
    return schedule


@router.get("", response_model=List[ScheduleResponse])
async def list_today(
    member: MemberRow = Depends(check_member_access),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Today's schedule, ordered by time"""
    return await service.list_today(member.id)


@router.post("", response_model=ScheduleResponse, status_code=201)
async def add_schedule(
    schedule_data: ScheduleCreate,
    member: MemberRow = Depends(check_member_access),
    service: ScheduleService = Depends(get_schedule_service)
):
    return await service.add(member.id, schedule_data)


@router.put("/{schedule_id}", response_model=ScheduleResponse)
async def set_completed(
    schedule_id: str,
    completion: ScheduleCompletion,
    member: MemberRow = Depends(check_member_access),
    service: ScheduleService = Depends(get_schedule_service)
):
    await _member_schedule(service, member, schedule_id)
    return await service.set_completed(schedule_id, completion.completed)


@router.delete("/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: str,
    member: MemberRow = Depends(check_member_access),
    service: ScheduleService = Depends(get_schedule_service)
):
    await _member_schedule(service, member, schedule_id)
    await service.delete(schedule_id)
    return None
