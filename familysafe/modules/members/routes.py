from fastapi import APIRouter, Depends
from familysafe.core.errors import PermissionDeniedError
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.members.schemas import (
    BatteryUpdate, Destination, DestinationSet, GpsToggle, LocationHistoryEntry,
    LocationReport, MemberRow, MemberView, StatusUpdate,
)
from familysafe.modules.members.service import MemberService, to_member_view
from familysafe.modules.profiles.service import ProfileService
from familysafe.modules.roster.service import RosterLoader
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.core.dependencies import (
    check_member_access, check_member_parent, get_current_profile, get_current_user_id,
)
from supabase import AsyncClient
from typing import Dict, List, Optional

router = APIRouter(prefix="/members", tags=["members"])


def get_member_service(supabase: AsyncClient = Depends(get_supabase)) -> MemberService:
    return MemberService(supabase)


def _require_owner(member: MemberRow, user_data: Dict) -> None:
    if member.user_id != user_data["id"]:
        raise PermissionDeniedError("Only the child can report its own device data", member_id=member.id)


@router.get("", response_model=List[MemberView])
async def list_family_members(
    profile: ProfileResponse = Depends(get_current_profile),
    supabase: AsyncClient = Depends(get_supabase)
):
    """Dashboard roster: a parent's children, or the child itself"""
    return await RosterLoader(supabase).load(profile)


@router.get("/{member_id}", response_model=MemberView)
async def get_member(
    member: MemberRow = Depends(check_member_access),
    supabase: AsyncClient = Depends(get_supabase)
):
    profile = await ProfileService(supabase).find_profile(member.user_id)
    view = to_member_view(member, profile)
    await RosterLoader(supabase).load_details([view])
    return view


@router.put("/{member_id}/status", response_model=MemberRow)
async def set_status(
    status_data: StatusUpdate,
    member: MemberRow = Depends(check_member_access),
    service: MemberService = Depends(get_member_service)
):
    return await service.set_status(member.id, status_data.status)


@router.put("/{member_id}/gps", response_model=MemberRow)
async def set_gps(
    gps_data: GpsToggle,
    member: MemberRow = Depends(check_member_parent),
    service: MemberService = Depends(get_member_service)
):
    """Turn continuous tracking on the child's device on or off"""
    return await service.set_gps_enabled(member.id, gps_data.enabled)


@router.post("/{member_id}/location", response_model=MemberRow)
async def record_location(
    location_data: LocationReport,
    member: MemberRow = Depends(check_member_access),
    user_data: Dict = Depends(get_current_user_id),
    service: MemberService = Depends(get_member_service)
):
    _require_owner(member, user_data)
    return await service.record_location(
        member.id, location_data.latitude, location_data.longitude, battery=location_data.battery
    )


@router.put("/{member_id}/battery", response_model=MemberRow)
async def update_battery(
    battery_data: BatteryUpdate,
    member: MemberRow = Depends(check_member_access),
    user_data: Dict = Depends(get_current_user_id),
    service: MemberService = Depends(get_member_service)
):
    _require_owner(member, user_data)
    return await service.update_battery(member.id, battery_data.battery)


@router.get("/{member_id}/history", response_model=List[LocationHistoryEntry])
async def list_history(
    limit: Optional[int] = None,
    member: MemberRow = Depends(check_member_access),
    service: MemberService = Depends(get_member_service)
):
    return await service.list_history(member.id, limit=limit)


@router.get("/{member_id}/destination", response_model=Optional[Destination])
async def get_destination(
    member: MemberRow = Depends(check_member_access),
    service: MemberService = Depends(get_member_service)
):
    return await service.get_active_destination(member.id)


@router.put("/{member_id}/destination", response_model=Destination)
async def set_destination(
    destination_data: DestinationSet,
    member: MemberRow = Depends(check_member_parent),
    service: MemberService = Depends(get_member_service)
):
    """Replace the child's active destination"""
    return await service.set_destination(member.id, destination_data)


@router.delete("/{member_id}/destination", status_code=204)
async def clear_destination(
    member: MemberRow = Depends(check_member_parent),
    service: MemberService = Depends(get_member_service)
):
    await service.clear_destination(member.id)
    return None
