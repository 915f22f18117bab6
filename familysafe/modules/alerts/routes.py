from fastapi import APIRouter, Depends
from familysafe.core.errors import NotFoundError, PermissionDeniedError
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.alerts.schemas import AlertResponse
from familysafe.modules.alerts.service import AlertService
from familysafe.modules.family.service import FamilyService
from familysafe.modules.members.schemas import MemberRow
from familysafe.modules.members.service import MemberService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.core.dependencies import require_child, require_parent
from supabase import AsyncClient
from typing import List

router = APIRouter(prefix="/alerts", tags=["alerts"])


def get_alert_service(supabase: AsyncClient = Depends(get_supabase)) -> AlertService:
    return AlertService(supabase)


async def _own_member(profile: ProfileResponse, supabase: AsyncClient) -> MemberRow:
    member = await MemberService(supabase).find_for_user(profile.id)
    if member is None:
        raise NotFoundError("Member record not found", user_id=profile.id)
    return member


async def _parent_alert(alert_id: str, profile: ProfileResponse, supabase: AsyncClient, service: AlertService) -> AlertResponse:
    alert = await service.get_alert(alert_id)
    if alert.member_id not in await FamilyService(supabase).member_ids_for_parent(profile.id):
        raise PermissionDeniedError("This alert is not about your children", alert_id=alert_id)
    return alert


@router.get("", response_model=List[AlertResponse])
async def list_alerts(
    profile: ProfileResponse = Depends(require_parent),
    service: AlertService = Depends(get_alert_service),
    supabase: AsyncClient = Depends(get_supabase)
):
    """Newest alerts about the caller's children"""
    member_ids = await FamilyService(supabase).member_ids_for_parent(profile.id)
    return await service.list_for_members(member_ids)


@router.post("/sos", response_model=AlertResponse, status_code=201)
async def send_sos(
    profile: ProfileResponse = Depends(require_child),
    service: AlertService = Depends(get_alert_service),
    supabase: AsyncClient = Depends(get_supabase)
):
    member = await _own_member(profile, supabase)
    return await service.send_sos(member, profile.name)


@router.post("/lost", response_model=AlertResponse, status_code=201)
async def send_lost(
    profile: ProfileResponse = Depends(require_child),
    service: AlertService = Depends(get_alert_service),
    supabase: AsyncClient = Depends(get_supabase)
):
    member = await _own_member(profile, supabase)
    return await service.send_lost(member, profile.name)


@router.put("/{alert_id}/read", response_model=AlertResponse)
async def mark_read(
    alert_id: str,
    profile: ProfileResponse = Depends(require_parent),
    service: AlertService = Depends(get_alert_service),
    supabase: AsyncClient = Depends(get_supabase)
):
    await _parent_alert(alert_id, profile, supabase, service)
    return await service.mark_read(alert_id)


@router.delete("/{alert_id}", status_code=204)
async def delete_alert(
    alert_id: str,
    profile: ProfileResponse = Depends(require_parent),
    service: AlertService = Depends(get_alert_service),
    supabase: AsyncClient = Depends(get_supabase)
):
    await _parent_alert(alert_id, profile, supabase, service)
    await service.delete_alert(alert_id)
    return None
