from fastapi import APIRouter, Depends
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.family.schemas import AddChildRequest, ParentChildLink
from familysafe.modules.family.service import FamilyService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.core.dependencies import get_current_profile, require_parent
from supabase import AsyncClient
from typing import List

router = APIRouter(prefix="/family", tags=["family"])


def get_family_service(supabase: AsyncClient = Depends(get_supabase)) -> FamilyService:
    return FamilyService(supabase)


@router.get("/children", response_model=List[ProfileResponse])
async def list_children(
    profile: ProfileResponse = Depends(require_parent),
    service: FamilyService = Depends(get_family_service)
):
    return await service.list_children(profile.id)


@router.post("/children", response_model=ParentChildLink, status_code=201)
async def add_child(
    child_data: AddChildRequest,
    profile: ProfileResponse = Depends(require_parent),
    service: FamilyService = Depends(get_family_service)
):
    """Link a child by the user id shown in the child's QR code"""
    return await service.add_child(profile.id, child_data.child_id)


@router.delete("/children/{child_id}", status_code=204)
async def remove_child(
    child_id: str,
    profile: ProfileResponse = Depends(require_parent),
    service: FamilyService = Depends(get_family_service)
):
    await service.remove_child(profile.id, child_id)
    return None


@router.get("/parents", response_model=List[ProfileResponse])
async def list_parents(
    profile: ProfileResponse = Depends(get_current_profile),
    service: FamilyService = Depends(get_family_service)
):
    return await service.list_parents(profile.id)


@router.get("/available-group-members", response_model=List[ProfileResponse])
async def available_group_members(
    profile: ProfileResponse = Depends(get_current_profile),
    service: FamilyService = Depends(get_family_service)
):
    """Who can be added to a new group: a parent's children or a child's parents"""
    return await service.available_group_members(profile.id, profile.role)
