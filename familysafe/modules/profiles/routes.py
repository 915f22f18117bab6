from fastapi import APIRouter, Depends, File, UploadFile
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.profiles.schemas import CallLinkResponse, ProfileResponse, ProfileUpdate
from familysafe.modules.profiles.service import ProfileService, call_uri
from familysafe.core.dependencies import get_current_profile, get_current_user_id
from supabase import AsyncClient
from typing import Dict

router = APIRouter(prefix="/profiles", tags=["profiles"])


def get_profile_service(supabase: AsyncClient = Depends(get_supabase)) -> ProfileService:
    return ProfileService(supabase)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(profile: ProfileResponse = Depends(get_current_profile)):
    return profile


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    current_user: Dict = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    """Update name and phone"""
    return await service.update_profile(current_user["id"], profile_data)


@router.post("/me/avatar", response_model=ProfileResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: Dict = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    """Replace the avatar image (the previous file is removed)"""
    contents = await file.read()
    return await service.upload_avatar(current_user["id"], file.filename or "", contents, file.content_type or "")


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    return await service.get_profile(user_id)


@router.get("/{user_id}/call", response_model=CallLinkResponse)
async def get_call_link(
    user_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    """tel: link for calling a family member"""
    profile = await service.get_profile(user_id)
    return CallLinkResponse(user_id=user_id, uri=call_uri(profile.phone))
