from fastapi import APIRouter, Depends, File, UploadFile
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.groups.schemas import (
    GroupCreate, GroupMemberResponse, GroupMessageCreate, GroupMessageResponse,
    GroupMessageUpdate, GroupResponse, GroupSummary, MarkReadRequest, TransferAdminRequest,
)
from familysafe.modules.groups.service import GroupService
from familysafe.core.dependencies import check_group_admin, check_group_member, get_current_user_id
from supabase import AsyncClient
from typing import Dict, List

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(supabase: AsyncClient = Depends(get_supabase)) -> GroupService:
    return GroupService(supabase)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    current_user: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Create a group with the selected members; the caller becomes admin"""
    return await service.create_group(group_data, current_user["id"])


@router.get("", response_model=List[GroupSummary])
async def list_groups(
    current_user: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """List groups the user is a member of"""
    return await service.list_groups(current_user["id"])


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    return await service.get_group(group_id)


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: str,
    current_user: Dict = Depends(check_group_admin),
    service: GroupService = Depends(get_group_service)
):
    """Delete group with its messages and members (admin only)"""
    await service.delete_group(group_id, current_user["id"])
    return None


@router.get("/{group_id}/members", response_model=List[GroupMemberResponse])
async def list_members(
    group_id: str,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    """List members with their online status"""
    return await service.list_members(group_id)


@router.delete("/{group_id}/members/me", status_code=204)
async def leave_group(
    group_id: str,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    await service.leave(group_id, current_user["id"])
    return None


@router.put("/{group_id}/admin", response_model=GroupResponse)
async def transfer_admin(
    group_id: str,
    transfer: TransferAdminRequest,
    current_user: Dict = Depends(check_group_admin),
    service: GroupService = Depends(get_group_service)
):
    return await service.transfer_admin(group_id, current_user["id"], transfer.new_admin_id)


@router.post("/{group_id}/image", response_model=GroupResponse)
async def upload_image(
    group_id: str,
    file: UploadFile = File(...),
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    contents = await file.read()
    return await service.upload_image(group_id, current_user["id"], file.filename or "", contents, file.content_type or "")


@router.get("/{group_id}/messages", response_model=List[GroupMessageResponse])
async def list_messages(
    group_id: str,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    return await service.list_messages(group_id)


@router.post("/{group_id}/messages", response_model=GroupMessageResponse, status_code=201)
async def send_message(
    group_id: str,
    message_data: GroupMessageCreate,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    return await service.send_message(group_id, current_user["id"], message_data.text)


@router.put("/{group_id}/messages/{message_id}", response_model=GroupMessageResponse)
async def edit_message(
    group_id: str,
    message_id: str,
    message_data: GroupMessageUpdate,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    return await service.edit_message(current_user["id"], message_id, message_data.text)


@router.delete("/{group_id}/messages/{message_id}", status_code=204)
async def delete_message(
    group_id: str,
    message_id: str,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    await service.delete_message(current_user["id"], message_id)
    return None


@router.post("/{group_id}/messages/read")
async def mark_read(
    group_id: str,
    read_data: MarkReadRequest,
    current_user: Dict = Depends(check_group_member),
    service: GroupService = Depends(get_group_service)
):
    marked = await service.mark_read(current_user["id"], read_data.message_ids)
    return {"marked": marked}
