from fastapi import APIRouter, Depends
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.messages.schemas import MessageCreate, MessageResponse, MessageUpdate
from familysafe.modules.messages.service import MessageService
from familysafe.core.dependencies import get_current_user_id
from supabase import AsyncClient
from typing import Dict, List

router = APIRouter(prefix="/messages", tags=["messages"])


def get_message_service(supabase: AsyncClient = Depends(get_supabase)) -> MessageService:
    return MessageService(supabase)


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    message_data: MessageCreate,
    current_user: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return await service.send(current_user["id"], message_data)


@router.get("/conversations/{other_user_id}", response_model=List[MessageResponse])
async def list_conversation(
    other_user_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    """Messages exchanged with another user, oldest first"""
    return await service.list_conversation(current_user["id"], other_user_id)


@router.post("/conversations/{other_user_id}/read")
async def mark_conversation_read(
    other_user_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    updated = await service.mark_conversation_read(current_user["id"], other_user_id)
    return {"updated": updated}


@router.put("/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: str,
    message_data: MessageUpdate,
    current_user: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    """Edit own message"""
    return await service.edit(current_user["id"], message_id, message_data.text)


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    """Delete own message"""
    await service.delete(current_user["id"], message_id)
    return None
