from fastapi import APIRouter, Depends
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.presence.schemas import PresenceQuery, PresenceResponse, PresenceRow, PresenceUpdate
from familysafe.modules.presence.service import PresenceService
from familysafe.core.dependencies import get_current_user_id
from supabase import AsyncClient
from typing import Dict, List

router = APIRouter(prefix="/presence", tags=["presence"])


def get_presence_service(supabase: AsyncClient = Depends(get_supabase)) -> PresenceService:
    return PresenceService(supabase)


@router.put("", response_model=PresenceRow)
async def heartbeat(
    presence_data: PresenceUpdate,
    current_user: Dict = Depends(get_current_user_id),
    service: PresenceService = Depends(get_presence_service)
):
    """Heartbeat / visibility transition of the caller"""
    return await service.set_status(current_user["id"], presence_data.status)


@router.post("/query", response_model=List[PresenceResponse])
async def query_presence(
    query: PresenceQuery,
    current_user: Dict = Depends(get_current_user_id),
    service: PresenceService = Depends(get_presence_service)
):
    """Effective status of the given users (30 s staleness window)"""
    statuses = await service.get_statuses(query.user_ids)
    return list(statuses.values())
