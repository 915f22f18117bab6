"""
Core dependencies for route protection and family access checks
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from familysafe.core.errors import PermissionDeniedError
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.auth.service import AuthService
from familysafe.modules.family.service import FamilyService
from familysafe.modules.groups.service import GroupService
from familysafe.modules.members.schemas import MemberRow
from familysafe.modules.members.service import MemberService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService
from supabase import AsyncClient
from typing import Any, Dict, List
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (profile, child_ids)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: AsyncClient = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


async def get_current_user_id(
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    return await auth_service.get_current_user(token)


async def get_current_profile(
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase)
) -> ProfileResponse:
    """Profile of the caller; 404 until the role-selection step is done"""
    cache = _get_request_cache(request)
    if "profile" not in cache:
        cache["profile"] = await ProfileService(supabase).get_profile(user_data["id"])
    return cache["profile"]


async def require_parent(profile: ProfileResponse = Depends(get_current_profile)) -> ProfileResponse:
    if not profile.is_parent:
        raise PermissionDeniedError("Only parents can do this", user_id=profile.id)
    return profile


async def require_child(profile: ProfileResponse = Depends(get_current_profile)) -> ProfileResponse:
    if not profile.is_child:
        raise PermissionDeniedError("Only children can do this", user_id=profile.id)
    return profile


async def get_child_ids(request: Request, parent_id: str, supabase: AsyncClient) -> List[str]:
    cache = _get_request_cache(request)
    if "child_ids" not in cache:
        cache["child_ids"] = await FamilyService(supabase).child_ids(parent_id)
    return cache["child_ids"]


async def check_member_access(
    member_id: str,
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase)
) -> MemberRow:
    """Allow the child owning the member row and every parent linked to that child"""
    member = await MemberService(supabase).get_member(member_id)
    user_id = user_data["id"]
    if member.user_id == user_id:
        return member
    if member.user_id in await get_child_ids(request, user_id, supabase):
        return member
    raise PermissionDeniedError("You are not linked to this family member", member_id=member_id)


async def check_member_parent(
    member_id: str,
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase)
) -> MemberRow:
    """Parent-only member operations (remote GPS control, destinations)"""
    member = await MemberService(supabase).get_member(member_id)
    if member.user_id in await get_child_ids(request, user_data["id"], supabase):
        return member
    raise PermissionDeniedError("Only a linked parent can do this", member_id=member_id)


async def check_group_member(
    group_id: str,
    user_data: dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase)
) -> dict:
    """Check if user is a member of a group"""
    await GroupService(supabase).require_member(group_id, user_data["id"])
    return user_data


async def check_group_admin(
    group_id: str,
    user_data: dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase)
) -> dict:
    """Check if user is the admin (creator or transferee) of a group"""
    await GroupService(supabase).require_admin(group_id, user_data["id"])
    return user_data
