from fastapi import APIRouter, Depends
from familysafe.database.supabase_client import get_supabase
from familysafe.modules.auth.schemas import (
    CompleteProfileRequest, LoginRequest, OAuthRequest, OAuthResponse,
    RegisterRequest, RegisterResponse, TokenResponse,
)
from familysafe.modules.auth.service import AuthService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService
from familysafe.core.dependencies import get_auth_service, get_current_token, get_current_user_id
from supabase import AsyncClient
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new parent or child"""
    return await service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return await service.login(login_data)


@router.post("/oauth", response_model=OAuthResponse)
async def oauth(
    oauth_data: OAuthRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Start a Google or LINE sign-in"""
    return await service.oauth_url(oauth_data.provider, oauth_data.redirect_to)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    await service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(
    current_user: Dict = Depends(get_current_user_id),
    supabase: AsyncClient = Depends(get_supabase),
):
    """Current user with profile; profile is null until a role is chosen"""
    profile = await ProfileService(supabase).find_profile(current_user["id"])
    return {**current_user, "profile": profile.model_dump() if profile else None}


@router.post("/complete-profile", response_model=ProfileResponse, status_code=201)
async def complete_profile(
    profile_data: CompleteProfileRequest,
    current_user: Dict = Depends(get_current_user_id),
    service: AuthService = Depends(get_auth_service)
):
    """Pick a role after signing in with a provider"""
    return await service.complete_profile(current_user["id"], current_user.get("email"), profile_data)
