import hashlib
import logging
import time
from typing import Any, Dict, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import (
    ConflictError, FamilySafeError, PermissionDeniedError, ServiceError, ValidationError, service_error,
)
from familysafe.modules.auth.schemas import (
    CompleteProfileRequest, LoginRequest, OAuthResponse, RegisterRequest, RegisterResponse, TokenResponse,
)
from familysafe.modules.members.service import MemberService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

OAUTH_PROVIDERS = ("google", "line")


def clear_user_cache() -> None:
    _AUTH_USER_CACHE.clear()


class AuthenticationError(PermissionDeniedError):
    status_code = 401


class AuthService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.profiles = ProfileService(supabase)
        self.members = MemberService(supabase)

    async def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Create the auth user, its profile and, for a child, the member row"""
        try:
            auth_response = await self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {
                    "data": {"name": register_data.name.strip(), "role": register_data.role}
                }
            })
        except Exception as e:
            error_message = str(e).lower()
            if "already registered" in error_message or "already exists" in error_message:
                raise ConflictError("User already exists", email=register_data.email) from e
            raise service_error(e, "Registration failed", email=register_data.email) from e

        if not auth_response.user:
            raise ServiceError("Failed to register user", email=register_data.email)
        user_id = auth_response.user.id

        await self.profiles.create_profile(
            user_id,
            register_data.name,
            register_data.role,
            phone=register_data.phone,
            email=register_data.email,
        )
        if register_data.role == "child":
            await self.members.create_for_child(user_id, register_data.name.strip())
        logger.info(f"Registered {register_data.role} {user_id}")

        return RegisterResponse(
            user_id=user_id,
            email=auth_response.user.email or register_data.email,
            role=register_data.role,
            message="User registered successfully"
        )

    async def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = await self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except Exception as e:
            error_message = str(e).lower()
            if "invalid" in error_message or "credentials" in error_message:
                raise AuthenticationError("Invalid email or password") from e
            raise service_error(e, "Login failed") from e

        if not auth_response.user or not auth_response.session:
            raise AuthenticationError("Invalid credentials")

        return TokenResponse(
            access_token=auth_response.session.access_token,
            token_type="bearer",
            user_id=auth_response.user.id,
            email=auth_response.user.email or login_data.email
        )

    async def oauth_url(self, provider: str, redirect_to: Optional[str] = None) -> OAuthResponse:
        """URL that starts the provider's sign-in flow and comes back to the app"""
        if provider not in OAUTH_PROVIDERS:
            raise ValidationError("Unsupported sign-in provider", provider=provider)
        try:
            response = await self.supabase.auth.sign_in_with_oauth({
                "provider": provider,
                "options": {"redirect_to": redirect_to or settings.public_base_url},
            })
            return OAuthResponse(provider=provider, url=response.url)
        except Exception as e:
            raise service_error(e, "Failed to start sign-in", provider=provider) from e

    async def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = await self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise AuthenticationError("Invalid or expired token")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": user.email,
                "user_metadata": user.user_metadata or {},
                "created_at": user.created_at,
            }
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except FamilySafeError:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise AuthenticationError("Invalid or expired token") from e
            raise AuthenticationError("Authentication failed") from e

    async def complete_profile(self, user_id: str, email: Optional[str], data: CompleteProfileRequest) -> ProfileResponse:
        """Role selection for users who signed in without a profile (OAuth)"""
        profile = await self.profiles.create_profile(user_id, data.name, data.role, phone=data.phone, email=email)
        if profile.is_child and await self.members.find_for_user(user_id) is None:
            await self.members.create_for_child(user_id, profile.name)
        return profile

    async def logout(self, token: Optional[str] = None) -> bool:
        """Logout user using Supabase Auth"""
        if token:
            _AUTH_USER_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            await self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Sign out failed: {e}")
            return False
