import re
from typing import Dict, Iterable, Optional

from supabase import AsyncClient
from familysafe.core.errors import (
    FamilySafeError, NotFoundError, ValidationError, optional_text, require, service_error,
)
from familysafe.database.storage import AvatarStorage
from familysafe.modules.profiles.schemas import ProfileResponse, ProfileUpdate


def call_uri(phone: Optional[str]) -> str:
    """tel: link for the native dialer."""
    digits = re.sub(r"[^\d+]", "", phone or "")
    if not digits:
        raise ValidationError("No phone number registered")
    return f"tel:{digits}"


class ProfileService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def find_profile(self, user_id: str) -> Optional[ProfileResponse]:
        """Profile row or None when the user has not picked a role yet"""
        try:
            result = await self.supabase.table("profiles")\
                .select("*")\
                .eq("id", user_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            return ProfileResponse(**data) if data else None
        except Exception as e:
            raise service_error(e, "Failed to load profile", user_id=user_id) from e

    async def get_profile(self, user_id: str) -> ProfileResponse:
        profile = await self.find_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile not found", user_id=user_id)
        return profile

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, ProfileResponse]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        try:
            result = await self.supabase.table("profiles")\
                .select("*")\
                .in_("id", ids)\
                .execute()
            return {row["id"]: ProfileResponse(**row) for row in result.data or []}
        except Exception as e:
            raise service_error(e, "Failed to load profiles") from e

    async def create_profile(
        self,
        user_id: str,
        name: str,
        role: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> ProfileResponse:
        require(bool(name and name.strip()), "Name is required")
        require(role in ("parent", "child"), "Role must be parent or child", role=role)
        try:
            result = await self.supabase.table("profiles").insert({
                "id": user_id,
                "name": name.strip(),
                "role": role,
                "phone": optional_text(phone),
                "email": email,
            }).execute()
            if not result.data:
                raise NotFoundError("Profile was not saved", user_id=user_id)
            return ProfileResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to save profile", user_id=user_id) from e

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> ProfileResponse:
        update_data = {}
        if data.name is not None:
            require(bool(data.name.strip()), "Name cannot be empty")
            update_data["name"] = data.name.strip()
        if data.phone is not None:
            update_data["phone"] = optional_text(data.phone)
        if not update_data:
            return await self.get_profile(user_id)
        try:
            result = await self.supabase.table("profiles")\
                .update(update_data)\
                .eq("id", user_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Profile not found", user_id=user_id)
            return ProfileResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to update profile", user_id=user_id) from e

    async def upload_avatar(self, user_id: str, filename: str, contents: bytes, content_type: str) -> ProfileResponse:
        """Store a new avatar, drop the previous image, point the profile at the new URL"""
        profile = await self.get_profile(user_id)
        storage = AvatarStorage(self.supabase)
        url = await storage.save_user_avatar(
            user_id, filename, contents, content_type, previous_url=profile.avatar_url
        )
        try:
            result = await self.supabase.table("profiles")\
                .update({"avatar_url": url})\
                .eq("id", user_id)\
                .execute()
            return ProfileResponse(**result.data[0]) if result.data else profile.model_copy(update={"avatar_url": url})
        except Exception as e:
            raise service_error(e, "Failed to update avatar", user_id=user_id) from e
