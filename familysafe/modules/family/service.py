import logging
import re
from typing import List, Optional, Set

from supabase import AsyncClient
from familysafe.core.errors import (
    ConflictError, FamilySafeError, NotFoundError, ValidationError, require, service_error,
)
from familysafe.modules.family.schemas import ParentChildLink
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService

logger = logging.getLogger(__name__)

# RFC 4122 variant, versions 1-5
UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_user_id(value: str) -> bool:
    return bool(UUID_RE.match((value or "").strip()))


class FamilyService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.profiles = ProfileService(supabase)

    async def child_ids(self, parent_id: str) -> List[str]:
        try:
            result = await self.supabase.table("parent_children")\
                .select("child_id")\
                .eq("parent_id", parent_id)\
                .execute()
            return [row["child_id"] for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load children", parent_id=parent_id) from e

    async def parent_ids(self, child_id: str) -> List[str]:
        try:
            result = await self.supabase.table("parent_children")\
                .select("parent_id")\
                .eq("child_id", child_id)\
                .execute()
            return [row["parent_id"] for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load parents", child_id=child_id) from e

    async def is_parent_of(self, parent_id: str, child_id: str) -> bool:
        try:
            result = await self.supabase.table("parent_children")\
                .select("id")\
                .eq("parent_id", parent_id)\
                .eq("child_id", child_id)\
                .limit(1)\
                .execute()
            return bool(result.data)
        except Exception as e:
            raise service_error(e, "Failed to check family link", parent_id=parent_id) from e

    async def list_children(self, parent_id: str) -> List[ProfileResponse]:
        ids = await self.child_ids(parent_id)
        profiles = await self.profiles.get_profiles(ids)
        return [profiles[i] for i in ids if i in profiles]

    async def list_parents(self, child_id: str) -> List[ProfileResponse]:
        ids = await self.parent_ids(child_id)
        profiles = await self.profiles.get_profiles(ids)
        return [profiles[i] for i in ids if i in profiles]

    async def add_child(self, parent_id: str, child_id: str) -> ParentChildLink:
        """Link a child to the parent by the child's user id (as shown in the child's QR code)."""
        child_id = (child_id or "").strip()
        require(bool(child_id), "Child id is required")
        if not is_valid_user_id(child_id):
            raise ValidationError("Child id is not a valid user id", child_id=child_id)
        require(child_id != parent_id, "You cannot add yourself as a child")

        child = await self.profiles.find_profile(child_id)
        if child is None:
            raise NotFoundError("No user found with that id", child_id=child_id)
        if not child.is_child:
            raise ValidationError("That user is not registered as a child", child_id=child_id)
        if await self.is_parent_of(parent_id, child_id):
            raise ConflictError("This child is already linked to you", child_id=child_id)

        try:
            result = await self.supabase.table("parent_children").insert({
                "parent_id": parent_id,
                "child_id": child_id,
            }).execute()
            if not result.data:
                raise NotFoundError("Family link was not created", child_id=child_id)
            logger.info(f"Parent {parent_id} linked child {child_id}")
            return ParentChildLink(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to add child", parent_id=parent_id, child_id=child_id) from e

    async def remove_child(self, parent_id: str, child_id: str) -> bool:
        try:
            result = await self.supabase.table("parent_children")\
                .delete()\
                .eq("parent_id", parent_id)\
                .eq("child_id", child_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to remove child", parent_id=parent_id, child_id=child_id) from e

    async def member_ids_for_parent(self, parent_id: str) -> Set[str]:
        """Member-row ids of every child linked to the parent."""
        ids = await self.child_ids(parent_id)
        if not ids:
            return set()
        try:
            result = await self.supabase.table("members")\
                .select("id")\
                .in_("user_id", ids)\
                .execute()
            return {row["id"] for row in result.data or []}
        except Exception as e:
            raise service_error(e, "Failed to load member ids", parent_id=parent_id) from e

    async def available_group_members(self, user_id: str, role: str) -> List[ProfileResponse]:
        """People a user may put in a new group: a parent's children, a child's parents."""
        if role == "parent":
            return await self.list_children(user_id)
        return await self.list_parents(user_id)


class FamilyGraph:
    """
    Session-scoped cache of the member ids a parent may see alerts for.

    The set is computed on first use and kept until ``invalidate`` is called,
    which the session does whenever a parent_children change for this parent
    arrives over realtime.
    """

    def __init__(self, service: FamilyService, parent_id: str):
        self.service = service
        self.parent_id = parent_id
        self._member_ids: Optional[Set[str]] = None
        self._generation = 0

    @property
    def is_cached(self) -> bool:
        return self._member_ids is not None

    async def authorized_member_ids(self) -> Set[str]:
        if self._member_ids is not None:
            return self._member_ids
        generation = self._generation
        member_ids = await self.service.member_ids_for_parent(self.parent_id)
        # only cache a set fetched without an invalidation in between
        if generation == self._generation:
            self._member_ids = member_ids
        return member_ids

    async def is_authorized(self, member_id: Optional[str]) -> bool:
        if not member_id:
            return False
        return member_id in await self.authorized_member_ids()

    def invalidate(self) -> None:
        self._generation += 1
        self._member_ids = None

    def concerns(self, row: dict) -> bool:
        return bool(row) and row.get("parent_id") == self.parent_id

    def on_link_change(self, new: dict, old: dict) -> bool:
        """Invalidate when a link row of this parent changed; returns whether it did."""
        if self.concerns(new) or self.concerns(old):
            logger.debug(f"Family graph of {self.parent_id} changed, dropping cached member ids")
            self.invalidate()
            return True
        return False
