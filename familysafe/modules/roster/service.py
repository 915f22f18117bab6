"""
Family roster: the member view models shown on the dashboards.

A parent sees one view per linked child, a child sees its own. Per-member
details (today's schedule, active destination, recent history) are fetched
concurrently once the views exist.
"""
import asyncio
import logging
from typing import List

from supabase import AsyncClient
from familysafe.core.errors import FamilySafeError
from familysafe.modules.family.service import FamilyService
from familysafe.modules.members.schemas import MemberView
from familysafe.modules.members.service import MemberService, to_member_view
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService
from familysafe.modules.schedules.service import ScheduleService

logger = logging.getLogger(__name__)


class RosterLoader:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.family = FamilyService(supabase)
        self.members = MemberService(supabase)
        self.profiles = ProfileService(supabase)
        self.schedules = ScheduleService(supabase)

    async def load(self, profile: ProfileResponse) -> List[MemberView]:
        if profile.is_parent:
            views = await self.load_for_parent(profile.id)
        else:
            views = await self.load_for_child(profile)
        await self.load_details(views)
        return views

    async def load_for_parent(self, parent_id: str) -> List[MemberView]:
        try:
            child_ids = await self.family.child_ids(parent_id)
            if not child_ids:
                return []
            rows = await self.members.list_for_users(child_ids)
            profiles = await self.profiles.get_profiles(row.user_id for row in rows)
        except FamilySafeError as e:
            logger.error(f"Failed to load roster for parent {parent_id}: {e}")
            return []
        return [to_member_view(row, profiles.get(row.user_id)) for row in rows]

    async def load_for_child(self, profile: ProfileResponse) -> List[MemberView]:
        """The child's own member row, created on first login when missing"""
        try:
            row = await self.members.find_for_user(profile.id)
        except FamilySafeError as e:
            logger.error(f"Failed to load member row for child {profile.id}: {e}")
            return []
        if row is None:
            logger.info(f"Creating member row for child {profile.id}")
            row = await self.members.create_for_child(profile.id, profile.name)
        return [to_member_view(row, profile)]

    async def load_details(self, views: List[MemberView]) -> None:
        if views:
            await asyncio.gather(*(self._load_member_details(view) for view in views))

    async def _load_member_details(self, view: MemberView) -> None:
        schedule, destination, history = await asyncio.gather(
            self.schedules.list_today(view.id),
            self.members.get_active_destination(view.id),
            self.members.list_history(view.id),
            return_exceptions=True,
        )
        if isinstance(schedule, Exception):
            logger.error(f"Failed to load schedule for member {view.id}: {schedule}")
        else:
            view.schedule = schedule
        if isinstance(destination, Exception):
            logger.error(f"Failed to load destination for member {view.id}: {destination}")
        else:
            view.destination = destination
        if isinstance(history, Exception):
            logger.error(f"Failed to load location history for member {view.id}: {history}")
        else:
            view.location_history = history
