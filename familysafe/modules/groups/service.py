import logging
from typing import Dict, Iterable, List, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import (
    FamilySafeError, NotFoundError, PermissionDeniedError, ValidationError, require, service_error,
)
from familysafe.core.timeutil import utcnow
from familysafe.database.storage import AvatarStorage
from familysafe.modules.groups.schemas import (
    GroupCreate, GroupMemberResponse, GroupMessageResponse, GroupResponse, GroupSummary,
)
from familysafe.modules.messages.service import require_text
from familysafe.modules.presence.service import PresenceService, effective_status, OFFLINE
from familysafe.modules.profiles.service import ProfileService

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown"


class GroupService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self.profiles = ProfileService(supabase)

    # Groups

    async def create_group(self, group_data: GroupCreate, user_id: str) -> GroupResponse:
        """Create a group; the creator becomes its admin and first member"""
        name = (group_data.name or "").strip()
        require(bool(name), "Group name is required")
        member_ids = [m for m in dict.fromkeys(group_data.member_ids) if m and m != user_id]
        require(bool(member_ids), "Select at least one member")
        try:
            result = await self.supabase.table("groups").insert({
                "name": name,
                "created_by": user_id,
            }).execute()
            if not result.data:
                raise NotFoundError("Group was not created")
            group = GroupResponse(**result.data[0])

            await self.supabase.table("group_members").insert([
                {"group_id": group.id, "user_id": member_id}
                for member_id in [user_id, *member_ids]
            ]).execute()
            logger.info(f"Group {group.id} created by {user_id} with {len(member_ids) + 1} members")
            return group
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to create group") from e

    async def get_group(self, group_id: str) -> GroupResponse:
        try:
            result = await self.supabase.table("groups")\
                .select("*")\
                .eq("id", group_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Group not found", group_id=group_id)
            return GroupResponse(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load group", group_id=group_id) from e

    async def list_groups(self, user_id: str) -> List[GroupSummary]:
        """Groups the user belongs to, newest first, with member counts"""
        try:
            members_result = await self.supabase.table("group_members")\
                .select("group_id")\
                .eq("user_id", user_id)\
                .execute()
            group_ids = [m["group_id"] for m in members_result.data or []]
            if not group_ids:
                return []
            groups_result = await self.supabase.table("groups")\
                .select("*")\
                .in_("id", group_ids)\
                .order("created_at", desc=True)\
                .execute()
            counts_result = await self.supabase.table("group_members")\
                .select("group_id, user_id")\
                .in_("group_id", group_ids)\
                .execute()
        except Exception as e:
            raise service_error(e, "Failed to load groups", user_id=user_id) from e

        counts: Dict[str, int] = {}
        for row in counts_result.data or []:
            counts[row["group_id"]] = counts.get(row["group_id"], 0) + 1
        return [
            GroupSummary(**group, member_count=counts.get(group["id"], 0))
            for group in groups_result.data or []
        ]

    async def delete_group(self, group_id: str, user_id: str) -> bool:
        """Delete a group with its messages and memberships (admin only)"""
        await self.require_admin(group_id, user_id)
        try:
            await self.supabase.table("group_messages")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()
            await self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()
            result = await self.supabase.table("groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()
            logger.info(f"Group {group_id} deleted by {user_id}")
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to delete group", group_id=group_id) from e

    async def transfer_admin(self, group_id: str, user_id: str, new_admin_id: str) -> GroupResponse:
        await self.require_admin(group_id, user_id)
        if not await self.is_member(group_id, new_admin_id):
            raise ValidationError("The new admin must be a member of the group", user_id=new_admin_id)
        try:
            result = await self.supabase.table("groups")\
                .update({"created_by": new_admin_id})\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Group not found", group_id=group_id)
            return GroupResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to transfer admin", group_id=group_id) from e

    async def upload_image(self, group_id: str, user_id: str, filename: str, contents: bytes, content_type: str) -> GroupResponse:
        await self.require_member(group_id, user_id)
        url = await AvatarStorage(self.supabase).save_group_image(group_id, filename, contents, content_type)
        try:
            result = await self.supabase.table("groups")\
                .update({"avatar_url": url})\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Group not found", group_id=group_id)
            return GroupResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to update group image", group_id=group_id) from e

    # Members

    async def member_ids(self, group_id: str) -> List[str]:
        try:
            result = await self.supabase.table("group_members")\
                .select("user_id")\
                .eq("group_id", group_id)\
                .execute()
            return [row["user_id"] for row in result.data or []]
        except Exception as e:
            raise service_error(e, "Failed to load group members", group_id=group_id) from e

    async def is_member(self, group_id: str, user_id: str) -> bool:
        try:
            result = await self.supabase.table("group_members")\
                .select("user_id")\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
            return bool(result.data)
        except Exception as e:
            raise service_error(e, "Failed to check group membership", group_id=group_id) from e

    async def require_member(self, group_id: str, user_id: str) -> None:
        if not await self.is_member(group_id, user_id):
            raise PermissionDeniedError("You must be a member of this group", group_id=group_id)

    async def require_admin(self, group_id: str, user_id: str) -> GroupResponse:
        group = await self.get_group(group_id)
        if group.created_by != user_id:
            raise PermissionDeniedError("Only the group admin can do this", group_id=group_id)
        return group

    async def list_members(self, group_id: str) -> List[GroupMemberResponse]:
        """Members with profile details and effective presence"""
        group = await self.get_group(group_id)
        ids = await self.member_ids(group_id)
        profiles = await self.profiles.get_profiles(ids)
        presence = {row.user_id: row for row in await PresenceService(self.supabase).get_rows(ids)}
        now = utcnow()
        members = []
        for user_id in ids:
            profile = profiles.get(user_id)
            row = presence.get(user_id)
            members.append(GroupMemberResponse(
                user_id=user_id,
                name=profile.name if profile else UNKNOWN_USER,
                role=profile.role if profile else None,
                avatar_url=profile.avatar_url if profile else None,
                is_admin=user_id == group.created_by,
                status=effective_status(row.last_seen, now) if row else OFFLINE,
                last_seen=row.last_seen if row else None,
            ))
        return members

    async def leave(self, group_id: str, user_id: str) -> bool:
        try:
            result = await self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to leave group", group_id=group_id) from e

    # Messages

    async def send_message(self, group_id: str, user_id: str, text: str) -> GroupMessageResponse:
        text = require_text(text)
        try:
            result = await self.supabase.table("group_messages").insert({
                "group_id": group_id,
                "from_user_id": user_id,
                "text": text,
            }).execute()
            if not result.data:
                raise NotFoundError("Message was not saved", group_id=group_id)
            return GroupMessageResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to send message", group_id=group_id) from e

    async def list_messages(self, group_id: str, limit: Optional[int] = None) -> List[GroupMessageResponse]:
        """Oldest-first messages, with sender names and the readers of each message"""
        try:
            result = await self.supabase.table("group_messages")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at", desc=False)\
                .limit(limit or settings.group_messages_limit)\
                .execute()
            rows = result.data or []
            if not rows:
                return []
            reads = await self.reads_for([row["id"] for row in rows])
        except Exception as e:
            raise service_error(e, "Failed to load messages", group_id=group_id) from e

        profiles = await self.profiles.get_profiles(row["from_user_id"] for row in rows)
        messages = []
        for row in rows:
            profile = profiles.get(row["from_user_id"])
            messages.append(GroupMessageResponse(
                **row,
                user_name=profile.name if profile else UNKNOWN_USER,
                avatar_url=profile.avatar_url if profile else None,
                read_by=reads.get(row["id"], []),
            ))
        return messages

    async def reads_for(self, message_ids: Iterable[str]) -> Dict[str, List[str]]:
        ids = list(message_ids)
        if not ids:
            return {}
        result = await self.supabase.table("group_message_reads")\
            .select("message_id, user_id")\
            .in_("message_id", ids)\
            .execute()
        reads: Dict[str, List[str]] = {}
        for row in result.data or []:
            readers = reads.setdefault(row["message_id"], [])
            if row["user_id"] not in readers:
                readers.append(row["user_id"])
        return reads

    async def get_message(self, message_id: str) -> GroupMessageResponse:
        try:
            result = await self.supabase.table("group_messages")\
                .select("*")\
                .eq("id", message_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Message not found", message_id=message_id)
            return GroupMessageResponse(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load message", message_id=message_id) from e

    async def _own_message(self, user_id: str, message_id: str) -> GroupMessageResponse:
        message = await self.get_message(message_id)
        if message.from_user_id != user_id:
            raise PermissionDeniedError("Only the sender can change this message", message_id=message_id)
        return message

    async def edit_message(self, user_id: str, message_id: str, text: str) -> GroupMessageResponse:
        text = require_text(text)
        await self._own_message(user_id, message_id)
        try:
            result = await self.supabase.table("group_messages")\
                .update({"text": text, "edited": True, "edited_at": utcnow().isoformat()})\
                .eq("id", message_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Message not found", message_id=message_id)
            return GroupMessageResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to edit message", message_id=message_id) from e

    async def delete_message(self, user_id: str, message_id: str) -> bool:
        await self._own_message(user_id, message_id)
        try:
            result = await self.supabase.table("group_messages")\
                .delete()\
                .eq("id", message_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to delete message", message_id=message_id) from e

    async def mark_read(self, user_id: str, message_ids: Iterable[str]) -> int:
        """Upsert one read row per message for the user; returns how many were sent"""
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return 0
        read_at = utcnow().isoformat()
        try:
            await self.supabase.table("group_message_reads")\
                .upsert(
                    [{"message_id": message_id, "user_id": user_id, "read_at": read_at} for message_id in ids],
                    on_conflict="message_id,user_id",
                )\
                .execute()
            return len(ids)
        except Exception as e:
            raise service_error(e, "Failed to mark messages as read", user_id=user_id) from e
