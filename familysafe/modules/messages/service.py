import logging
from typing import List, Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import (
    FamilySafeError, NotFoundError, PermissionDeniedError, require, service_error,
)
from familysafe.core.timeutil import utcnow
from familysafe.modules.messages.schemas import MessageCreate, MessageResponse

logger = logging.getLogger(__name__)


def require_text(text: Optional[str]) -> str:
    """Message bodies may not be empty or whitespace only"""
    require(bool(text and text.strip()), "Message text is required")
    return text


class MessageService:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def send(self, from_user_id: str, data: MessageCreate) -> MessageResponse:
        text = require_text(data.text)
        require(bool(data.to_user_id), "Recipient is required")
        try:
            result = await self.supabase.table("messages").insert({
                "from_user_id": from_user_id,
                "to_user_id": data.to_user_id,
                "text": text,
                "read": False,
            }).execute()
            if not result.data:
                raise NotFoundError("Message was not saved", to_user_id=data.to_user_id)
            return MessageResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to send message", to_user_id=data.to_user_id) from e

    async def _between(self, from_user_id: str, to_user_id: str, limit: int) -> List[dict]:
        result = await self.supabase.table("messages")\
            .select("*")\
            .eq("from_user_id", from_user_id)\
            .eq("to_user_id", to_user_id)\
            .order("created_at", desc=True)\
            .limit(limit)\
            .execute()
        return result.data or []

    async def list_conversation(self, user_id: str, other_user_id: str, limit: Optional[int] = None) -> List[MessageResponse]:
        """Newest messages exchanged by two users, returned oldest first"""
        limit = limit or settings.direct_messages_limit
        try:
            rows = await self._between(user_id, other_user_id, limit)
            rows += await self._between(other_user_id, user_id, limit)
        except Exception as e:
            raise service_error(e, "Failed to load messages", other_user_id=other_user_id) from e
        messages = sorted((MessageResponse(**row) for row in rows), key=lambda m: (m.created_at is None, m.created_at))
        return messages[-limit:]

    async def get_message(self, message_id: str) -> MessageResponse:
        try:
            result = await self.supabase.table("messages")\
                .select("*")\
                .eq("id", message_id)\
                .maybe_single()\
                .execute()
            data = result.data if result else None
            if not data:
                raise NotFoundError("Message not found", message_id=message_id)
            return MessageResponse(**data)
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to load message", message_id=message_id) from e

    async def _own_message(self, user_id: str, message_id: str) -> MessageResponse:
        message = await self.get_message(message_id)
        if message.from_user_id != user_id:
            raise PermissionDeniedError("Only the sender can change this message", message_id=message_id)
        return message

    async def edit(self, user_id: str, message_id: str, text: str) -> MessageResponse:
        text = require_text(text)
        await self._own_message(user_id, message_id)
        try:
            result = await self.supabase.table("messages")\
                .update({"text": text, "edited": True, "edited_at": utcnow().isoformat()})\
                .eq("id", message_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Message not found", message_id=message_id)
            return MessageResponse(**result.data[0])
        except FamilySafeError:
            raise
        except Exception as e:
            raise service_error(e, "Failed to edit message", message_id=message_id) from e

    async def delete(self, user_id: str, message_id: str) -> bool:
        await self._own_message(user_id, message_id)
        try:
            result = await self.supabase.table("messages")\
                .delete()\
                .eq("id", message_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise service_error(e, "Failed to delete message", message_id=message_id) from e

    async def mark_conversation_read(self, user_id: str, other_user_id: str) -> int:
        """Flag everything the other user sent me as read; returns how many rows changed"""
        try:
            result = await self.supabase.table("messages")\
                .update({"read": True})\
                .eq("from_user_id", other_user_id)\
                .eq("to_user_id", user_id)\
                .eq("read", False)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            raise service_error(e, "Failed to mark messages as read", other_user_id=other_user_id) from e
