import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from familysafe.core.errors import FamilySafeError
from familysafe.core.timeutil import as_utc, utcnow
from familysafe.database.realtime import Binding, ChangeEvent
from familysafe.modules.groups.schemas import GroupMessageResponse
from familysafe.modules.groups.service import GroupService, UNKNOWN_USER
from familysafe.modules.messages.schemas import MessageCreate, MessageResponse
from familysafe.modules.messages.service import MessageService, require_text
from familysafe.session.pending import PendingList, is_temp_id, new_temp_id

logger = logging.getLogger(__name__)

EDIT_FIELDS = ("text", "edited", "edited_at")


class Conversation(ABC):
    """Draft plus an optimistic message list shared by direct and group chats"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.draft = ""
        self.messages: PendingList = PendingList()

    async def send(self):
        """Send the draft. On failure the message disappears and the draft comes back."""
        text = self.draft
        require_text(text)
        self.draft = ""
        temp_id = new_temp_id()
        try:
            return await self.messages.submit(temp_id, self._optimistic(temp_id, text), lambda: self._commit(text))
        except Exception:
            self.draft = text
            raise

    @abstractmethod
    def _optimistic(self, temp_id: str, text: str):
        """Local stand-in shown while the insert is in flight"""

    @abstractmethod
    async def _commit(self, text: str):
        """Insert the message and return the server row"""

    @abstractmethod
    def _belongs(self, row: dict) -> bool:
        """Whether a realtime row is part of this conversation"""

    @abstractmethod
    def _from_row(self, row: dict):
        """Message model from a realtime row"""

    def on_insert(self, event: ChangeEvent) -> bool:
        if not self._belongs(event.new):
            return False
        return self.messages.apply_insert(self._from_row(event.new))

    def on_update(self, event: ChangeEvent) -> bool:
        existing = self.messages.get(event.new.get("id"))
        if existing is None:
            return False
        changes = {field: event.new[field] for field in EDIT_FIELDS if field in event.new}
        if changes.get("edited_at"):
            changes["edited_at"] = as_utc(changes["edited_at"])
        return self.messages.replace(existing.model_copy(update=changes))

    def on_delete(self, event: ChangeEvent) -> bool:
        return self.messages.remove(event.old.get("id"))

    def _edited(self, message_id: str, updated):
        existing = self.messages.get(message_id)
        if existing is None:
            return updated
        merged = existing.model_copy(update={field: getattr(updated, field) for field in EDIT_FIELDS})
        self.messages.replace(merged)
        return merged


class DirectConversation(Conversation):
    def __init__(self, service: MessageService, user_id: str, other_user_id: str):
        super().__init__(user_id)
        self.service = service
        self.other_user_id = other_user_id

    async def load(self) -> List[MessageResponse]:
        self.messages.reset(await self.service.list_conversation(self.user_id, self.other_user_id))
        await self.mark_read()
        return self.messages.items

    async def mark_read(self) -> None:
        try:
            await self.service.mark_conversation_read(self.user_id, self.other_user_id)
        except FamilySafeError as e:
            logger.error(f"Failed to mark conversation with {self.other_user_id} as read: {e}")

    def _optimistic(self, temp_id: str, text: str) -> MessageResponse:
        return MessageResponse(
            id=temp_id,
            from_user_id=self.user_id,
            to_user_id=self.other_user_id,
            text=text,
            created_at=utcnow(),
        )

    async def _commit(self, text: str) -> MessageResponse:
        return await self.service.send(self.user_id, MessageCreate(to_user_id=self.other_user_id, text=text))

    def _belongs(self, row: dict) -> bool:
        return {row.get("from_user_id"), row.get("to_user_id")} == {self.user_id, self.other_user_id}

    def _from_row(self, row: dict) -> MessageResponse:
        return MessageResponse(**row)

    async def edit(self, message_id: str, text: str) -> MessageResponse:
        return self._edited(message_id, await self.service.edit(self.user_id, message_id, text))

    async def delete(self, message_id: str) -> None:
        await self.service.delete(self.user_id, message_id)
        self.messages.remove(message_id)

    def bindings(self) -> List[Binding]:
        return [
            Binding("INSERT", "messages", self.on_insert, filter=f"to_user_id=eq.{self.user_id}"),
            Binding("INSERT", "messages", self.on_insert, filter=f"from_user_id=eq.{self.user_id}"),
            Binding("UPDATE", "messages", self.on_update),
            Binding("DELETE", "messages", self.on_delete),
        ]


class GroupConversation(Conversation):
    def __init__(
        self,
        service: GroupService,
        group_id: str,
        user_id: str,
        user_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ):
        super().__init__(user_id)
        self.service = service
        self.group_id = group_id
        self.user_name = user_name
        self.avatar_url = avatar_url
        self._names: Dict[str, str] = {}
        self._avatars: Dict[str, Optional[str]] = {}

    async def load(self) -> List[GroupMessageResponse]:
        messages = await self.service.list_messages(self.group_id)
        for message in messages:
            self._names[message.from_user_id] = message.user_name or UNKNOWN_USER
            self._avatars[message.from_user_id] = message.avatar_url
        self.messages.reset(messages)
        await self.mark_all_read()
        return self.messages.items

    def unread(self) -> List[GroupMessageResponse]:
        return [
            message for message in self.messages
            if message.from_user_id != self.user_id
            and self.user_id not in message.read_by
            and not is_temp_id(message.id)
        ]

    async def mark_all_read(self) -> int:
        """Mark every unread message from other members as read, in one batch"""
        unread = self.unread()
        if not unread:
            return 0
        try:
            await self.service.mark_read(self.user_id, [message.id for message in unread])
        except FamilySafeError as e:
            logger.error(f"Failed to mark group {self.group_id} messages as read: {e}")
            return 0
        for message in unread:
            self._add_reader(message.id, self.user_id)
        return len(unread)

    def read_count(self, message_id: str) -> int:
        message = self.messages.get(message_id)
        return message.read_count if message else 0

    def _add_reader(self, message_id: str, reader_id: str) -> bool:
        message = self.messages.get(message_id)
        if message is None or reader_id in message.read_by:
            return False
        return self.messages.replace(message.model_copy(update={"read_by": [*message.read_by, reader_id]}))

    def _optimistic(self, temp_id: str, text: str) -> GroupMessageResponse:
        return GroupMessageResponse(
            id=temp_id,
            group_id=self.group_id,
            from_user_id=self.user_id,
            text=text,
            created_at=utcnow(),
            user_name=self.user_name,
            avatar_url=self.avatar_url,
        )

    async def _commit(self, text: str) -> GroupMessageResponse:
        message = await self.service.send_message(self.group_id, self.user_id, text)
        return self._decorate(message)

    def _decorate(self, message: GroupMessageResponse) -> GroupMessageResponse:
        if message.from_user_id == self.user_id:
            name, avatar = self.user_name, self.avatar_url
        else:
            name, avatar = self._names.get(message.from_user_id), self._avatars.get(message.from_user_id)
        return message.model_copy(update={"user_name": name or UNKNOWN_USER, "avatar_url": avatar})

    def _belongs(self, row: dict) -> bool:
        return row.get("group_id") == self.group_id

    def _from_row(self, row: dict) -> GroupMessageResponse:
        return self._decorate(GroupMessageResponse(**row))

    async def on_message_insert(self, event: ChangeEvent) -> bool:
        """Realtime insert; messages from others are marked read right away"""
        sender = event.new.get("from_user_id")
        if sender and sender != self.user_id and sender not in self._names:
            profile = await self._lookup(sender)
            if profile is not None:
                self._names[sender] = profile.name
                self._avatars[sender] = profile.avatar_url
        appended = self.on_insert(event)
        if appended and sender != self.user_id:
            await self.mark_all_read()
        return appended

    async def _lookup(self, user_id: str):
        try:
            return await self.service.profiles.find_profile(user_id)
        except FamilySafeError as e:
            logger.warning(f"Failed to load sender profile {user_id}: {e}")
            return None

    def on_read(self, event: ChangeEvent) -> bool:
        return self._add_reader(event.new.get("message_id"), event.new.get("user_id"))

    async def edit(self, message_id: str, text: str) -> GroupMessageResponse:
        return self._edited(message_id, await self.service.edit_message(self.user_id, message_id, text))

    async def delete(self, message_id: str) -> None:
        await self.service.delete_message(self.user_id, message_id)
        self.messages.remove(message_id)

    def bindings(self) -> List[Binding]:
        group_filter = f"group_id=eq.{self.group_id}"
        return [
            Binding("INSERT", "group_messages", self.on_message_insert, filter=group_filter),
            Binding("UPDATE", "group_messages", self.on_update, filter=group_filter),
            Binding("DELETE", "group_messages", self.on_delete),
            Binding("INSERT", "group_message_reads", self.on_read),
        ]
