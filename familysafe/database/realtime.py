"""
Row-level change subscriptions over Supabase realtime.

``RealtimeHub`` owns every channel a session opens so teardown can remove
them together. Handlers receive a normalized ``ChangeEvent``; coroutine
handlers are scheduled as tasks that are cancelled when the hub closes.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

from supabase import AsyncClient

logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    type: str  # INSERT | UPDATE | DELETE
    table: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], table: str = "") -> "ChangeEvent":
        # realtime-py wraps the change in "data"; older clients deliver it flat
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        event_type = data.get("type") or data.get("eventType") or ""
        new = data.get("record") or data.get("new") or {}
        old = data.get("old_record") or data.get("old") or {}
        return cls(
            type=str(event_type).upper(),
            table=data.get("table") or table,
            new=dict(new),
            old=dict(old),
        )


@dataclass
class Binding:
    event: str
    table: str
    handler: Callable[[ChangeEvent], Any]
    filter: Optional[str] = None
    schema: str = "public"


class RealtimeHub:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase
        self._channels: Dict[str, Any] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def channel_names(self) -> List[str]:
        return list(self._channels)

    async def subscribe(self, name: str, *bindings: Binding):
        """Open channel ``name`` with the given bindings, replacing an existing one."""
        if name in self._channels:
            await self.unsubscribe(name)
        channel = self.supabase.channel(name)
        for binding in bindings:
            channel.on_postgres_changes(
                binding.event,
                callback=partial(self._dispatch, binding),
                table=binding.table,
                schema=binding.schema,
                filter=binding.filter,
            )
        await channel.subscribe(partial(self._on_status, name))
        self._channels[name] = channel
        return channel

    async def unsubscribe(self, name: str) -> None:
        channel = self._channels.pop(name, None)
        if channel is None:
            return
        try:
            await self.supabase.remove_channel(channel)
        except Exception as e:
            logger.warning(f"Failed to remove realtime channel {name}: {e}")

    async def close(self) -> None:
        for name in list(self._channels):
            await self.unsubscribe(name)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait until every handler task scheduled so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_status(self, name: str, status, error=None) -> None:
        if error:
            logger.error(f"Realtime channel {name} error: {error}")
        else:
            logger.debug(f"Realtime channel {name}: {status}")

    def _dispatch(self, binding: Binding, payload: Dict[str, Any]) -> None:
        event = ChangeEvent.from_payload(payload, binding.table)
        try:
            result = binding.handler(event)
        except Exception:
            logger.exception(f"Realtime handler for {binding.table} {binding.event} failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Realtime handler task failed: {exc!r}")
