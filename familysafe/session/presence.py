import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError
from familysafe.core.timeutil import utcnow
from familysafe.database.realtime import Binding, ChangeEvent
from familysafe.modules.presence.schemas import PresenceRow
from familysafe.modules.presence.service import OFFLINE, ONLINE, PresenceService, effective_status

logger = logging.getLogger(__name__)


class PresenceTracker:
    """
    Publishes the signed-in user's presence.

    ``online`` is pushed on start and then every heartbeat interval while
    the app is visible. Hiding the app pushes ``offline`` and pauses the
    heartbeat; stopping cancels it and pushes ``offline``. Write failures
    are logged and never end the loop.
    """

    def __init__(self, service: PresenceService, user_id: str, interval_sec: Optional[float] = None):
        self.service = service
        self.user_id = user_id
        self.interval_sec = settings.heartbeat_interval_sec if interval_sec is None else interval_sec
        self.visible = True
        self._task: Optional[asyncio.Task] = None
        self._beacons: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        await self.push(ONLINE)
        self._task = asyncio.create_task(self._heartbeat())

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            if self.visible:
                await self.push(ONLINE)

    async def push(self, status: str) -> bool:
        try:
            await self.service.set_status(self.user_id, status)
            return True
        except FamilySafeError as e:
            logger.error(f"Presence update ({status}) failed for {self.user_id}: {e}")
            return False

    async def set_visible(self, visible: bool) -> None:
        self.visible = visible
        if self.running:
            await self.push(ONLINE if visible else OFFLINE)

    def beacon(self) -> asyncio.Task:
        """Best-effort offline write on unload; the caller never waits for it"""
        task = asyncio.ensure_future(self.push(OFFLINE))
        self._beacons.add(task)
        task.add_done_callback(self._beacons.discard)
        return task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await self.push(OFFLINE)


class PresenceBoard:
    """Latest presence row of each watched user, answered with the staleness rule."""

    def __init__(self, service: PresenceService):
        self.service = service
        self._watched: Set[str] = set()
        self._rows: Dict[str, PresenceRow] = {}

    @property
    def watched(self) -> List[str]:
        return sorted(self._watched)

    async def load(self, user_ids: Iterable[str]) -> None:
        self._watched = set(user_ids)
        self._rows = {}
        try:
            for row in await self.service.get_rows(self._watched):
                self._rows[row.user_id] = row
        except FamilySafeError as e:
            logger.error(f"Failed to load presence: {e}")

    def apply(self, row: dict) -> bool:
        user_id = row.get("user_id") if row else None
        if user_id not in self._watched or not row.get("last_seen"):
            return False
        self._rows[user_id] = PresenceRow(**row)
        return True

    def handle_change(self, event: ChangeEvent) -> None:
        if event.type in ("INSERT", "UPDATE"):
            self.apply(event.new)

    def status_of(self, user_id: str, now: Optional[datetime] = None) -> str:
        row = self._rows.get(user_id)
        if row is None:
            return OFFLINE
        return effective_status(row.last_seen, now)

    def statuses(self, now: Optional[datetime] = None) -> Dict[str, str]:
        now = now or utcnow()
        return {user_id: self.status_of(user_id, now) for user_id in self._watched}

    def bindings(self) -> List[Binding]:
        if not self._watched:
            return []
        return [Binding(
            "*",
            "user_presence",
            self.handle_change,
            filter=f"user_id=in.({','.join(self.watched)})",
        )]
