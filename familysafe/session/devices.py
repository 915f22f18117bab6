"""
Device capabilities a session consumes: geolocation, battery and notifications.

Hosts pass their own implementations; ``ManualGeolocation`` is driven by
pushing fixes into it (from another process, a websocket, or a test).
"""
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Set, Tuple

from familysafe.core.errors import GeolocationError
from familysafe.core.timeutil import utcnow

logger = logging.getLogger(__name__)

PositionCallback = Callable[["Position"], Any]
ErrorCallback = Callable[[GeolocationError], Any]


@dataclass
class Position:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = field(default_factory=utcnow)


class Geolocation(Protocol):
    async def get_current_position(
        self, high_accuracy: bool = True, timeout_ms: int = 15000, maximum_age_ms: int = 0
    ) -> Position:
        ...

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        high_accuracy: bool = True,
        timeout_ms: int = 30000,
        maximum_age_ms: int = 5000,
    ) -> int:
        ...

    def clear_watch(self, handle: int) -> None:
        ...


class Battery(Protocol):
    async def level(self) -> int:
        ...


class Notifier(Protocol):
    async def notify(self, title: str, body: str, require_interaction: bool = False) -> None:
        ...


class ManualGeolocation:
    def __init__(self, position: Optional[Position] = None):
        self.position = position
        self.error_code: Optional[str] = None
        self.requests = []
        self._handles = itertools.count(1)
        self._watchers: Dict[int, Tuple[PositionCallback, ErrorCallback]] = {}
        self._active: Set[int] = set()

    @property
    def active_watches(self) -> Set[int]:
        return set(self._active)

    def fail_with(self, code: Optional[str]) -> None:
        """Make one-shot requests fail with ``code`` (None to recover)"""
        self.error_code = code

    async def get_current_position(
        self, high_accuracy: bool = True, timeout_ms: int = 15000, maximum_age_ms: int = 0
    ) -> Position:
        self.requests.append({"high_accuracy": high_accuracy, "timeout_ms": timeout_ms, "maximum_age_ms": maximum_age_ms})
        if self.error_code:
            raise GeolocationError(self.error_code)
        if self.position is None:
            raise GeolocationError(GeolocationError.POSITION_UNAVAILABLE)
        return self.position

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        high_accuracy: bool = True,
        timeout_ms: int = 30000,
        maximum_age_ms: int = 5000,
    ) -> int:
        handle = next(self._handles)
        self._watchers[handle] = (on_position, on_error)
        self._active.add(handle)
        return handle

    def clear_watch(self, handle: int) -> None:
        self._active.discard(handle)

    def push(self, position: Position) -> None:
        """New fix for every active watch"""
        self.position = position
        for handle in sorted(self._active):
            self.deliver(handle, position)

    def push_error(self, code: str) -> None:
        for handle in sorted(self._active):
            self._watchers[handle][1](GeolocationError(code))

    def deliver(self, handle: int, position: Position) -> None:
        """Invoke the callback registered under ``handle``, even after it was cleared"""
        self._watchers[handle][0](position)


class StaticBattery:
    def __init__(self, level: int = 100):
        self._level = level

    def set_level(self, level: int) -> None:
        self._level = level

    async def level(self) -> int:
        return self._level


class LoggingNotifier:
    async def notify(self, title: str, body: str, require_interaction: bool = False) -> None:
        logger.info(f"[notification] {title}: {body}")
