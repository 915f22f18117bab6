"""
Location pipeline of a child session.

``update_once`` takes a single high-accuracy fix and raises on any failure.
``start`` opens the one device watch a session may hold; each fix appends
a history row and moves the member row, and write failures there are only
logged so the watch keeps running. The member row's ``gps_enabled`` flag
is the only switch: ``reconcile`` starts or stops the watch to match it.
Fixes delivered for a watch that has since been replaced or cleared are
dropped.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Set

from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError, GeolocationError
from familysafe.core.geo import distance_in_meters
from familysafe.modules.alerts.service import AlertService
from familysafe.modules.members.schemas import Destination, MemberRow
from familysafe.modules.members.service import MemberService
from familysafe.session.devices import Battery, Geolocation, Position

logger = logging.getLogger(__name__)


class LocationTracker:
    def __init__(
        self,
        geolocation: Geolocation,
        members: MemberService,
        member_id: str,
        member_name: str = "",
        alerts: Optional[AlertService] = None,
        battery: Optional[Battery] = None,
        on_error: Optional[Callable[[GeolocationError], Any]] = None,
    ):
        self.geolocation = geolocation
        self.members = members
        self.member_id = member_id
        self.member_name = member_name
        self.alerts = alerts
        self.battery = battery
        self.on_error = on_error
        self.destination: Optional[Destination] = None
        self._handle: Optional[int] = None
        self._generation = 0
        self._arrived: Set[str] = set()
        self._writes: Set[asyncio.Task] = set()

    @property
    def watching(self) -> bool:
        return self._handle is not None

    async def update_once(self) -> MemberRow:
        position = await self.geolocation.get_current_position(
            high_accuracy=True,
            timeout_ms=settings.location_once_timeout_ms,
            maximum_age_ms=0,
        )
        row = await self._record(position)
        await self._check_arrival(position)
        return row

    def start(self) -> bool:
        """Open the device watch; False when one is already open"""
        if self._handle is not None:
            logger.debug(f"Already watching location for member {self.member_id}")
            return False
        self._generation += 1
        generation = self._generation
        self._handle = self.geolocation.watch_position(
            lambda position: self._on_position(generation, position),
            lambda error: self._on_error(generation, error),
            high_accuracy=True,
            timeout_ms=settings.location_watch_timeout_ms,
            maximum_age_ms=settings.location_watch_max_age_ms,
        )
        logger.info(f"Started location watch {self._handle} for member {self.member_id}")
        return True

    def stop(self) -> bool:
        handle, self._handle = self._handle, None
        self._generation += 1
        if handle is None:
            return False
        self.geolocation.clear_watch(handle)
        logger.info(f"Stopped location watch {handle} for member {self.member_id}")
        return True

    def reconcile(self, gps_enabled: bool) -> None:
        """Make the device watch follow the member row's gps_enabled flag"""
        if gps_enabled and not self.watching:
            self.start()
        elif not gps_enabled and self.watching:
            self.stop()

    def set_destination(self, destination: Optional[Destination]) -> None:
        self.destination = destination

    async def drain(self) -> None:
        """Wait for the writes of fixes already received"""
        while self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    def _on_position(self, generation: int, position: Position) -> None:
        if generation != self._generation or self._handle is None:
            logger.debug(f"Dropping fix from a cleared watch for member {self.member_id}")
            return
        task = asyncio.ensure_future(self._record_from_watch(position))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    def _on_error(self, generation: int, error: GeolocationError) -> None:
        if generation != self._generation:
            return
        logger.warning(f"Location watch error for member {self.member_id}: {error.code}")
        if error.code == GeolocationError.PERMISSION_DENIED:
            self.stop()
        if self.on_error is not None:
            self.on_error(error)

    async def _record_from_watch(self, position: Position) -> None:
        try:
            await self._record(position)
            await self._check_arrival(position)
        except FamilySafeError as e:
            logger.error(f"Failed to save tracked location for member {self.member_id}: {e}")

    async def _record(self, position: Position) -> MemberRow:
        return await self.members.record_location(
            self.member_id,
            position.latitude,
            position.longitude,
            battery=await self._battery_level(),
        )

    async def _battery_level(self) -> Optional[int]:
        if self.battery is None:
            return None
        try:
            return await self.battery.level()
        except Exception as e:
            logger.warning(f"Battery level unavailable: {e}")
            return None

    async def _check_arrival(self, position: Position) -> bool:
        """One arrival alert per activated destination"""
        destination = self.destination
        if destination is None or self.alerts is None:
            return False
        key = destination.id or f"{destination.name}@{destination.lat},{destination.lng}"
        if key in self._arrived:
            return False
        distance = distance_in_meters(position.latitude, position.longitude, destination.lat, destination.lng)
        if distance > settings.arrival_radius_m:
            return False
        self._arrived.add(key)
        await self.alerts.send_arrival(self.member_id, self.member_name, destination)
        return True
