"""
One signed-in user's client runtime.

``FamilySession`` follows the Supabase auth state, loads the profile and
roster, opens the realtime channels the role needs and runs the presence
heartbeat and battery monitor. Everything it starts is torn down by
``disconnect`` (or ``logout``, which also signs out).
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import FamilySafeError, NotFoundError, require
from familysafe.database.realtime import Binding, ChangeEvent, RealtimeHub
from familysafe.modules.alerts.schemas import AlertResponse
from familysafe.modules.alerts.service import AlertService
from familysafe.modules.auth.schemas import CompleteProfileRequest
from familysafe.modules.auth.service import AuthService
from familysafe.modules.family.service import FamilyGraph, FamilyService
from familysafe.modules.groups.service import GroupService
from familysafe.modules.members.schemas import MemberRow, MemberView
from familysafe.modules.members.service import MemberService, to_member_view
from familysafe.modules.messages.service import MessageService
from familysafe.modules.presence.service import PresenceService
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.profiles.service import ProfileService
from familysafe.modules.roster.service import RosterLoader
from familysafe.session.alerts import AlertFeed
from familysafe.session.conversations import DirectConversation, GroupConversation
from familysafe.session.devices import Battery, Geolocation, Notifier
from familysafe.session.location import LocationTracker
from familysafe.session.presence import PresenceBoard, PresenceTracker
from familysafe.session.screens import Screen, ScreenRouter, ScreenState, dashboard_for, initial_screen

logger = logging.getLogger(__name__)

MESSAGE_TITLE = "New message"


class FamilySession:
    def __init__(
        self,
        supabase: AsyncClient,
        geolocation: Optional[Geolocation] = None,
        battery: Optional[Battery] = None,
        notifier: Optional[Notifier] = None,
        router: Optional[ScreenRouter] = None,
        on_error: Optional[Callable[[FamilySafeError], Any]] = None,
    ):
        self.supabase = supabase
        self.geolocation = geolocation
        self.battery = battery
        self.notifier = notifier
        self.router = router
        self.on_error = on_error

        self.auth = AuthService(supabase)
        self.profiles = ProfileService(supabase)
        self.family = FamilyService(supabase)
        self.member_service = MemberService(supabase)
        self.alert_service = AlertService(supabase)
        self.message_service = MessageService(supabase)
        self.group_service = GroupService(supabase)
        self.presence_service = PresenceService(supabase)
        self.roster = RosterLoader(supabase)
        self.hub = RealtimeHub(supabase)

        self.screen = ScreenState(Screen.LOGIN)
        self.user_id: Optional[str] = None
        self.email: Optional[str] = None
        self.profile: Optional[ProfileResponse] = None
        self.members: List[MemberView] = []
        self.parents: List[ProfileResponse] = []
        self.alerts: Optional[AlertFeed] = None
        self.presence: Optional[PresenceTracker] = None
        self.location: Optional[LocationTracker] = None
        self.conversations: Dict[str, DirectConversation] = {}
        self.group: Optional[GroupConversation] = None
        self.group_presence: Optional[PresenceBoard] = None

        self._battery_task: Optional[asyncio.Task] = None
        self._auth_subscription = None
        self._tasks: Set[asyncio.Task] = set()
        self._start_lock = asyncio.Lock()

    # Lifecycle

    @property
    def started(self) -> bool:
        return self.profile is not None

    @property
    def own_member(self) -> Optional[MemberView]:
        if self.profile is None or not self.profile.is_child:
            return None
        return next((m for m in self.members if m.user_id == self.profile.id), None)

    async def connect(self, fragment: Optional[str] = None) -> ScreenState:
        """Show the first screen, follow auth changes and resume an existing session"""
        if self.router is not None:
            self._show_state(self.router.boot(fragment))
        else:
            self.show(initial_screen(fragment))
        self.bind_auth()
        session = await self.supabase.auth.get_session()
        if session is not None and session.user is not None:
            await self.start(session.user.id, session.user.email)
        return self.screen

    def bind_auth(self) -> None:
        if self._auth_subscription is None:
            self._auth_subscription = self.supabase.auth.on_auth_state_change(self._on_auth_change)

    def _on_auth_change(self, event, session) -> None:
        user = getattr(session, "user", None)
        if user is not None:
            if user.id != self.user_id:
                self._spawn(self.start(user.id, user.email))
        elif self.user_id is not None:
            logger.info(f"Auth state {event}: signed out")
            self._spawn(self.stop())

    async def start(self, user_id: str, email: Optional[str] = None) -> ScreenState:
        """Start the session for ``user_id``; a second start for the signed-in user is a no-op."""
        async with self._start_lock:
            if user_id == self.user_id and self.profile is not None:
                return self.screen
            if self.user_id is not None and self.user_id != user_id:
                await self._teardown()
            self.user_id = user_id
            self.email = email
            try:
                profile = await self.profiles.find_profile(user_id)
            except NotFoundError:
                profile = None
            except FamilySafeError as e:
                self._report(e)
                return self.show(Screen.LOGIN)
            if profile is None:
                return self.show(Screen.ROLE_SELECTION)
            await self._enter(profile)
            return self.screen

    async def complete_profile(self, name: str, role: str, phone: Optional[str] = None) -> ProfileResponse:
        """Role selection for a signed-in user without a profile"""
        require(bool(self.user_id), "Sign in first")
        require(bool(name and name.strip()), "Name is required")
        require(role in ("parent", "child"), "Role must be parent or child", role=role)
        profile = await self.auth.complete_profile(
            self.user_id, self.email, CompleteProfileRequest(name=name, role=role, phone=phone)
        )
        await self._enter(profile)
        return profile

    async def _enter(self, profile: ProfileResponse) -> None:
        await self._stop_devices()
        self.profile = profile
        self.show(dashboard_for(profile.role))
        try:
            self.members = await self.roster.load(profile)
        except FamilySafeError as e:
            self.members = []
            self._report(e)

        if profile.is_parent:
            self.alerts = AlertFeed(self.alert_service, FamilyGraph(self.family, profile.id), self.notifier)
            await self.alerts.load()
            await self.hub.subscribe(f"alerts-{profile.id}", *self.alerts.bindings())
            await self._watch_children()
        else:
            await self._load_parents()
            await self.hub.subscribe(
                f"parents-{profile.id}",
                Binding("*", "parent_children", self._on_parent_link, filter=f"child_id=eq.{profile.id}"),
            )
            await self._start_child_devices()

        await self.hub.subscribe(
            f"inbox-{profile.id}",
            Binding("INSERT", "messages", self._on_incoming_message, filter=f"to_user_id=eq.{profile.id}"),
        )
        self.presence = PresenceTracker(self.presence_service, profile.id)
        await self.presence.start()
        self._start_battery_monitor()
        logger.info(f"Session started for {profile.role} {profile.id}")

    async def disconnect(self) -> None:
        await self._teardown()
        if self._auth_subscription is not None:
            try:
                self._auth_subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to unsubscribe from auth changes: {e}")
            self._auth_subscription = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Signed out elsewhere: tear down and return to login"""
        await self._teardown()
        self.show(Screen.LOGIN)

    async def logout(self) -> None:
        await self._teardown()
        await self.auth.logout()
        self.show(Screen.LOGIN)

    async def _teardown(self) -> None:
        await self._stop_devices()
        await self.hub.close()
        self.user_id = None
        self.email = None
        self.profile = None
        self.members = []
        self.parents = []
        self.alerts = None
        self.conversations = {}
        self.group = None
        self.group_presence = None

    async def _stop_devices(self) -> None:
        if self.presence is not None:
            await self.presence.stop()
            self.presence = None
        if self._battery_task is not None:
            self._battery_task.cancel()
            try:
                await self._battery_task
            except asyncio.CancelledError:
                pass
            self._battery_task = None
        if self.location is not None:
            self.location.stop()
            self.location = None

    # Visibility

    async def set_visible(self, visible: bool) -> None:
        """Tab shown or hidden; hidden pushes offline and pauses the heartbeat"""
        if self.presence is not None:
            await self.presence.set_visible(visible)

    def unload(self) -> Optional[asyncio.Task]:
        """Page unload: fire the offline beacon without waiting for it"""
        if self.presence is None:
            return None
        return self.presence.beacon()

    # Screens

    def show(self, screen: Screen, group_id: Optional[str] = None) -> ScreenState:
        return self._show_state(ScreenState(screen, group_id))

    def _show_state(self, state: ScreenState) -> ScreenState:
        self.screen = state.resolved()
        if self.router is not None:
            self.router.navigate(self.screen.screen, self.screen.group_id)
        return self.screen

    def home(self) -> ScreenState:
        if self.profile is None:
            return self.show(Screen.LOGIN)
        return self.show(dashboard_for(self.profile.role))

    # Family

    async def refresh_roster(self) -> List[MemberView]:
        if self.profile is not None:
            self.members = await self.roster.load(self.profile)
        return self.members

    async def _watch_children(self) -> None:
        member_ids = [m.id for m in self.members]
        if not member_ids:
            await self.hub.unsubscribe(f"members-{self.user_id}")
            return
        await self.hub.subscribe(
            f"members-{self.user_id}",
            Binding("UPDATE", "members", self._on_member_update, filter=f"id=in.({','.join(member_ids)})"),
        )

    async def add_child(self, child_id: str):
        link = await self.family.add_child(self.user_id, child_id)
        if self.alerts is not None:
            self.alerts.graph.invalidate()
        await self.refresh_roster()
        await self._watch_children()
        return link

    async def set_gps_enabled(self, member_id: str, enabled: bool) -> MemberRow:
        """Parent remote control of a child's continuous tracking"""
        row = await self.member_service.set_gps_enabled(member_id, enabled)
        self._merge_member(row)
        return row

    def _on_member_update(self, event: ChangeEvent) -> None:
        if event.new.get("id"):
            self._merge_member(MemberRow(**event.new))

    def _merge_member(self, row: MemberRow) -> Optional[MemberView]:
        for index, view in enumerate(self.members):
            if view.id == row.id:
                fresh = to_member_view(row)
                merged = view.model_copy(update={
                    "status": fresh.status,
                    "location": fresh.location,
                    "battery": fresh.battery,
                    "last_update": fresh.last_update,
                    "gps_active": fresh.gps_active,
                })
                self.members[index] = merged
                return merged
        return None

    async def _load_parents(self) -> None:
        try:
            self.parents = await self.family.list_parents(self.user_id)
        except FamilySafeError as e:
            logger.error(f"Failed to load parents of {self.user_id}: {e}")
            self.parents = []

    async def _on_parent_link(self, event: ChangeEvent) -> None:
        await self._load_parents()

    # Child devices

    async def _start_child_devices(self) -> None:
        member = self.own_member
        if member is None:
            return
        if self.geolocation is not None:
            self.location = LocationTracker(
                self.geolocation,
                self.member_service,
                member.id,
                member_name=member.name,
                alerts=self.alert_service,
                battery=self.battery,
                on_error=self._report,
            )
            self.location.set_destination(member.destination)
            self.location.reconcile(member.gps_active)
        await self.hub.subscribe(
            f"member-{member.id}",
            Binding("UPDATE", "members", self._on_own_member_update, filter=f"id=eq.{member.id}"),
            Binding("*", "destinations", self._on_destination_change, filter=f"member_id=eq.{member.id}"),
        )

    def _on_own_member_update(self, event: ChangeEvent) -> None:
        if not event.new.get("id"):
            return
        self._merge_member(MemberRow(**event.new))
        if self.location is not None and "gps_enabled" in event.new:
            self.location.reconcile(bool(event.new["gps_enabled"]))

    async def _on_destination_change(self, event: ChangeEvent) -> None:
        member = self.own_member
        if member is None:
            return
        try:
            destination = await self.member_service.get_active_destination(member.id)
        except FamilySafeError as e:
            logger.error(f"Failed to reload destination of member {member.id}: {e}")
            return
        self._replace_view(member.model_copy(update={"destination": destination}))
        if self.location is not None:
            self.location.set_destination(destination)

    def _replace_view(self, view: MemberView) -> None:
        self.members = [view if m.id == view.id else m for m in self.members]

    async def update_location_once(self) -> MemberRow:
        require(self.location is not None, "Location is not available on this device")
        row = await self.location.update_once()
        self._merge_member(row)
        return row

    async def send_sos(self) -> AlertResponse:
        member = await self._own_member_row()
        alert = await self.alert_service.send_sos(member, self.profile.name)
        self._merge_member(member.model_copy(update={"status": "danger"}))
        return alert

    async def send_lost_alert(self) -> AlertResponse:
        """Lost alert with the last known address, then keep tracking"""
        member = await self._own_member_row()
        alert = await self.alert_service.send_lost(member, self.profile.name)
        self._merge_member(member.model_copy(update={"status": "warning"}))
        if self.location is not None and not self.location.watching:
            self.location.start()
        return alert

    async def _own_member_row(self) -> MemberRow:
        member = self.own_member
        require(member is not None, "Member profile is not loaded")
        return await self.member_service.get_member(member.id)

    def _start_battery_monitor(self) -> None:
        if self.battery is None or self._battery_task is not None:
            return
        self._battery_task = asyncio.create_task(self._battery_loop())

    async def _battery_loop(self) -> None:
        while True:
            await self.check_battery()
            await asyncio.sleep(settings.battery_poll_interval_sec)

    async def check_battery(self) -> Optional[int]:
        try:
            level = await self.battery.level()
        except Exception as e:
            logger.warning(f"Battery level unavailable: {e}")
            return None
        member = self.own_member
        if member is not None:
            try:
                self._merge_member(await self.member_service.update_battery(member.id, level))
            except FamilySafeError as e:
                logger.error(f"Failed to save battery level of member {member.id}: {e}")
        return level

    # Messaging

    async def open_conversation(self, other_user_id: str) -> DirectConversation:
        conversation = DirectConversation(self.message_service, self.user_id, other_user_id)
        await conversation.load()
        self.conversations[other_user_id] = conversation
        await self.hub.subscribe(f"direct-{self.user_id}-{other_user_id}", *conversation.bindings())
        return conversation

    async def close_conversation(self, other_user_id: str) -> None:
        self.conversations.pop(other_user_id, None)
        await self.hub.unsubscribe(f"direct-{self.user_id}-{other_user_id}")

    async def _on_incoming_message(self, event: ChangeEvent) -> None:
        row = event.new
        sender_id = row.get("from_user_id")
        if not sender_id or sender_id == self.user_id or self.notifier is None:
            return
        sender_name = "Unknown"
        try:
            profile = await self.profiles.find_profile(sender_id)
            if profile is not None:
                sender_name = profile.name
        except FamilySafeError as e:
            logger.warning(f"Failed to load sender profile {sender_id}: {e}")
        try:
            await self.notifier.notify(MESSAGE_TITLE, f"{sender_name}: {row.get('text', '')}")
        except Exception as e:
            logger.warning(f"Message notification failed: {e}")

    async def open_group(self, group_id: str) -> GroupConversation:
        """Enter a group chat: messages, read receipts and member presence"""
        await self.group_service.require_member(group_id, self.user_id)
        if self.group is not None:
            await self.close_group()
        conversation = GroupConversation(
            self.group_service,
            group_id,
            self.user_id,
            user_name=self.profile.name if self.profile else None,
            avatar_url=self.profile.avatar_url if self.profile else None,
        )
        await conversation.load()
        self.group = conversation
        await self.hub.subscribe(f"group-{group_id}", *conversation.bindings())

        self.group_presence = PresenceBoard(self.presence_service)
        await self.group_presence.load(await self.group_service.member_ids(group_id))
        bindings = self.group_presence.bindings()
        if bindings:
            await self.hub.subscribe(f"presence-{group_id}", *bindings)
        self.show(Screen.GROUP_CHAT, group_id)
        return conversation

    async def close_group(self) -> ScreenState:
        if self.group is not None:
            await self.hub.unsubscribe(f"group-{self.group.group_id}")
            await self.hub.unsubscribe(f"presence-{self.group.group_id}")
        self.group = None
        self.group_presence = None
        return self.show(Screen.GROUP_LIST)

    # Errors

    def _report(self, error: FamilySafeError) -> None:
        logger.warning(f"{error.kind.value}: {error.message}")
        if self.on_error is not None:
            self.on_error(error)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, FamilySafeError):
            self._report(exc)
        elif exc is not None:
            logger.error(f"Session task failed: {exc!r}")
