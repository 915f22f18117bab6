from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Mapping, Optional, TypeVar

from familysafe.config.settings import settings

T = TypeVar("T")

REGISTER_FRAGMENT = "#register"


class Screen(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    QR_REGISTER = "qr_register"
    ROLE_SELECTION = "role_selection"
    PARENT_DASHBOARD = "parent_dashboard"
    CHILD_DASHBOARD = "child_dashboard"
    ADD_CHILD = "add_child"
    PROFILE = "profile"
    GROUP_LIST = "group_list"
    CREATE_GROUP = "create_group"
    GROUP_CHAT = "group_chat"


@dataclass(frozen=True)
class ScreenState:
    screen: Screen
    group_id: Optional[str] = None

    def resolved(self) -> "ScreenState":
        """Group chat needs a selected group; without one the group list is shown"""
        if self.screen is Screen.GROUP_CHAT and not self.group_id:
            return ScreenState(Screen.GROUP_LIST)
        if self.screen is not Screen.GROUP_CHAT and self.group_id:
            return ScreenState(self.screen)
        return self


def dashboard_for(role: str) -> Screen:
    return Screen.PARENT_DASHBOARD if role == "parent" else Screen.CHILD_DASHBOARD


def initial_screen(fragment: Optional[str] = None) -> Screen:
    if fragment and fragment.strip().lower() in (REGISTER_FRAGMENT, REGISTER_FRAGMENT[1:]):
        return Screen.REGISTER
    return Screen.LOGIN


def registration_url(base_url: Optional[str] = None) -> str:
    """Link encoded in the registration QR code"""
    return f"{(base_url or settings.public_base_url).rstrip('/')}/{REGISTER_FRAGMENT}"


class ScreenRouter(Generic[T]):
    """Current screen plus one handler per screen; every screen must be handled."""

    def __init__(self, handlers: Mapping[Screen, Callable[[ScreenState], T]]):
        missing = [screen.value for screen in Screen if screen not in handlers]
        if missing:
            raise ValueError(f"Missing screen handlers: {', '.join(missing)}")
        self.handlers = dict(handlers)
        self.state = ScreenState(Screen.LOGIN)
        self._fragment_consumed = False

    @property
    def screen(self) -> Screen:
        return self.state.screen

    def boot(self, fragment: Optional[str] = None) -> ScreenState:
        """Pick the first screen; the URL fragment only counts the first time"""
        if self._fragment_consumed:
            fragment = None
        self._fragment_consumed = True
        return self.navigate(initial_screen(fragment))

    def navigate(self, screen: Screen, group_id: Optional[str] = None) -> ScreenState:
        self.state = ScreenState(Screen(screen), group_id).resolved()
        return self.state

    def render(self) -> T:
        return self.handlers[self.state.screen](self.state)
