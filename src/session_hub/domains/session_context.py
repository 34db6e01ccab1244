from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from session_core.errors import ConfigError
from session_hub.domains.auth_domain import AuthStateMachine
from session_hub.store.token_store import TokenStore


class Phase(str, Enum):
    BUG_REPORTING = "phaseBugReporting"
    TEAM_RESPONSE = "phaseTeamResponse"
    TESTER_RESPONSE = "phaseTesterResponse"
    MODERATION = "phaseModeration"

    @property
    def description(self) -> str:
        return PHASE_DESCRIPTIONS[self]


PHASE_DESCRIPTIONS = {
    Phase.BUG_REPORTING: "Bug Reporting Phase",
    Phase.TEAM_RESPONSE: "Team's Response Phase",
    Phase.TESTER_RESPONSE: "Tester's Response Phase",
    Phase.MODERATION: "Moderation Phase",
}


class UserRole(str, Enum):
    STUDENT = "Student"
    TUTOR = "Tutor"
    ADMIN = "Admin"


def parse_phase(raw_value: Any, *, label: str = "phase") -> Phase:
    value = str(raw_value or "").strip()
    for phase in Phase:
        if value == phase.value or value.lower() == phase.name.lower():
            return phase
    supported = ", ".join(phase.value for phase in Phase)
    raise ConfigError(f"{label} must be one of: {supported}.")


def parse_user_role(raw_value: Any, *, label: str = "role") -> UserRole:
    value = str(raw_value or "").strip().lower()
    for role in UserRole:
        if value == role.value.lower():
            return role
    supported = ", ".join(role.value for role in UserRole)
    raise ConfigError(f"{label} must be one of: {supported}.")


@dataclass(frozen=True)
class User:
    login_id: str
    role: UserRole


@dataclass(frozen=True)
class SessionData:
    org: str
    data_repo: str


@dataclass(frozen=True)
class ChangeEvent:
    event_id: str = ""
    last_modified: str = ""


@dataclass
class SessionContext:
    """Explicitly owned per-session state shared by reference between components."""

    token_store: TokenStore = field(default_factory=TokenStore)
    auth: AuthStateMachine = field(default_factory=AuthStateMachine)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    oauth_login: str = ""
    user: User | None = None
    session_data: SessionData | None = None
    phase_owners: dict[Phase, str] = field(default_factory=dict)
    latest_change_event: ChangeEvent | None = None
    window_title: str = ""
    route: str = ""

    def clear_session(self) -> None:
        self.oauth_login = ""
        self.user = None
        self.session_data = None
        self.phase_owners = {}
        self.latest_change_event = None
        self.window_title = ""
        self.route = ""

    def payload(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "auth_state": self.auth.current_state.value,
            "oauth_login": self.oauth_login,
            "user": (
                {"login_id": self.user.login_id, "role": self.user.role.value} if self.user is not None else None
            ),
            "session": (
                {"org": self.session_data.org, "data_repo": self.session_data.data_repo}
                if self.session_data is not None
                else None
            ),
            "window_title": self.window_title,
            "route": self.route,
        }
