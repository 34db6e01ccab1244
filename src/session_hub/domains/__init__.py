from session_hub.domains.auth_domain import AuthState, AuthStateMachine
from session_hub.domains.session_context import (
    ChangeEvent,
    Phase,
    SessionContext,
    SessionData,
    User,
    UserRole,
)

__all__ = [
    "AuthState",
    "AuthStateMachine",
    "ChangeEvent",
    "Phase",
    "SessionContext",
    "SessionData",
    "User",
    "UserRole",
]
