"""Session Hub service modules."""

__all__ = [
    "auth_service",
    "change_event_service",
    "confirmation_service",
    "event_service",
    "phase_service",
    "repo_creator_service",
    "session_service",
    "user_service",
]
