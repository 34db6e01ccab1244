from __future__ import annotations

import logging
from enum import Enum
from threading import Lock
from typing import Callable

from session_core.logging import log_extra


LOGGER = logging.getLogger("session_hub.auth")


class AuthState(str, Enum):
    NOT_AUTHENTICATED = "NotAuthenticated"
    AWAITING_AUTHENTICATION = "AwaitingAuthentication"
    CONFIRM_OAUTH_USER = "ConfirmOAuthUser"
    AUTHENTICATED = "Authenticated"


AuthStateListener = Callable[[AuthState], None]


class AuthStateMachine:
    """Holds the single live AuthState and publishes every transition.

    The machine does not guard edges: whatever state it is told to enter is
    stored. Callers decide which transitions are legal; a reset to
    NOT_AUTHENTICATED is accepted from any state.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._state = AuthState.NOT_AUTHENTICATED
        self._listeners: list[AuthStateListener] = []

    @property
    def current_state(self) -> AuthState:
        with self._lock:
            return self._state

    def transition(self, next_state: AuthState, *, reason: str = "") -> None:
        resolved = AuthState(next_state)
        with self._lock:
            previous = self._state
            self._state = resolved
            listeners = list(self._listeners)
        LOGGER.info(
            "Auth state transition from=%s to=%s reason=%s",
            previous.value,
            resolved.value,
            reason or "unspecified",
            extra=log_extra("auth", "transition", resolved.value),
        )
        for listener in listeners:
            self._call_listener(listener, resolved)

    def reset(self, *, reason: str = "") -> None:
        self.transition(AuthState.NOT_AUTHENTICATED, reason=reason)

    def subscribe(self, listener: AuthStateListener) -> Callable[[], None]:
        """Register ``listener`` and immediately replay the current state to it."""
        with self._lock:
            self._listeners.append(listener)
            current = self._state

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        self._call_listener(listener, current)
        return unsubscribe

    def is_authenticated(self) -> bool:
        return self.current_state is AuthState.AUTHENTICATED

    def is_awaiting_authentication(self) -> bool:
        return self.current_state is AuthState.AWAITING_AUTHENTICATION

    def is_awaiting_oauth_user_confirm(self) -> bool:
        return self.current_state is AuthState.CONFIRM_OAUTH_USER

    def is_not_authenticated(self) -> bool:
        return self.current_state is AuthState.NOT_AUTHENTICATED

    @staticmethod
    def _call_listener(listener: AuthStateListener, state: AuthState) -> None:
        try:
            listener(state)
        except Exception as exc:
            LOGGER.warning(
                "Auth state listener failed state=%s error_type=%s",
                state.value,
                type(exc).__name__,
                extra=log_extra("auth", "notify", "listener_error", error_class=type(exc).__name__),
            )
