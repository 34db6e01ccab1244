from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from session_core.logging import log_extra


LOGGER = logging.getLogger("session_hub.store")

TokenListener = Callable[[str], None]


class TokenStore:
    """Sole owner of the OAuth access token.

    Listeners are notified with the new value on every store and with an
    empty string on clear. The token itself never appears in log output.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._token = ""
        self._listeners: list[TokenListener] = []

    @property
    def token(self) -> str:
        with self._lock:
            return self._token

    def has_token(self) -> bool:
        return bool(self.token)

    def store(self, token: str) -> None:
        value = str(token or "").strip()
        with self._lock:
            self._token = value
        LOGGER.info(
            "Access token updated present=%s",
            bool(value),
            extra=log_extra("token_store", "store", "stored" if value else "empty"),
        )
        self._notify(value)

    def clear(self) -> None:
        with self._lock:
            had_token = bool(self._token)
            self._token = ""
        LOGGER.info(
            "Access token cleared had_token=%s",
            had_token,
            extra=log_extra("token_store", "clear", "cleared"),
        )
        self._notify("")

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, value: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(value)
            except Exception as exc:
                LOGGER.warning(
                    "Token listener failed error_type=%s",
                    type(exc).__name__,
                    extra=log_extra("token_store", "notify", "listener_error", error_class=type(exc).__name__),
                )
