from __future__ import annotations

import logging
import queue
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable


LOGGER = logging.getLogger("session_hub.events")

EVENT_QUEUE_MAX = 256
EVENT_TYPE_SNAPSHOT = "snapshot"
EVENT_TYPE_AUTH_STATE_CHANGED = "auth_state_changed"
EVENT_TYPE_SESSION_ERROR = "session_error"
EVENT_TYPE_SESSION_READY = "session_ready"
EVENT_TYPE_REPO_CONFIRMATION_REQUESTED = "repo_creation_confirmation_requested"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class EventService:
    def __init__(self, *, snapshot: Callable[[], dict[str, Any]] | None = None) -> None:
        self._lock = Lock()
        self._listeners: set[queue.Queue[dict[str, Any] | None]] = set()
        self._snapshot = snapshot or dict

    def attach_events(self) -> queue.Queue[dict[str, Any] | None]:
        listener: queue.Queue[dict[str, Any] | None] = queue.Queue(maxsize=EVENT_QUEUE_MAX)
        with self._lock:
            self._listeners.add(listener)
        return listener

    def detach_events(self, listener: queue.Queue[dict[str, Any] | None]) -> None:
        with self._lock:
            self._listeners.discard(listener)

    @staticmethod
    def queue_put(listener: queue.Queue[dict[str, Any] | None], value: dict[str, Any] | None) -> None:
        try:
            listener.put_nowait(value)
            return
        except queue.Full:
            pass

        try:
            listener.get_nowait()
        except queue.Empty:
            return

        try:
            listener.put_nowait(value)
        except queue.Full:
            return

    def emit(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        event = {"type": str(event_type), "payload": payload or {}, "sent_at": _iso_now()}
        with self._lock:
            listeners = list(self._listeners)
        LOGGER.debug("Emitting session event type=%s listeners=%d", event_type, len(listeners))
        for listener in listeners:
            self.queue_put(listener, event)

    def events_snapshot(self) -> dict[str, Any]:
        return {"type": EVENT_TYPE_SNAPSHOT, "payload": self._snapshot(), "sent_at": _iso_now()}
