from __future__ import annotations

import asyncio
import logging
from typing import Any

from session_core.logging import log_extra
from session_hub.services.event_service import EVENT_TYPE_REPO_CONFIRMATION_REQUESTED, EventService


LOGGER = logging.getLogger("session_hub.confirmation")


class RepoConfirmationPrompt:
    """Asks the connected client whether a missing repository may be created.

    Calling the prompt emits a confirmation request event and suspends until
    ``answer()`` resolves it. Only one prompt is outstanding at a time.
    """

    def __init__(self, *, events: EventService) -> None:
        self._events = events
        self._pending: asyncio.Future[bool] | None = None
        self._pending_request: dict[str, str] = {}

    async def __call__(self, login_id: str, repo_name: str) -> bool:
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(False)
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending = future
        self._pending_request = {"user": str(login_id or ""), "repo_name": str(repo_name or "")}
        self._events.emit(EVENT_TYPE_REPO_CONFIRMATION_REQUESTED, dict(self._pending_request))
        try:
            return bool(await future)
        finally:
            if self._pending is future:
                self._pending = None
                self._pending_request = {}

    def pending_payload(self) -> dict[str, Any]:
        if self._pending is None or self._pending.done():
            return {"pending": False}
        return {"pending": True, **self._pending_request}

    def answer(self, granted: bool) -> bool:
        pending = self._pending
        if pending is None or pending.done():
            return False
        pending.set_result(bool(granted))
        LOGGER.info(
            "Repository creation confirmation answered granted=%s",
            bool(granted),
            extra=log_extra("confirmation", "answer", "granted" if granted else "denied"),
        )
        return True

    def cancel(self) -> None:
        self.answer(False)
