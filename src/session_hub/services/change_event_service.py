from __future__ import annotations

import logging
from typing import Any

from session_core.logging import log_extra
from session_hub.domains.session_context import ChangeEvent, SessionContext


LOGGER = logging.getLogger("session_hub.change_events")


class ChangeEventService:
    """Records the newest issue event of the phase repository at login time."""

    def __init__(self, *, context: SessionContext, client: Any, phase_service: Any) -> None:
        self._context = context
        self._client = client
        self._phase_service = phase_service

    async def set_latest_change_event(self) -> ChangeEvent:
        owner = self._phase_service.owner()
        repo_name = self._phase_service.repo_name()
        event, last_modified = await self._client.fetch_latest_issue_event(owner, repo_name)
        change_event = ChangeEvent(
            event_id=str((event or {}).get("id") or ""),
            last_modified=str(last_modified or ""),
        )
        self._context.latest_change_event = change_event
        LOGGER.info(
            "Captured latest change event owner=%s repo=%s event_id=%s",
            owner,
            repo_name,
            change_event.event_id or "none",
            extra=log_extra("change_events", "set_latest", "captured", session_id=self._context.session_id),
        )
        return change_event

    def reset(self) -> None:
        self._context.latest_change_event = None
