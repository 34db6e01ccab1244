from __future__ import annotations

import logging
import time
from typing import Any

from session_core.errors import InvalidSessionError, NotAuthenticatedError, typed_error_payload
from session_core.logging import log_extra
from session_hub.domains.auth_domain import AuthState
from session_hub.domains.session_context import SessionContext
from session_hub.services.event_service import EVENT_TYPE_SESSION_ERROR, EVENT_TYPE_SESSION_READY, EventService


LOGGER = logging.getLogger("session_hub.session")


class SessionOrchestrator:
    """Sequences post-login setup and marks the session authenticated.

    Steps run strictly in order: user model creation, phase/session setup
    (which may provision the phase repository), then latest-change-event
    capture. It starts only once the OAuth user is confirmed. The first
    failure discards partial results, reverts the auth state and is re-raised.
    """

    def __init__(
        self,
        *,
        context: SessionContext,
        auth_service: Any,
        user_service: Any,
        phase_service: Any,
        change_event_service: Any,
        events: EventService,
    ) -> None:
        self._context = context
        self._auth_service = auth_service
        self._user_service = user_service
        self._phase_service = phase_service
        self._change_event_service = change_event_service
        self._events = events

    def setup_session(self, session_info: Any) -> str:
        session_data = self._phase_service.store_session_data(session_info)
        LOGGER.info(
            "Session selected org=%s data_repo=%s",
            session_data.org,
            session_data.data_repo,
            extra=log_extra("session", "setup_session", "stored", session_id=self._context.session_id),
        )
        return self._auth_service.start_oauth_process()

    def _require_confirmed_oauth_user(self, login_id: str) -> str:
        """Return the login confirmed by the OAuth user lookup.

        Login completion is only legal from ConfirmOAuthUser with a stored
        token; a caller-supplied login must match the confirmed one.
        """
        auth = self._context.auth
        oauth_login = self._context.oauth_login
        if not (auth.is_awaiting_oauth_user_confirm() and self._context.token_store.has_token() and oauth_login):
            raise NotAuthenticatedError(
                f"Cannot complete login from state {auth.current_state.value} without a confirmed OAuth user."
            )
        requested = str(login_id or "").strip()
        if requested and requested.lower() != oauth_login.lower():
            raise NotAuthenticatedError(f"Login {requested} does not match the signed-in account.")
        return oauth_login

    async def complete_login_process(self, login_id: str = "") -> dict[str, Any]:
        started = time.monotonic()
        try:
            login = self._require_confirmed_oauth_user(login_id)
        except NotAuthenticatedError as exc:
            LOGGER.warning(
                "Rejected login completion: %s",
                str(exc),
                extra=log_extra(
                    "session",
                    "complete_login",
                    "rejected",
                    session_id=self._context.session_id,
                    error_class=exc.error_code,
                ),
            )
            raise
        session_data = self._context.session_data
        self._context.auth.transition(AuthState.AWAITING_AUTHENTICATION, reason="login_started")
        try:
            if session_data is None:
                raise InvalidSessionError("No session has been selected.")
            self._phase_service.set_phase_owners(session_data.org, login)
            await self._user_service.create_user_model(login)
            await self._phase_service.session_setup()
            await self._change_event_service.set_latest_change_event()
        except Exception as exc:
            self._discard_partial_login()
            self._context.auth.reset(reason="login_failed")
            payload = typed_error_payload(exc) or {"error_code": "INTERNAL_ERROR", "detail": str(exc)}
            self._events.emit(EVENT_TYPE_SESSION_ERROR, {"operation": "complete_login", **payload})
            LOGGER.info(
                "Completion of login process failed with an error: %s",
                str(exc),
                extra=log_extra(
                    "session",
                    "complete_login",
                    "failed",
                    session_id=self._context.session_id,
                    error_class=str(payload.get("error_code") or type(exc).__name__),
                    duration_ms=int((time.monotonic() - started) * 1000),
                ),
            )
            raise

        return self._handle_auth_success(started)

    def _discard_partial_login(self) -> None:
        self._user_service.reset()
        self._change_event_service.reset()
        self._context.phase_owners = {}

    def _handle_auth_success(self, started: float) -> dict[str, Any]:
        self._context.window_title = self._phase_service.title_with_phase_detail()
        self._context.route = self._phase_service.entry_point()
        self._context.auth.transition(AuthState.AUTHENTICATED, reason="login_completed")
        payload = self._context.payload()
        self._events.emit(EVENT_TYPE_SESSION_READY, payload)
        LOGGER.info(
            "Successfully completed login process",
            extra=log_extra(
                "session",
                "complete_login",
                "success",
                session_id=self._context.session_id,
                phase=self._phase_service.current_phase.value,
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )
        return payload
