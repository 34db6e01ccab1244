from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Any

from session_core.config import OAuthConfig
from session_core.errors import TokenExchangeError, TypedSessionError, typed_error_payload
from session_core.logging import log_extra
from session_hub.domains.auth_domain import AuthState
from session_hub.domains.session_context import SessionContext
from session_hub.integrations.window_channel import CLOSE_MESSAGE, RedirectMessage, WindowChannel
from session_hub.services.event_service import EVENT_TYPE_SESSION_ERROR, EventService


LOGGER = logging.getLogger("session_hub.auth")

OAUTH_CALLBACK_PATH = "/auth/callback"


@dataclass(frozen=True)
class OAuthExchange:
    code: str
    state: str
    issued_at: float = field(default_factory=time.time)


class OAuthHandshakeCoordinator:
    """Drives the two-window authorization-code flow for one session.

    The main side consumes redirect messages from ``inbox``; the redirect
    handler (secondary side) posts into it through ``forward_redirect``.
    """

    def __init__(
        self,
        *,
        context: SessionContext,
        oauth_config: OAuthConfig,
        client: Any,
        user_service: Any,
        events: EventService,
        inbox: WindowChannel | None = None,
    ) -> None:
        self._context = context
        self._config = oauth_config
        self._client = client
        self._user_service = user_service
        self._events = events
        self.inbox = inbox or WindowChannel("main")
        self._expected_state = ""
        self._generation = 0

    @property
    def expected_state(self) -> str:
        return self._expected_state

    def _log_extra(self, operation: str, result: str, **fields: Any) -> dict[str, Any]:
        return log_extra("oauth", operation, result, session_id=self._context.session_id, **fields)

    def authorization_url(self, state: str) -> str:
        query = urllib.parse.urlencode(
            {
                "client_id": self._config.client_id,
                "redirect_uri": f"{self._config.origin}{OAUTH_CALLBACK_PATH}",
                "scope": " ".join(self._config.scopes),
                "state": state,
            }
        )
        return f"{self._config.authorize_url}?{query}"

    def start_oauth_process(self) -> str:
        self._generation += 1
        self._context.auth.transition(AuthState.AWAITING_AUTHENTICATION, reason="oauth_started")
        self._expected_state = secrets.token_urlsafe(24)
        LOGGER.info("Opening OAuth authorization window", extra=self._log_extra("start", "awaiting_redirect"))
        return self.authorization_url(self._expected_state)

    def log_into_another_account(self) -> str:
        LOGGER.info("Logging into another account", extra=self._log_extra("another_account", "restart"))
        self._context.token_store.clear()
        self._context.oauth_login = ""
        return self.start_oauth_process()

    def is_returned_state_same(self, state: str) -> bool:
        if not self._expected_state:
            return False
        return hmac.compare_digest(self._expected_state, str(state or ""))

    async def listen(self) -> None:
        """Consume redirect messages until the main inbox is closed."""
        while True:
            message = await self.inbox.receive()
            if message is None:
                return
            if not isinstance(message, RedirectMessage):
                continue
            try:
                await self.on_message(message)
            except Exception:
                LOGGER.exception(
                    "Unhandled failure processing OAuth redirect message",
                    extra=self._log_extra("redirect", "failed", error_class="internal"),
                )

    async def on_message(self, message: RedirectMessage) -> None:
        if message.origin != self._config.origin:
            LOGGER.debug(
                "Ignoring redirect message from untrusted origin=%s",
                message.origin,
                extra=self._log_extra("redirect", "foreign_origin"),
            )
            return
        if not message.oauth_code:
            return
        if not self._expected_state:
            LOGGER.info(
                "Ignoring redirect message with no handshake awaiting a code",
                extra=self._log_extra("redirect", "not_awaiting"),
            )
            return
        if not self.is_returned_state_same(message.state):
            LOGGER.info(
                "Received incorrect state, continue waiting for correct state",
                extra=self._log_extra("redirect", "state_mismatch"),
            )
            return

        exchange = OAuthExchange(code=message.oauth_code, state=message.state)
        self._expected_state = ""
        try:
            await self._exchange(exchange, self._generation)
        finally:
            self._close_source(message)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._context.auth.is_awaiting_authentication()

    def _drop_stale(self, operation: str) -> None:
        LOGGER.info(
            "Dropping result of abandoned handshake during %s",
            operation,
            extra=self._log_extra(operation, "stale_dropped"),
        )

    async def _exchange(self, exchange: OAuthExchange, generation: int) -> None:
        started = time.monotonic()
        LOGGER.info("Retrieving access token", extra=self._log_extra("token_exchange", "started"))
        try:
            token = await self._client.exchange_oauth_code(exchange.code)
        except TypedSessionError as exc:
            if not self._is_current(generation):
                self._drop_stale("token_exchange")
                return
            self._fail_authentication(exc, operation="token_exchange", started=started)
            return
        if not self._is_current(generation):
            self._drop_stale("token_exchange")
            return
        self._context.token_store.store(token)
        LOGGER.info(
            "Successfully obtained access token",
            extra=self._log_extra(
                "token_exchange",
                "success",
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )
        await self.confirm_oauth_user(generation)

    async def confirm_oauth_user(self, generation: int | None = None) -> None:
        """Resolve the token's owner; results of an abandoned handshake are dropped."""
        if not self._context.token_store.has_token():
            return
        if generation is None:
            generation = self._generation
        started = time.monotonic()
        try:
            login = await self._user_service.get_authenticated_user()
        except TypedSessionError as exc:
            if not self._is_current(generation):
                self._drop_stale("user_lookup")
                return
            self._fail_authentication(exc, operation="user_lookup", started=started)
            return
        if not self._is_current(generation):
            self._drop_stale("user_lookup")
            return
        self._context.oauth_login = login
        self._context.auth.transition(AuthState.CONFIRM_OAUTH_USER, reason="oauth_user_resolved")

    def store_oauth_access_token(self, token: str) -> None:
        self._context.token_store.store(token)

    async def handle_shell_reply(self, *, token: str = "", error: str = "", is_window_closed: bool = False) -> None:
        """Handle a token delivered directly by a desktop shell instead of a redirect."""
        if error:
            if not is_window_closed:
                self._report_error(TokenExchangeError(error), operation="shell_reply")
            self._context.token_store.clear()
            self._context.auth.reset(reason="shell_reply_error")
            return
        self.store_oauth_access_token(token)
        await self.confirm_oauth_user()

    def logout(self) -> None:
        self._generation += 1
        self._expected_state = ""
        self._context.token_store.clear()
        self._context.clear_session()
        self._context.auth.reset(reason="logout")
        LOGGER.info("Logged out", extra=self._log_extra("logout", "success"))

    async def forward_redirect(self, code: str, state: str) -> bool:
        """Secondary side: hand ``code``/``state`` to the main window and await ``close``."""
        reply = WindowChannel("oauth-redirect")
        message = RedirectMessage(
            origin=self._config.origin,
            data={"oauthCode": str(code or ""), "state": str(state or "")},
            source=reply,
        )
        if not self.inbox.send(message):
            reply.close()
            return False
        LOGGER.info(
            "Sent authorisation code and state to main window, waiting to close",
            extra=self._log_extra("redirect_forward", "sent"),
        )
        try:
            while True:
                received = await asyncio.wait_for(
                    reply.receive(),
                    timeout=self._config.redirect_close_timeout_seconds,
                )
                if received is None:
                    return False
                if received == CLOSE_MESSAGE:
                    LOGGER.info("Closed authentication window", extra=self._log_extra("redirect_forward", "closed"))
                    return True
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Timed out waiting for close from main window",
                extra=self._log_extra("redirect_forward", "timeout", error_class="timeout"),
            )
            return False
        finally:
            reply.close()

    def _close_source(self, message: RedirectMessage) -> None:
        source = message.source
        if source is None or source is self.inbox:
            return
        if source.send(CLOSE_MESSAGE):
            LOGGER.info("Closing authentication window", extra=self._log_extra("redirect", "close_sent"))
        else:
            LOGGER.info(
                "Authentication window already closed, dropping close notification",
                extra=self._log_extra("redirect", "close_dropped"),
            )

    def _fail_authentication(self, exc: TypedSessionError, *, operation: str, started: float) -> None:
        self._context.token_store.clear()
        self._context.oauth_login = ""
        self._context.auth.reset(reason=f"{operation}_failed")
        LOGGER.info(
            "Authentication failed during %s: %s",
            operation,
            str(exc),
            extra=self._log_extra(
                operation,
                "failed",
                error_class=exc.error_code,
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )
        self._report_error(exc, operation=operation)

    def _report_error(self, exc: TypedSessionError, *, operation: str) -> None:
        payload = typed_error_payload(exc) or {"detail": str(exc)}
        self._events.emit(EVENT_TYPE_SESSION_ERROR, {"operation": operation, **payload})
