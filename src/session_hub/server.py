from __future__ import annotations

import asyncio
import contextlib
import html
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from session_core import ConfigError, SessionHubConfig, load_session_hub_config
from session_core.errors import TypedSessionError, typed_error_payload
from session_core import logging as core_logging
from session_hub.api import register_session_routes
from session_hub.domains.auth_domain import AuthState
from session_hub.domains.session_context import SessionContext
from session_hub.integrations import GithubClient
from session_hub.services.auth_service import OAuthHandshakeCoordinator
from session_hub.services.change_event_service import ChangeEventService
from session_hub.services.confirmation_service import RepoConfirmationPrompt
from session_hub.services.event_service import EVENT_TYPE_AUTH_STATE_CHANGED, EventService
from session_hub.services.phase_service import PhaseService
from session_hub.services.repo_creator_service import RepoCreatorService
from session_hub.services.session_service import SessionOrchestrator
from session_hub.services.user_service import UserService


LOGGER = logging.getLogger("session_hub")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")
CONFIG_FILE_NAME = "session_hub.toml"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _coerce_bool(value: Any, default: bool, field_name: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    if isinstance(value, (int, float)) and value in {0, 1}:
        return bool(value)
    raise HTTPException(status_code=400, detail=f"{field_name} must be a boolean.")


def _core_error_payload(exc: BaseException) -> tuple[int, dict[str, Any]]:
    typed_payload = typed_error_payload(exc)
    if typed_payload is not None:
        status_by_code = {
            "CONFIG_ERROR": 400,
            "NETWORK_REACHABILITY_ERROR": 502,
            "REMOTE_API_ERROR": 502,
            "TOKEN_EXCHANGE_ERROR": 401,
            "NOT_AUTHENTICATED": 401,
            "INVALID_SESSION": 400,
            "USER_NOT_FOUND": 403,
            "MISSING_REQUIRED_REPO": 409,
            "CURRENT_PHASE_REPO_CLOSED": 409,
            "BUG_REPORTING_INVALID_ROLE": 403,
            "REPO_NOT_VERIFIED": 409,
        }
        status = status_by_code.get(str(typed_payload.get("error_code") or ""), 500)
        return status, typed_payload
    return 500, {"error_code": "INTERNAL_ERROR", "detail": str(exc)}


def _http_error_code(status_code: int) -> str:
    status = int(status_code or 500)
    if status == 400:
        return "BAD_REQUEST"
    if status == 401:
        return "UNAUTHORIZED"
    if status == 403:
        return "FORBIDDEN"
    if status == 404:
        return "NOT_FOUND"
    if status == 409:
        return "CONFLICT"
    if status == 422:
        return "UNPROCESSABLE_ENTITY"
    if status in {500, 502, 503, 504}:
        return "UPSTREAM_ERROR"
    return f"HTTP_{status}"


def _uvicorn_log_level(level: str) -> str:
    normalized = core_logging.normalize_log_level(level)
    if normalized == "debug":
        return "info"
    return normalized


def _oauth_callback_page(success: bool, message: str) -> str:
    status_text = "signed in" if success else "failed"
    status_class = "ok" if success else "error"
    title_text = "Signed In" if success else "Sign-In Failed"
    escaped_message = html.escape(message or "")
    close_script = "<script>setTimeout(function () { window.close(); }, 300);</script>" if success else ""
    return f"""
<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{title_text}</title>
  <style>
    body {{
      font-family: ui-sans-serif, system-ui, sans-serif;
      margin: 0;
      min-height: 100vh;
      display: flex;
      align-items: center;
      justify-content: center;
    }}
    .ok {{ color: #15803d; }}
    .error {{ color: #b91c1c; }}
  </style>
</head>
<body>
  <main>
    <p class="{status_class}">{status_text}</p>
    <h1>{title_text}</h1>
    <p>{escaped_message}</p>
  </main>
  {close_script}
</body>
</html>
"""


class SessionHub:
    """Owns one session context and every component wired to it."""

    def __init__(self, config: SessionHubConfig) -> None:
        self.config = config
        self.context = SessionContext()
        self.event_service = EventService(snapshot=self.context.payload)
        self.client = GithubClient(
            api_base_url=config.github.api_base_url,
            access_token_url=config.oauth.access_token_url,
            client_id=config.oauth.client_id,
            timeout_seconds=config.github.timeout_seconds,
            token_provider=lambda: self.context.token_store.token,
        )
        self.user_service = UserService(
            context=self.context,
            client=self.client,
            roles=config.roles,
            default_role=config.auth.default_role,
        )
        self.repo_confirmation = RepoConfirmationPrompt(events=self.event_service)
        self.repo_creator = RepoCreatorService(
            context=self.context,
            client=self.client,
            confirm=self.repo_confirmation,
            settle_delay_seconds=config.session.settle_delay_seconds,
        )
        self.phase_service = PhaseService(
            context=self.context,
            client=self.client,
            repo_creator=self.repo_creator,
            phase=config.session.phase,
            repos=config.session.repos,
            app_name=config.session.app_name,
            app_version=config.session.app_version,
        )
        self.change_event_service = ChangeEventService(
            context=self.context,
            client=self.client,
            phase_service=self.phase_service,
        )
        self.auth_service = OAuthHandshakeCoordinator(
            context=self.context,
            oauth_config=config.oauth,
            client=self.client,
            user_service=self.user_service,
            events=self.event_service,
        )
        self.session_service = SessionOrchestrator(
            context=self.context,
            auth_service=self.auth_service,
            user_service=self.user_service,
            phase_service=self.phase_service,
            change_event_service=self.change_event_service,
            events=self.event_service,
        )
        self._listener_task: asyncio.Task[None] | None = None
        self.context.auth.subscribe(self._emit_auth_state_changed)

    def _emit_auth_state_changed(self, state: AuthState) -> None:
        self.event_service.emit(EVENT_TYPE_AUTH_STATE_CHANGED, {"auth_state": state.value})

    async def start(self) -> None:
        if self._listener_task is None:
            self._listener_task = asyncio.create_task(self.auth_service.listen())

    async def shutdown(self) -> None:
        self.repo_confirmation.cancel()
        self.auth_service.inbox.close()
        if self._listener_task is not None:
            await self._listener_task
            self._listener_task = None


def create_app(hub: SessionHub) -> FastAPI:
    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        await hub.start()
        try:
            yield
        finally:
            await hub.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.session_hub = hub

    @app.exception_handler(TypedSessionError)
    async def _handle_typed_session_error(_request: Request, exc: TypedSessionError) -> JSONResponse:
        status, payload = _core_error_payload(exc)
        return JSONResponse(status_code=status, content=payload)

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=int(exc.status_code or 500),
            content={"error_code": _http_error_code(int(exc.status_code or 500)), "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    register_session_routes(
        app,
        hub=hub,
        logger=LOGGER,
        iso_now=_iso_now,
        coerce_bool=_coerce_bool,
        oauth_callback_page=_oauth_callback_page,
    )
    return app


@click.command(help="Run the session hub.")
@click.option(
    "--config-file",
    default=CONFIG_FILE_NAME,
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="TOML file with oauth, github, session and roles sections.",
)
@click.option("--host", default=DEFAULT_HOST, show_default=True)
@click.option("--port", default=DEFAULT_PORT, show_default=True, type=int)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    help="Overrides logging.level from the config file.",
)
def main(config_file: Path, host: str, port: int, log_level: str | None) -> None:
    if not config_file.is_file():
        raise click.ClickException(f"Missing config file: {config_file}")
    try:
        config = load_session_hub_config(config_file)
        hub = SessionHub(config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    normalized_log_level = core_logging.normalize_log_level(log_level or config.logging.level)
    core_logging.configure_structured_logger(LOGGER, level=normalized_log_level)
    core_logging.configure_domain_log_levels(domains=config.logging.domains, logger_prefix="session_hub")
    LOGGER.info(
        "Session hub configured phase=%s origin=%s",
        hub.phase_service.current_phase.value,
        config.oauth.origin,
        extra=core_logging.log_extra("startup", "configure", "resolved", phase=hub.phase_service.current_phase.value),
    )

    app = create_app(hub)
    uvicorn.run(app, host=host, port=port, log_level=_uvicorn_log_level(normalized_log_level))


if __name__ == "__main__":
    main()
