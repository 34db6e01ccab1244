from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11
    import tomli as tomllib

from session_core.errors import ConfigError


_SECTION_KEYS = ("oauth", "github", "session", "roles", "auth", "logging")
DEFAULT_GITHUB_WEB_BASE_URL = "https://github.com"
DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"
DEFAULT_AUTHORIZE_URL = f"{DEFAULT_GITHUB_WEB_BASE_URL}/login/oauth/authorize"
DEFAULT_OAUTH_SCOPES = ("public_repo", "read:user")
DEFAULT_SETTLE_DELAY_SECONDS = 1.0
DEFAULT_REMOTE_TIMEOUT_SECONDS = 8.0
DEFAULT_REDIRECT_CLOSE_TIMEOUT_SECONDS = 30.0
DEFAULT_APP_NAME = "Session Hub"


def _ensure_dict(value: object, *, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a table/object.")
    return dict(value)


def _ensure_str(value: object, *, label: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string.")
    return value.strip()


def _ensure_positive_float(value: object, *, label: str, default: float, allow_zero: bool = False) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{label} must be a number.")
    resolved = float(value)
    if resolved < 0 or (resolved == 0 and not allow_zero):
        raise ConfigError(f"{label} must be {'non-negative' if allow_zero else 'positive'}.")
    return resolved


def _ensure_http_url(value: object, *, label: str, default: str = "") -> str:
    text = _ensure_str(value, label=label, default=default).rstrip("/")
    if not text:
        return ""
    if not (text.startswith("http://") or text.startswith("https://")):
        raise ConfigError(f"{label} must be an absolute http(s) URL.")
    return text


def _ensure_str_mapping(value: object, *, label: str) -> dict[str, str]:
    raw = _ensure_dict(value, label=label)
    resolved: dict[str, str] = {}
    for key, entry in raw.items():
        resolved[str(key)] = _ensure_str(entry, label=f"{label}.{key}")
    return resolved


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str = ""
    origin: str = ""
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    access_token_url: str = ""
    scopes: tuple[str, ...] = DEFAULT_OAUTH_SCOPES
    redirect_close_timeout_seconds: float = DEFAULT_REDIRECT_CLOSE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class GithubConfig:
    api_base_url: str = DEFAULT_GITHUB_API_BASE_URL
    timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class SessionConfig:
    phase: str = ""
    app_name: str = DEFAULT_APP_NAME
    app_version: str = ""
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS
    repos: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthConfig:
    default_role: str = ""


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "info"
    domains: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionHubConfig:
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    github: GithubConfig = field(default_factory=GithubConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    roles: dict[str, str] = field(default_factory=dict)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | dict[str, Any]) -> "SessionHubConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError("Config payload root must be a table/object.")

        raw = dict(payload)
        missing_sections = [section for section in ("oauth", "session") if section not in raw]
        if missing_sections:
            raise ConfigError(
                "Config payload missing required sections: " + ", ".join(missing_sections)
            )

        roles = {
            login.lower(): role
            for login, role in _ensure_str_mapping(raw.get("roles"), label="section 'roles'").items()
        }
        auth_raw = _ensure_dict(raw.get("auth"), label="section 'auth'")
        extras = {k: v for k, v in raw.items() if k not in _SECTION_KEYS}
        return cls(
            oauth=_parse_oauth(raw),
            github=_parse_github(raw),
            session=_parse_session(raw),
            roles=roles,
            auth=AuthConfig(default_role=_ensure_str(auth_raw.get("default_role"), label="auth.default_role")),
            logging=_parse_logging(raw),
            extras=extras,
        )

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "SessionHubConfig":
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        try:
            parsed = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ConfigError("Config payload root must be a table/object.")
        return cls.from_dict(parsed)


def _parse_oauth(raw_root: dict[str, Any]) -> OAuthConfig:
    oauth_raw = _ensure_dict(raw_root.get("oauth"), label="section 'oauth'")
    client_id = _ensure_str(oauth_raw.get("client_id"), label="oauth.client_id")
    if not client_id:
        raise ConfigError("oauth.client_id is required.")
    origin = _ensure_http_url(oauth_raw.get("origin"), label="oauth.origin")
    if not origin:
        raise ConfigError("oauth.origin is required.")
    access_token_url = _ensure_http_url(oauth_raw.get("access_token_url"), label="oauth.access_token_url")
    if not access_token_url:
        raise ConfigError("oauth.access_token_url is required.")

    scopes_raw = oauth_raw.get("scopes")
    if scopes_raw is None:
        scopes = DEFAULT_OAUTH_SCOPES
    elif isinstance(scopes_raw, list) and all(isinstance(item, str) for item in scopes_raw):
        scopes = tuple(item.strip() for item in scopes_raw if item.strip())
    else:
        raise ConfigError("oauth.scopes must be an array of strings.")

    return OAuthConfig(
        client_id=client_id,
        origin=origin,
        authorize_url=_ensure_http_url(
            oauth_raw.get("authorize_url"),
            label="oauth.authorize_url",
            default=DEFAULT_AUTHORIZE_URL,
        ),
        access_token_url=access_token_url,
        scopes=scopes,
        redirect_close_timeout_seconds=_ensure_positive_float(
            oauth_raw.get("redirect_close_timeout_seconds"),
            label="oauth.redirect_close_timeout_seconds",
            default=DEFAULT_REDIRECT_CLOSE_TIMEOUT_SECONDS,
        ),
    )


def _parse_github(raw_root: dict[str, Any]) -> GithubConfig:
    github_raw = _ensure_dict(raw_root.get("github"), label="section 'github'")
    return GithubConfig(
        api_base_url=_ensure_http_url(
            github_raw.get("api_base_url"),
            label="github.api_base_url",
            default=DEFAULT_GITHUB_API_BASE_URL,
        ),
        timeout_seconds=_ensure_positive_float(
            github_raw.get("timeout_seconds"),
            label="github.timeout_seconds",
            default=DEFAULT_REMOTE_TIMEOUT_SECONDS,
        ),
    )


def _parse_session(raw_root: dict[str, Any]) -> SessionConfig:
    session_raw = _ensure_dict(raw_root.get("session"), label="section 'session'")
    phase = _ensure_str(session_raw.get("phase"), label="session.phase")
    if not phase:
        raise ConfigError("session.phase is required.")
    return SessionConfig(
        phase=phase,
        app_name=_ensure_str(session_raw.get("app_name"), label="session.app_name", default=DEFAULT_APP_NAME),
        app_version=_ensure_str(session_raw.get("app_version"), label="session.app_version"),
        settle_delay_seconds=_ensure_positive_float(
            session_raw.get("settle_delay_seconds"),
            label="session.settle_delay_seconds",
            default=DEFAULT_SETTLE_DELAY_SECONDS,
            allow_zero=True,
        ),
        repos=_ensure_str_mapping(session_raw.get("repos"), label="section 'session.repos'"),
    )


def _parse_logging(raw_root: dict[str, Any]) -> LoggingConfig:
    logging_raw = _ensure_dict(raw_root.get("logging"), label="section 'logging'")
    return LoggingConfig(
        level=_ensure_str(logging_raw.get("level"), label="logging.level", default="info") or "info",
        domains=_ensure_dict(logging_raw.get("domains"), label="section 'logging.domains'"),
    )


def load_session_hub_config(path: str | Path) -> SessionHubConfig:
    return SessionHubConfig.from_toml_path(path)


def load_session_hub_config_dict(payload: Mapping[str, Any] | dict[str, Any]) -> SessionHubConfig:
    return SessionHubConfig.from_dict(payload)


__all__ = [
    "AuthConfig",
    "DEFAULT_AUTHORIZE_URL",
    "DEFAULT_GITHUB_API_BASE_URL",
    "DEFAULT_OAUTH_SCOPES",
    "DEFAULT_SETTLE_DELAY_SECONDS",
    "GithubConfig",
    "LoggingConfig",
    "OAuthConfig",
    "SessionConfig",
    "SessionHubConfig",
    "load_session_hub_config",
    "load_session_hub_config_dict",
]
