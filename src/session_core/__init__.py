from __future__ import annotations

from .config import (
    SessionHubConfig,
    load_session_hub_config,
    load_session_hub_config_dict,
)
from .errors import (
    BugReportingInvalidRoleError,
    ConfigError,
    CurrentPhaseRepoClosedError,
    InvalidSessionError,
    MissingRequiredRepoError,
    NetworkReachabilityError,
    NotAuthenticatedError,
    RemoteApiError,
    RepoProvisioningError,
    RepoVerificationError,
    TokenExchangeError,
    TypedSessionError,
    UserNotFoundError,
)

__all__ = [
    "BugReportingInvalidRoleError",
    "ConfigError",
    "CurrentPhaseRepoClosedError",
    "InvalidSessionError",
    "MissingRequiredRepoError",
    "NetworkReachabilityError",
    "NotAuthenticatedError",
    "RemoteApiError",
    "RepoProvisioningError",
    "RepoVerificationError",
    "SessionHubConfig",
    "TokenExchangeError",
    "TypedSessionError",
    "UserNotFoundError",
    "load_session_hub_config",
    "load_session_hub_config_dict",
]
