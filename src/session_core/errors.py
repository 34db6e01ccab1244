from __future__ import annotations


class TypedSessionError(RuntimeError):
    """Base class for session errors that reach the HTTP boundary or the event stream."""

    error_code = "SESSION_ERROR"
    failure_class = "internal"
    user_message = "The session could not be completed."

    def metadata(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "failure_class": self.failure_class,
            "user_message": self.user_message,
        }

    def payload(self, *, detail: str | None = None) -> dict[str, str]:
        payload = self.metadata()
        payload["detail"] = str(self) if detail is None else str(detail)
        return payload


def typed_error_metadata(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedSessionError):
        return exc.metadata()
    return None


def typed_error_payload(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedSessionError):
        return exc.payload()
    return None


class ConfigError(TypedSessionError):
    """The hub config file or a phase/role value in it is invalid."""

    error_code = "CONFIG_ERROR"
    failure_class = "configuration"
    user_message = "Session hub configuration is invalid."


class NetworkReachabilityError(TypedSessionError):
    """The code-hosting API or the token proxy could not be reached."""

    error_code = "NETWORK_REACHABILITY_ERROR"
    failure_class = "network"
    user_message = "The code-hosting service could not be reached."


class RemoteApiError(TypedSessionError):
    """Code-hosting API answered with an unexpected status."""

    error_code = "REMOTE_API_ERROR"
    failure_class = "network"
    user_message = "The code-hosting service returned an unexpected response."


class TokenExchangeError(TypedSessionError):
    """OAuth code could not be exchanged for an access token."""

    error_code = "TOKEN_EXCHANGE_ERROR"
    failure_class = "authentication"
    user_message = "Unable to obtain an access token from the identity provider."


class NotAuthenticatedError(TypedSessionError):
    """Login completion was requested before the OAuth user was confirmed."""

    error_code = "NOT_AUTHENTICATED"
    failure_class = "authentication"
    user_message = "Sign in with the code-hosting service before completing login."


class InvalidSessionError(TypedSessionError):
    error_code = "INVALID_SESSION"
    failure_class = "session"
    user_message = "Invalid Session"


class UserNotFoundError(TypedSessionError):
    error_code = "USER_NOT_FOUND"
    failure_class = "session"
    user_message = "Cannot find user in the session roster."


class RepoProvisioningError(TypedSessionError):
    """Policy errors raised while deciding whether a phase repository may be created."""

    error_code = "REPO_PROVISIONING_ERROR"
    failure_class = "policy"
    user_message = "Repository provisioning failed."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(self.user_message if detail is None else detail)


class MissingRequiredRepoError(RepoProvisioningError):
    error_code = "MISSING_REQUIRED_REPO"
    user_message = "You cannot proceed without the required repository."


class CurrentPhaseRepoClosedError(RepoProvisioningError):
    error_code = "CURRENT_PHASE_REPO_CLOSED"
    user_message = "Current Phase's Repository has not been opened."


class BugReportingInvalidRoleError(RepoProvisioningError):
    error_code = "BUG_REPORTING_INVALID_ROLE"
    user_message = "Bug-Reporting Phase's repository initialisation is only available to Students."


class RepoVerificationError(RepoProvisioningError):
    error_code = "REPO_NOT_VERIFIED"
    user_message = "The phase repository could not be found after the repair attempt."
