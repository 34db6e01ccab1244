from __future__ import annotations

import asyncio
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable

from session_core.errors import NetworkReachabilityError, RemoteApiError, TokenExchangeError
from session_core.logging import log_extra


LOGGER = logging.getLogger("session_hub.github")

USER_AGENT = "session-hub"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class HttpResult:
    status: int
    body_text: str
    headers: dict[str, str]

    def json(self) -> Any:
        if not self.body_text:
            return {}
        return json.loads(self.body_text)


def _github_api_error_message(body_text: str) -> str:
    text = str(body_text or "").strip()
    if not text:
        return ""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text[:200]
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("message") or "").strip()[:200]


def _http_request(
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    payload: dict[str, Any] | None = None,
    timeout_seconds: float,
) -> HttpResult:
    data = None
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        request_headers["Content-Type"] = "application/json"
    request = urllib.request.Request(url, data=data, headers=request_headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            status = int(response.getcode() or 0)
            body_text = response.read().decode("utf-8", errors="ignore")
            response_headers = {str(k).lower(): str(v) for k, v in dict(response.headers or {}).items()}
    except urllib.error.HTTPError as exc:
        status = int(exc.code or 0)
        body_text = exc.read().decode("utf-8", errors="ignore")
        response_headers = {str(k).lower(): str(v) for k, v in dict(exc.headers or {}).items()}
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise NetworkReachabilityError(f"Request to {urllib.parse.urlsplit(url).netloc} failed: {exc}") from exc
    return HttpResult(status=status, body_text=body_text, headers=response_headers)


class GithubClient:
    """Remote repository client for the code-hosting REST API.

    Blocking ``urllib`` calls run on a worker thread so the session loop only
    suspends at each remote call.
    """

    def __init__(
        self,
        *,
        api_base_url: str,
        access_token_url: str,
        client_id: str,
        timeout_seconds: float,
        token_provider: Callable[[], str],
    ) -> None:
        self.api_base_url = str(api_base_url).rstrip("/")
        self.access_token_url = str(access_token_url).rstrip("/")
        self.client_id = str(client_id)
        self.timeout_seconds = float(timeout_seconds)
        self._token_provider = token_provider

    def _api_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _api_request(
        self,
        path: str,
        *,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
        operation: str,
    ) -> HttpResult:
        started = time.monotonic()
        result = await asyncio.to_thread(
            _http_request,
            f"{self.api_base_url}{path}",
            method=method,
            headers=self._api_headers(),
            payload=payload,
            timeout_seconds=self.timeout_seconds,
        )
        LOGGER.debug(
            "GitHub API response method=%s path=%s status=%s",
            method,
            path,
            result.status,
            extra=log_extra(
                "github",
                operation,
                str(result.status),
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )
        return result

    @staticmethod
    def _raise_for_status(result: HttpResult, *, action: str) -> None:
        if 200 <= result.status < 300:
            return
        detail = f"{action} failed with status {result.status}."
        message = _github_api_error_message(result.body_text)
        if message:
            detail = f"{detail} {message}"
        raise RemoteApiError(detail)

    async def is_repository_present(self, owner: str, repo: str) -> bool:
        path = f"/repos/{urllib.parse.quote(owner, safe='')}/{urllib.parse.quote(repo, safe='')}"
        result = await self._api_request(path, operation="is_repository_present")
        if result.status == 404:
            return False
        self._raise_for_status(result, action=f"Repository lookup for {owner}/{repo}")
        return True

    async def create_repository(self, repo: str) -> None:
        """Ask the API to create ``repo`` for the authenticated user.

        The API gives no usable confirmation, so failures are logged and the
        caller verifies existence separately.
        """
        try:
            result = await self._api_request(
                "/user/repos",
                method="POST",
                payload={"name": repo},
                operation="create_repository",
            )
        except NetworkReachabilityError as exc:
            LOGGER.warning(
                "Repository creation request failed repo=%s detail=%s",
                repo,
                str(exc),
                extra=log_extra("github", "create_repository", "network_error", error_class="network"),
            )
            return
        if not (200 <= result.status < 300):
            LOGGER.warning(
                "Repository creation request rejected repo=%s status=%s detail=%s",
                repo,
                result.status,
                _github_api_error_message(result.body_text),
                extra=log_extra("github", "create_repository", "rejected", error_class="http_error"),
            )

    async def fetch_authenticated_user(self) -> dict[str, Any]:
        result = await self._api_request("/user", operation="fetch_authenticated_user")
        self._raise_for_status(result, action="Authenticated user lookup")
        try:
            payload = result.json()
        except json.JSONDecodeError as exc:
            raise RemoteApiError("GitHub returned invalid user data.") from exc
        if not isinstance(payload, dict) or not str(payload.get("login") or "").strip():
            raise RemoteApiError("GitHub returned invalid user data.")
        return payload

    async def fetch_latest_issue_event(self, owner: str, repo: str) -> tuple[dict[str, Any] | None, str]:
        path = (
            f"/repos/{urllib.parse.quote(owner, safe='')}/{urllib.parse.quote(repo, safe='')}"
            "/issues/events?per_page=1"
        )
        result = await self._api_request(path, operation="fetch_latest_issue_event")
        self._raise_for_status(result, action=f"Issue event lookup for {owner}/{repo}")
        try:
            payload = result.json()
        except json.JSONDecodeError as exc:
            raise RemoteApiError("GitHub returned invalid issue event data.") from exc
        last_modified = result.headers.get("last-modified", "")
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            return payload[0], last_modified
        return None, last_modified

    async def exchange_oauth_code(self, code: str) -> str:
        """Trade an authorization code for an access token through the token proxy."""
        path_code = urllib.parse.quote(str(code or "").strip(), safe="")
        path_client_id = urllib.parse.quote(self.client_id, safe="")
        url = f"{self.access_token_url}/{path_code}/client_id/{path_client_id}"
        result = await asyncio.to_thread(
            _http_request,
            url,
            headers={"Accept": "application/json"},
            timeout_seconds=self.timeout_seconds,
        )
        try:
            payload = result.json()
        except json.JSONDecodeError as exc:
            raise TokenExchangeError(f"Token exchange returned invalid data with status {result.status}.") from exc
        if not isinstance(payload, dict):
            raise TokenExchangeError(f"Token exchange returned invalid data with status {result.status}.")
        error = str(payload.get("error") or "").strip()
        if error:
            raise TokenExchangeError(error)
        token = str(payload.get("token") or "").strip()
        if not token:
            raise TokenExchangeError(f"Token exchange returned no token with status {result.status}.")
        return token
