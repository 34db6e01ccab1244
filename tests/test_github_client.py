from __future__ import annotations

import asyncio
import io
import json
import unittest
import urllib.error
from pathlib import Path
from unittest.mock import patch

import sys

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from session_core.errors import NetworkReachabilityError, RemoteApiError, TokenExchangeError
from session_hub.integrations.github_client import GithubClient

URLOPEN = "session_hub.integrations.github_client.urllib.request.urlopen"


class _FakeResponse:
    def __init__(self, *, code: int, body: object, headers: dict[str, str] | None = None) -> None:
        self._code = code
        self._body = body if isinstance(body, str) else json.dumps(body)
        self.headers = headers or {}

    def getcode(self) -> int:
        return self._code

    def read(self) -> bytes:
        return self._body.encode("utf-8")

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


def _http_error(code: int, body: str = "") -> urllib.error.HTTPError:
    return urllib.error.HTTPError("https://api.github.com", code, "error", {}, io.BytesIO(body.encode("utf-8")))


class GithubClientTests(unittest.TestCase):
    def _client(self, token: str = "gho_token") -> GithubClient:
        return GithubClient(
            api_base_url="https://api.github.com/",
            access_token_url="https://proxy.example.org/token/",
            client_id="client-123",
            timeout_seconds=0.5,
            token_provider=lambda: token,
        )

    def test_is_repository_present_maps_status_codes(self) -> None:
        client = self._client()
        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={"name": "bugreporting"})) as urlopen:
            self.assertTrue(asyncio.run(client.is_repository_present("junwei", "bugreporting")))
        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, "https://api.github.com/repos/junwei/bugreporting")
        self.assertEqual(request.get_header("Authorization"), "Bearer gho_token")

        with patch(URLOPEN, side_effect=_http_error(404, '{"message": "Not Found"}')):
            self.assertFalse(asyncio.run(client.is_repository_present("junwei", "bugreporting")))

        with patch(URLOPEN, side_effect=_http_error(500, '{"message": "Server Error"}')):
            with self.assertRaisesRegex(RemoteApiError, "status 500. Server Error"):
                asyncio.run(client.is_repository_present("junwei", "bugreporting"))

    def test_requests_without_token_omit_authorization(self) -> None:
        client = self._client(token="")
        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={})) as urlopen:
            asyncio.run(client.is_repository_present("org", "repo"))
        self.assertIsNone(urlopen.call_args.args[0].get_header("Authorization"))

    def test_network_failure_raises_reachability_error(self) -> None:
        client = self._client()
        with patch(URLOPEN, side_effect=urllib.error.URLError("connection refused")):
            with self.assertRaises(NetworkReachabilityError):
                asyncio.run(client.is_repository_present("org", "repo"))

    def test_create_repository_posts_name_and_logs_failures(self) -> None:
        client = self._client()
        with patch(URLOPEN, return_value=_FakeResponse(code=201, body={"name": "bugreporting"})) as urlopen:
            self.assertIsNone(asyncio.run(client.create_repository("bugreporting")))
        request = urlopen.call_args.args[0]
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.full_url, "https://api.github.com/user/repos")
        self.assertEqual(json.loads(request.data.decode("utf-8")), {"name": "bugreporting"})

        with patch(URLOPEN, side_effect=_http_error(422, '{"message": "name already exists"}')):
            with self.assertLogs("session_hub.github", level="WARNING") as captured:
                self.assertIsNone(asyncio.run(client.create_repository("bugreporting")))
        self.assertIn("name already exists", "\n".join(captured.output))

        with patch(URLOPEN, side_effect=OSError("unreachable")):
            self.assertIsNone(asyncio.run(client.create_repository("bugreporting")))

    def test_fetch_authenticated_user_requires_login(self) -> None:
        client = self._client()
        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={"login": "junwei", "id": 7})):
            self.assertEqual(asyncio.run(client.fetch_authenticated_user())["login"], "junwei")

        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={"id": 7})):
            with self.assertRaisesRegex(RemoteApiError, "invalid user data"):
                asyncio.run(client.fetch_authenticated_user())

        with patch(URLOPEN, side_effect=_http_error(401, '{"message": "Bad credentials"}')):
            with self.assertRaisesRegex(RemoteApiError, "Bad credentials"):
                asyncio.run(client.fetch_authenticated_user())

    def test_fetch_latest_issue_event_returns_first_event_and_last_modified(self) -> None:
        client = self._client()
        response = _FakeResponse(
            code=200,
            body=[{"id": 99, "event": "closed"}],
            headers={"Last-Modified": "Tue, 01 Oct 2024 10:00:00 GMT"},
        )
        with patch(URLOPEN, return_value=response) as urlopen:
            event, last_modified = asyncio.run(client.fetch_latest_issue_event("org", "pe"))
        self.assertEqual(event, {"id": 99, "event": "closed"})
        self.assertEqual(last_modified, "Tue, 01 Oct 2024 10:00:00 GMT")
        self.assertTrue(urlopen.call_args.args[0].full_url.endswith("/repos/org/pe/issues/events?per_page=1"))

        with patch(URLOPEN, return_value=_FakeResponse(code=200, body=[])):
            self.assertEqual(asyncio.run(client.fetch_latest_issue_event("org", "pe")), (None, ""))

    def test_exchange_oauth_code_returns_token(self) -> None:
        client = self._client()
        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={"token": "gho_new"})) as urlopen:
            self.assertEqual(asyncio.run(client.exchange_oauth_code("code-1")), "gho_new")
        self.assertEqual(
            urlopen.call_args.args[0].full_url,
            "https://proxy.example.org/token/code-1/client_id/client-123",
        )

    def test_exchange_oauth_code_surfaces_error_field(self) -> None:
        client = self._client()
        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={"error": "bad_verification_code"})):
            with self.assertRaisesRegex(TokenExchangeError, "bad_verification_code"):
                asyncio.run(client.exchange_oauth_code("code-1"))

        with patch(URLOPEN, return_value=_FakeResponse(code=200, body={})):
            with self.assertRaisesRegex(TokenExchangeError, "no token"):
                asyncio.run(client.exchange_oauth_code("code-1"))

        with patch(URLOPEN, return_value=_FakeResponse(code=502, body="<html>bad gateway</html>")):
            with self.assertRaisesRegex(TokenExchangeError, "invalid data with status 502"):
                asyncio.run(client.exchange_oauth_code("code-1"))


if __name__ == "__main__":
    unittest.main()
