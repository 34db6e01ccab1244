from __future__ import annotations

import logging
from typing import Any, Mapping

from session_core.errors import ConfigError, RemoteApiError, UserNotFoundError
from session_core.logging import log_extra
from session_hub.domains.session_context import SessionContext, User, UserRole, parse_user_role


LOGGER = logging.getLogger("session_hub.user")


class UserService:
    def __init__(
        self,
        *,
        context: SessionContext,
        client: Any,
        roles: Mapping[str, str] | None = None,
        default_role: str = "",
    ) -> None:
        self._context = context
        self._client = client
        self._roles = {str(login).strip().lower(): str(role) for login, role in dict(roles or {}).items()}
        self._default_role = str(default_role or "").strip()
        if self._default_role:
            parse_user_role(self._default_role, label="auth.default_role")
        for login, role in self._roles.items():
            parse_user_role(role, label=f"roles.{login}")

    async def get_authenticated_user(self) -> str:
        payload = await self._client.fetch_authenticated_user()
        login = str(payload.get("login") or "").strip()
        if not login:
            raise RemoteApiError("GitHub returned invalid user data.")
        return login

    def resolve_role(self, login_id: str) -> UserRole:
        raw_role = self._roles.get(str(login_id or "").strip().lower()) or self._default_role
        if not raw_role:
            raise UserNotFoundError(f"Cannot find user {login_id} in the session roster.")
        try:
            return parse_user_role(raw_role, label=f"roles.{login_id}")
        except ConfigError as exc:
            raise UserNotFoundError(str(exc)) from exc

    async def create_user_model(self, login_id: str) -> User:
        login = str(login_id or "").strip()
        if not login:
            raise UserNotFoundError("A login is required to create the user model.")
        user = User(login_id=login, role=self.resolve_role(login))
        self._context.user = user
        LOGGER.info(
            "User model created login=%s role=%s",
            user.login_id,
            user.role.value,
            extra=log_extra("user", "create_user_model", "created", session_id=self._context.session_id),
        )
        return user

    def reset(self) -> None:
        self._context.user = None
