from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from session_core.errors import (
    BugReportingInvalidRoleError,
    CurrentPhaseRepoClosedError,
    MissingRequiredRepoError,
)
from session_core.logging import log_extra
from session_hub.domains.session_context import Phase, SessionContext, UserRole


LOGGER = logging.getLogger("session_hub.repo_creator")

RepoCreationDecision = bool | None
ConfirmRepoCreation = Callable[[str, str], Awaitable[bool]]


class RepoCreatorService:
    """Decides whether a missing phase repository may be created, creates it, and verifies it.

    Each stage takes the previous stage's ``RepoCreationDecision``:
    ``None`` means no fix is needed, ``True`` that a fix is permitted or was
    attempted, ``False`` that a fix is needed but was denied. Once a stage
    yields ``None`` every later stage passes it through.
    """

    def __init__(
        self,
        *,
        context: SessionContext,
        client: Any,
        confirm: ConfirmRepoCreation,
        settle_delay_seconds: float = 1.0,
    ) -> None:
        self._context = context
        self._client = client
        self._confirm = confirm
        self.settle_delay_seconds = float(settle_delay_seconds)
        self._pending_creations: set[asyncio.Task[Any]] = set()

    def _log_extra(self, operation: str, result: str, **fields: Any) -> dict[str, Any]:
        return log_extra("repo_creator", operation, result, session_id=self._context.session_id, **fields)

    def _current_login(self) -> str:
        user = self._context.user
        if user is not None:
            return user.login_id
        return self._context.oauth_login

    async def request_repo_creation_permissions(
        self,
        is_session_available: bool,
        current_phase: Phase,
        repo_name: str,
    ) -> RepoCreationDecision:
        if not is_session_available and current_phase is Phase.BUG_REPORTING:
            LOGGER.info(
                "Requesting repository creation permission repo=%s",
                repo_name,
                extra=self._log_extra("request_permissions", "prompted", phase=current_phase.value),
            )
            granted = bool(await self._confirm(self._current_login(), repo_name))
            LOGGER.info(
                "Repository creation permission answered repo=%s granted=%s",
                repo_name,
                granted,
                extra=self._log_extra(
                    "request_permissions",
                    "granted" if granted else "denied",
                    phase=current_phase.value,
                ),
            )
            return granted
        return None

    def verify_repo_creation_permissions(
        self,
        decision: RepoCreationDecision,
        current_phase: Phase,
    ) -> RepoCreationDecision:
        if decision is None:
            return None
        if decision is False:
            raise MissingRequiredRepoError()
        if current_phase is not Phase.BUG_REPORTING:
            raise CurrentPhaseRepoClosedError()
        user = self._context.user
        if user is None or user.role is not UserRole.STUDENT:
            raise BugReportingInvalidRoleError()
        return decision

    async def attempt_repo_creation(self, decision: RepoCreationDecision, repo_name: str) -> RepoCreationDecision:
        if decision is None:
            return None
        # The create call gives no usable confirmation; only the settle delay is awaited.
        task = asyncio.create_task(self._client.create_repository(repo_name))
        self._pending_creations.add(task)
        task.add_done_callback(self._pending_creations.discard)
        LOGGER.info(
            "Repository creation requested repo=%s settle_delay=%.2fs",
            repo_name,
            self.settle_delay_seconds,
            extra=self._log_extra("attempt_creation", "requested"),
        )
        await asyncio.sleep(self.settle_delay_seconds)
        return True

    async def verify_repo_creation(self, is_fix_attempted: RepoCreationDecision, owner: str, repo_name: str) -> bool:
        if not is_fix_attempted:
            return True
        present = bool(await self._client.is_repository_present(owner, repo_name))
        LOGGER.info(
            "Repository creation verified owner=%s repo=%s present=%s",
            owner,
            repo_name,
            present,
            extra=self._log_extra("verify_creation", "present" if present else "missing"),
        )
        return present

    async def run(self, is_session_available: bool, current_phase: Phase, owner: str, repo_name: str) -> bool:
        decision = await self.request_repo_creation_permissions(is_session_available, current_phase, repo_name)
        decision = self.verify_repo_creation_permissions(decision, current_phase)
        decision = await self.attempt_repo_creation(decision, repo_name)
        return await self.verify_repo_creation(decision, owner, repo_name)
