from __future__ import annotations

import sys
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from session_core.errors import (
    BugReportingInvalidRoleError,
    CurrentPhaseRepoClosedError,
    MissingRequiredRepoError,
)
from session_hub.domains.session_context import Phase, SessionContext, User, UserRole
from session_hub.services.repo_creator_service import RepoCreatorService

PHASE_OWNER = "CATcher-org"
PHASE_REPO = "bugreporting"
NON_BUG_REPORTING_PHASES = (Phase.TEAM_RESPONSE, Phase.TESTER_RESPONSE, Phase.MODERATION)


class RepoCreatorServiceTests(unittest.IsolatedAsyncioTestCase):
    def _service(
        self,
        *,
        role: UserRole | None = UserRole.STUDENT,
        granted: bool = True,
        present: bool = True,
    ) -> tuple[RepoCreatorService, SimpleNamespace, AsyncMock]:
        context = SessionContext()
        if role is not None:
            context.user = User(login_id="junwei", role=role)
        client = SimpleNamespace(
            create_repository=AsyncMock(return_value=None),
            is_repository_present=AsyncMock(return_value=present),
        )
        confirm = AsyncMock(return_value=granted)
        service = RepoCreatorService(context=context, client=client, confirm=confirm, settle_delay_seconds=0)
        return service, client, confirm

    async def test_request_permissions_yields_none_for_non_bug_reporting_phases(self) -> None:
        service, _, confirm = self._service()
        for phase in NON_BUG_REPORTING_PHASES:
            for available in (True, False):
                with self.subTest(phase=phase, available=available):
                    decision = await service.request_repo_creation_permissions(available, phase, PHASE_REPO)
                    self.assertIsNone(decision)
        confirm.assert_not_awaited()

    async def test_request_permissions_yields_none_when_repo_available(self) -> None:
        service, _, confirm = self._service()
        decision = await service.request_repo_creation_permissions(True, Phase.BUG_REPORTING, PHASE_REPO)
        self.assertIsNone(decision)
        confirm.assert_not_awaited()

    async def test_request_permissions_prompts_user_when_bug_reporting_repo_missing(self) -> None:
        for granted in (True, False):
            with self.subTest(granted=granted):
                service, _, confirm = self._service(granted=granted)
                decision = await service.request_repo_creation_permissions(False, Phase.BUG_REPORTING, PHASE_REPO)
                self.assertIs(decision, granted)
                confirm.assert_awaited_once_with("junwei", PHASE_REPO)

    def test_verify_permissions_returns_none_when_creation_not_needed(self) -> None:
        for role in (UserRole.STUDENT, UserRole.TUTOR, None):
            for phase in Phase:
                with self.subTest(role=role, phase=phase):
                    service, _, _ = self._service(role=role)
                    self.assertIsNone(service.verify_repo_creation_permissions(None, phase))

    def test_verify_permissions_returns_true_when_permission_given(self) -> None:
        service, _, _ = self._service()
        self.assertIs(service.verify_repo_creation_permissions(True, Phase.BUG_REPORTING), True)

    def test_verify_permissions_rejects_denial_for_every_phase_and_role(self) -> None:
        for role in (UserRole.STUDENT, UserRole.TUTOR, UserRole.ADMIN):
            for phase in Phase:
                with self.subTest(role=role, phase=phase):
                    service, _, _ = self._service(role=role)
                    with self.assertRaises(MissingRequiredRepoError) as raised:
                        service.verify_repo_creation_permissions(False, phase)
                    self.assertEqual(
                        str(raised.exception),
                        "You cannot proceed without the required repository.",
                    )

    def test_verify_permissions_rejects_wrong_phase(self) -> None:
        service, _, _ = self._service(role=UserRole.TUTOR)
        with self.assertRaises(CurrentPhaseRepoClosedError):
            service.verify_repo_creation_permissions(True, Phase.MODERATION)

    def test_verify_permissions_rejects_non_student_in_bug_reporting(self) -> None:
        for role in (UserRole.TUTOR, UserRole.ADMIN):
            with self.subTest(role=role):
                service, _, _ = self._service(role=role)
                with self.assertRaises(BugReportingInvalidRoleError):
                    service.verify_repo_creation_permissions(True, Phase.BUG_REPORTING)

    async def test_attempt_creation_skips_remote_call_when_not_needed(self) -> None:
        service, client, _ = self._service()
        self.assertIsNone(await service.attempt_repo_creation(None, PHASE_REPO))
        client.create_repository.assert_not_called()

    async def test_attempt_creation_fires_create_and_waits_settle_delay(self) -> None:
        service, client, _ = self._service()
        service.settle_delay_seconds = 1.0
        with patch("session_hub.services.repo_creator_service.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await service.attempt_repo_creation(True, PHASE_REPO)
        self.assertIs(result, True)
        client.create_repository.assert_called_once_with(PHASE_REPO)
        sleep.assert_awaited_once_with(1.0)

    async def test_verify_creation_skips_remote_check_when_no_fix_attempted(self) -> None:
        service, client, _ = self._service()
        for flag in (None, False):
            with self.subTest(flag=flag):
                self.assertIs(await service.verify_repo_creation(flag, PHASE_OWNER, PHASE_REPO), True)
        client.is_repository_present.assert_not_called()

    async def test_verify_creation_forwards_remote_existence_result(self) -> None:
        for present in (True, False):
            with self.subTest(present=present):
                service, client, _ = self._service(present=present)
                self.assertIs(await service.verify_repo_creation(True, PHASE_OWNER, PHASE_REPO), present)
                client.is_repository_present.assert_awaited_once_with(PHASE_OWNER, PHASE_REPO)

    async def test_run_creates_and_verifies_missing_bug_reporting_repo(self) -> None:
        service, client, confirm = self._service(granted=True, present=False)

        result = await service.run(False, Phase.BUG_REPORTING, PHASE_OWNER, PHASE_REPO)

        self.assertIs(result, False)
        confirm.assert_awaited_once_with("junwei", PHASE_REPO)
        client.create_repository.assert_called_once_with(PHASE_REPO)
        client.is_repository_present.assert_awaited_once_with(PHASE_OWNER, PHASE_REPO)

    async def test_run_never_creates_for_moderation_phase(self) -> None:
        service, client, confirm = self._service(role=UserRole.TUTOR)

        result = await service.run(False, Phase.MODERATION, PHASE_OWNER, "pe-moderation")

        self.assertIs(result, True)
        confirm.assert_not_awaited()
        client.create_repository.assert_not_called()
        client.is_repository_present.assert_not_called()

    async def test_run_rejects_tutor_before_any_remote_call(self) -> None:
        service, client, _ = self._service(role=UserRole.TUTOR, granted=True)

        with self.assertRaises(BugReportingInvalidRoleError):
            await service.run(False, Phase.BUG_REPORTING, PHASE_OWNER, PHASE_REPO)

        client.create_repository.assert_not_called()
        client.is_repository_present.assert_not_called()

    async def test_run_rejects_denied_permission(self) -> None:
        service, client, _ = self._service(granted=False)

        with self.assertRaises(MissingRequiredRepoError):
            await service.run(False, Phase.BUG_REPORTING, PHASE_OWNER, PHASE_REPO)

        client.create_repository.assert_not_called()


if __name__ == "__main__":
    unittest.main()
