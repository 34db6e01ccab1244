from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from session_core.errors import ConfigError, InvalidSessionError, RepoVerificationError
from session_hub.domains.session_context import Phase, SessionContext, SessionData
from session_hub.services.phase_service import PhaseService, parse_session_info

REPOS = {"phaseBugReporting": "bugreporting", "phaseModeration": "pe"}


def _service(
    *,
    phase: str = "phaseBugReporting",
    present: bool = True,
    verified: bool = True,
) -> tuple[PhaseService, SessionContext, SimpleNamespace, SimpleNamespace]:
    context = SessionContext()
    client = SimpleNamespace(is_repository_present=AsyncMock(return_value=present))
    repo_creator = SimpleNamespace(run=AsyncMock(return_value=verified))
    service = PhaseService(
        context=context,
        client=client,
        repo_creator=repo_creator,
        phase=phase,
        repos=REPOS,
        app_name="Session Hub",
        app_version="3.5.0",
    )
    return service, context, client, repo_creator


def test_parse_session_info_splits_org_and_data_repo() -> None:
    assert parse_session_info(" CATcher-org/public_data ") == SessionData(org="CATcher-org", data_repo="public_data")


@pytest.mark.parametrize("raw", ["", "org", "org/repo/extra", "org/", "/repo", "org/re po"])
def test_parse_session_info_rejects_malformed_values(raw: str) -> None:
    with pytest.raises(InvalidSessionError):
        parse_session_info(raw)


def test_phase_service_requires_repository_for_current_phase() -> None:
    with pytest.raises(ConfigError, match="no repository for the current phase phaseTeamResponse"):
        PhaseService(context=SessionContext(), client=None, repo_creator=None, phase="phaseTeamResponse", repos=REPOS)


def test_set_phase_owners_uses_login_only_for_bug_reporting() -> None:
    service, context, _, _ = _service()

    service.set_phase_owners("CATcher-org", "junwei")

    assert context.phase_owners[Phase.BUG_REPORTING] == "junwei"
    for phase in (Phase.TEAM_RESPONSE, Phase.TESTER_RESPONSE, Phase.MODERATION):
        assert context.phase_owners[phase] == "CATcher-org"
    assert service.owner() == "junwei"
    assert service.owner(Phase.MODERATION) == "CATcher-org"


def test_owner_requires_owners_to_be_set() -> None:
    service, _, _, _ = _service()
    with pytest.raises(InvalidSessionError):
        service.owner()


def test_session_setup_checks_availability_then_runs_pipeline() -> None:
    service, _, client, repo_creator = _service(present=False)
    service.set_phase_owners("CATcher-org", "junwei")

    assert asyncio.run(service.session_setup()) is True

    client.is_repository_present.assert_awaited_once_with("junwei", "bugreporting")
    repo_creator.run.assert_awaited_once_with(False, Phase.BUG_REPORTING, "junwei", "bugreporting")


def test_session_setup_raises_when_repository_not_verified() -> None:
    service, _, _, _ = _service(present=False, verified=False)
    service.set_phase_owners("CATcher-org", "junwei")

    with pytest.raises(RepoVerificationError):
        asyncio.run(service.session_setup())


def test_title_and_entry_point_follow_current_phase() -> None:
    service, context, _, _ = _service(phase="phaseModeration")
    assert service.title_with_phase_detail() == "Session Hub 3.5.0 - Moderation Phase"

    context.session_data = SessionData(org="CATcher-org", data_repo="public_data")
    assert service.title_with_phase_detail() == "Session Hub 3.5.0 - Moderation Phase (CATcher-org/public_data)"
    assert service.entry_point() == "/phaseModeration"
