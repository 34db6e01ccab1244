from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from session_core.errors import ConfigError, InvalidSessionError, RepoVerificationError
from session_core.logging import log_extra
from session_hub.domains.session_context import Phase, SessionContext, SessionData, parse_phase


LOGGER = logging.getLogger("session_hub.phase")

_SESSION_PART_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def parse_session_info(session_info: Any) -> SessionData:
    """Parse an ``org/dataRepo`` session string."""
    text = str(session_info or "").strip()
    parts = text.split("/")
    if len(parts) != 2 or not all(_SESSION_PART_RE.fullmatch(part) for part in parts):
        raise InvalidSessionError(f"Session must be given as 'organisation/dataRepo', got {text!r}.")
    return SessionData(org=parts[0], data_repo=parts[1])


class PhaseService:
    def __init__(
        self,
        *,
        context: SessionContext,
        client: Any,
        repo_creator: Any,
        phase: str | Phase,
        repos: Mapping[str, str] | None = None,
        app_name: str = "",
        app_version: str = "",
    ) -> None:
        self._context = context
        self._client = client
        self._repo_creator = repo_creator
        self.current_phase = phase if isinstance(phase, Phase) else parse_phase(phase, label="session.phase")
        self._repos: dict[Phase, str] = {}
        for raw_phase, repo_name in dict(repos or {}).items():
            self._repos[parse_phase(raw_phase, label=f"session.repos.{raw_phase}")] = str(repo_name)
        if self.current_phase not in self._repos:
            raise ConfigError(f"session.repos has no repository for the current phase {self.current_phase.value}.")
        self._app_name = str(app_name or "")
        self._app_version = str(app_version or "")

    def store_session_data(self, session_info: Any) -> SessionData:
        session_data = parse_session_info(session_info)
        self._context.session_data = session_data
        LOGGER.info(
            "Stored session data org=%s data_repo=%s",
            session_data.org,
            session_data.data_repo,
            extra=log_extra("phase", "store_session_data", "stored", session_id=self._context.session_id),
        )
        return session_data

    def set_phase_owners(self, org: str, login_id: str) -> None:
        # Bug reports live in each student's own repository; later phases use the organisation.
        self._context.phase_owners = {
            phase: (login_id if phase is Phase.BUG_REPORTING else org) for phase in Phase
        }

    def repo_name(self, phase: Phase | None = None) -> str:
        return self._repos[phase or self.current_phase]

    def owner(self, phase: Phase | None = None) -> str:
        resolved = phase or self.current_phase
        owner = self._context.phase_owners.get(resolved, "")
        if not owner:
            raise InvalidSessionError(f"No owner has been set for {resolved.value}.")
        return owner

    async def session_setup(self) -> bool:
        phase = self.current_phase
        owner = self.owner(phase)
        repo_name = self.repo_name(phase)
        is_available = await self._client.is_repository_present(owner, repo_name)
        LOGGER.info(
            "Phase repository availability owner=%s repo=%s available=%s",
            owner,
            repo_name,
            is_available,
            extra=log_extra(
                "phase",
                "session_setup",
                "available" if is_available else "missing",
                session_id=self._context.session_id,
                phase=phase.value,
            ),
        )
        is_present = await self._repo_creator.run(is_available, phase, owner, repo_name)
        if not is_present:
            raise RepoVerificationError()
        return True

    def title_with_phase_detail(self) -> str:
        app_label = " ".join(part for part in (self._app_name, self._app_version) if part)
        detail = self.current_phase.description
        session_data = self._context.session_data
        if session_data is not None:
            detail = f"{detail} ({session_data.org}/{session_data.data_repo})"
        return f"{app_label} - {detail}" if app_label else detail

    def entry_point(self) -> str:
        return f"/{self.current_phase.value}"
