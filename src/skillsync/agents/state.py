"""
Per-agent install state.

The state file records the target names the last successful sync installed.
It is the only thing skillsync persists between runs and the only list of
directories it is allowed to delete.

Format (``<skills_path>/.skillsync-state.json``)::

    {
      "version": 1,
      "skills": ["acme-lint", "acme-review"],
      "updated_at": "2026-01-01T00:00:00+00:00"
    }
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from skillsync.agents.registry import ResolvedAgent
from skillsync.constants import STATE_FILENAME
from skillsync.errors import IoError, StateError
from skillsync.fs import atomic_write_json, is_file, read_text, safe_stat
from skillsync.logging import get_logger

logger = get_logger("state")

STATE_VERSION = 1


@dataclass(frozen=True)
class AgentState:
    skills: tuple[str, ...] = ()
    updated_at: str = ""
    version: int = STATE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "skills": list(self.skills),
            "updated_at": self.updated_at,
        }


def build_agent_state(skills: Iterable[str]) -> AgentState:
    """State for exactly *skills*, sorted and de-duplicated."""
    return AgentState(
        skills=tuple(sorted(set(skills))),
        updated_at=datetime.now(timezone.utc).isoformat(),
    )


def state_path(agent: ResolvedAgent, filename: str = STATE_FILENAME) -> Path:
    return agent.skills_path / filename


def read_agent_state(agent: ResolvedAgent, filename: str = STATE_FILENAME) -> AgentState | None:
    """Load the previous state for *agent*, or ``None`` if there is none.

    Raises:
        IoError: If the state path exists but is not a readable file.
        StateError: If the file is not valid state JSON.
    """
    path = state_path(agent, filename)
    if safe_stat(path) is None:
        return None
    if not is_file(path):
        raise IoError(f"Expected file at {path}.", operation="stat", path=path)

    try:
        data = json.loads(read_text(path))
    except json.JSONDecodeError as e:
        raise StateError(f"Invalid JSON in {path}.", field="state", path=path) from e
    return parse_agent_state(data, path)


def write_agent_state(
    agent: ResolvedAgent, state: AgentState, filename: str = STATE_FILENAME
) -> Path:
    path = state_path(agent, filename)
    atomic_write_json(path, state.to_dict())
    logger.debug("Wrote state for %s (%d skills)", agent.id, len(state.skills))
    return path


def parse_agent_state(data: Any, path: Path | None = None) -> AgentState:
    if not isinstance(data, dict):
        raise StateError("State file must be a JSON object.", field="state", path=path)

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise StateError("State file version must be a number.", field="version", path=path)
    if version != STATE_VERSION:
        raise StateError(
            f"Unsupported state file version {version}.", field="version", path=path
        )

    skills = data.get("skills")
    if not isinstance(skills, list) or not all(isinstance(entry, str) for entry in skills):
        raise StateError(
            "State file skills must be an array of strings.", field="skills", path=path
        )
    for entry in skills:
        trimmed = entry.strip()
        if not trimmed:
            raise StateError("State file skills must not be empty.", field="skills", path=path)
        if trimmed in (".", ".."):
            raise StateError(
                "State file skills contain invalid entries.", field="skills", path=path
            )
        if "/" in trimmed or "\\" in trimmed:
            raise StateError(
                "State file skills must not include path separators.", field="skills", path=path
            )

    updated_at = data.get("updated_at")
    if not isinstance(updated_at, str) or not updated_at.strip():
        raise StateError(
            "State file updated_at must be a string.", field="updated_at", path=path
        )

    return AgentState(skills=tuple(skills), updated_at=updated_at, version=version)
