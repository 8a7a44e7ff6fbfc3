"""Remove skills a previous sync installed that are no longer wanted."""

from __future__ import annotations

from dataclasses import dataclass, field

from skillsync.agents.registry import ResolvedAgent
from skillsync.agents.state import AgentState
from skillsync.fs import remove_path
from skillsync.logging import get_logger

logger = get_logger("reconcile")


@dataclass
class ReconcileResult:
    removed: list[str] = field(default_factory=list)


def stale_skills(previous: AgentState | None, desired: set[str]) -> list[str]:
    """Names recorded in *previous* that are not in *desired*."""
    if previous is None:
        return []
    return [name for name in previous.skills if name not in desired]


def reconcile_agent_skills(
    agent: ResolvedAgent, previous: AgentState | None, desired: set[str]
) -> ReconcileResult:
    """Delete ``previous - desired`` from the agent's skills directory.

    Only names in *previous* are ever touched. Without a previous state
    nothing is removed. The first failed removal raises
    :class:`~skillsync.errors.IoError`.
    """
    result = ReconcileResult()
    for name in stale_skills(previous, desired):
        remove_path(agent.skills_path / name)
        logger.info("Removed stale skill %s from %s", name, agent.display_name)
        result.removed.append(name)
    return result
