"""
Supported agents and where they keep their skills.

Each agent has independent base directories for project-local and global
installs. Some use the same dot-directory for both; others keep global
configuration under ``~/.config``.

Example:
    from skillsync.agents.registry import get_agent_by_id, resolve_agent

    agent = get_agent_by_id("opencode")
    resolved = resolve_agent(agent, "global", home=Path.home())
    print(resolved.skills_path)  # ~/.config/opencode/skill
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from skillsync.coerce import AgentId
from skillsync.errors import AgentError, ValidationError
from skillsync.logging import get_logger
from skillsync.process import run_command

logger = get_logger("agents")

AgentScope = Literal["local", "global"]


@dataclass(frozen=True)
class AgentDefinition:
    """Static description of a supported agent."""

    id: AgentId
    display_name: str
    local_base: str  # Relative to the project root
    global_base: str  # Relative to the home directory
    skills_dir: str
    detect_command: str  # Run with --version to detect the agent


@dataclass(frozen=True)
class ResolvedAgent:
    """An agent bound to a concrete scope."""

    id: AgentId
    display_name: str
    root_path: Path
    skills_path: Path


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

AGENTS: tuple[AgentDefinition, ...] = (
    AgentDefinition(
        id=AgentId("amp"),
        display_name="Amp",
        local_base=".agents",
        global_base=".config/agents",
        skills_dir="skills",
        detect_command="amp",
    ),
    AgentDefinition(
        id=AgentId("claude-code"),
        display_name="Claude Code",
        local_base=".claude",
        global_base=".claude",
        skills_dir="skills",
        detect_command="claude",
    ),
    AgentDefinition(
        id=AgentId("codex"),
        display_name="Codex",
        local_base=".codex",
        global_base=".codex",
        skills_dir="skills",
        detect_command="codex",
    ),
    AgentDefinition(
        id=AgentId("factory"),
        display_name="Factory",
        local_base=".factory",
        global_base=".factory",
        skills_dir="skills",
        detect_command="droid",
    ),
    AgentDefinition(
        id=AgentId("opencode"),
        display_name="OpenCode",
        local_base=".opencode",
        global_base=".config/opencode",
        skills_dir="skill",
        detect_command="opencode",
    ),
)

_AGENTS_BY_ID = {agent.id: agent for agent in AGENTS}


def list_agents() -> list[AgentDefinition]:
    return list(AGENTS)


def get_agent_by_id(agent_id: str) -> AgentDefinition:
    """Look up an agent.

    Raises:
        AgentError: If *agent_id* is not registered.
    """
    agent = _AGENTS_BY_ID.get(AgentId(agent_id))
    if agent is None:
        raise AgentError(agent_id)
    return agent


def is_agent_id(value: str) -> bool:
    return AgentId(value) in _AGENTS_BY_ID


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_agent(
    agent: AgentDefinition,
    scope: AgentScope,
    *,
    project_root: Path | None = None,
    home: Path | None = None,
) -> ResolvedAgent:
    """Bind *agent* to a project root (local scope) or home directory (global scope)."""
    if scope == "local":
        if project_root is None:
            raise ValidationError("Local scope requires a project root.", field="project_root")
        root_path = Path(project_root) / agent.local_base
    else:
        root_path = Path(home if home is not None else Path.home()) / agent.global_base
    return ResolvedAgent(
        id=agent.id,
        display_name=agent.display_name,
        root_path=root_path,
        skills_path=root_path / agent.skills_dir,
    )


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


async def detect_agent(agent: AgentDefinition, timeout: float = 5.0) -> bool:
    """True if the agent's CLI answers ``--version`` within *timeout* seconds."""
    result = await run_command([agent.detect_command, "--version"], timeout=timeout)
    logger.debug(
        "Detect %s via %s: %s",
        agent.id,
        agent.detect_command,
        "found" if result.success else f"not found ({result.message})",
    )
    return result.success


async def detect_installed_agents(timeout: float = 5.0) -> list[AgentDefinition]:
    """Check every registered agent in parallel; return those that responded."""
    results = await asyncio.gather(*(detect_agent(agent, timeout) for agent in AGENTS))
    return [agent for agent, found in zip(AGENTS, results) if found]
