"""Agent registry, installs and persisted state."""

from skillsync.agents.install import (
    AgentInstallPlan,
    InstalledSkill,
    InstallTask,
    apply_agent_install,
    plan_agent_install,
    preflight_targets,
    remove_managed_targets,
)
from skillsync.agents.reconcile import ReconcileResult, reconcile_agent_skills, stale_skills
from skillsync.agents.registry import (
    AGENTS,
    AgentDefinition,
    AgentScope,
    ResolvedAgent,
    detect_agent,
    detect_installed_agents,
    get_agent_by_id,
    is_agent_id,
    list_agents,
    resolve_agent,
)
from skillsync.agents.state import (
    AgentState,
    build_agent_state,
    read_agent_state,
    write_agent_state,
)

__all__ = [
    "AGENTS",
    "AgentDefinition",
    "AgentInstallPlan",
    "AgentScope",
    "AgentState",
    "InstallTask",
    "InstalledSkill",
    "ReconcileResult",
    "ResolvedAgent",
    "apply_agent_install",
    "build_agent_state",
    "detect_agent",
    "detect_installed_agents",
    "get_agent_by_id",
    "is_agent_id",
    "list_agents",
    "plan_agent_install",
    "preflight_targets",
    "read_agent_state",
    "reconcile_agent_skills",
    "remove_managed_targets",
    "resolve_agent",
    "stale_skills",
    "write_agent_state",
]
