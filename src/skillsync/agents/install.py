"""
Install planning and application for one agent.

Planning is pure: it turns extracted packages into a list of
``prefix-skill`` targets under the agent's skills directory and rejects
anything that would land outside it. Applying touches the filesystem and
refuses to overwrite targets it does not manage.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from skillsync.agents.registry import ResolvedAgent
from skillsync.coerce import AgentId
from skillsync.errors import InstallError, IoError
from skillsync.fs import copy_tree, ensure_dir, remove_path, safe_lstat, safe_stat, symlink_dir
from skillsync.logging import get_logger
from skillsync.packages.models import ExtractedPackage, LocalPackage

logger = get_logger("install")

InstallMode = Literal["copy", "symlink"]


@dataclass(frozen=True)
class InstallTask:
    agent_id: AgentId
    source_path: Path
    target_name: str
    target_path: Path
    skill_name: str
    mode: InstallMode


@dataclass(frozen=True)
class AgentInstallPlan:
    agent_id: AgentId
    base_path: Path
    tasks: tuple[InstallTask, ...]

    @property
    def target_names(self) -> list[str]:
        return [task.target_name for task in self.tasks]


@dataclass(frozen=True)
class InstalledSkill:
    agent_id: AgentId
    name: str
    source_path: Path
    target_path: Path


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def plan_agent_install(
    agent: ResolvedAgent, packages: Iterable[ExtractedPackage]
) -> AgentInstallPlan:
    """Compute the install tasks for *agent*.

    Raises:
        InstallError: ``invalid_input`` for empty paths, prefixes or skill
            lists; ``invalid_target`` when a target escapes the skills
            directory; ``conflict`` when two skills map to the same target.
    """
    if not str(agent.skills_path).strip():
        raise InstallError("invalid_input", "Agent skills path cannot be empty.")

    base_path = Path(os.path.normpath(os.path.abspath(agent.skills_path)))
    tasks: list[InstallTask] = []
    seen: set[Path] = set()

    for package in packages:
        if not package.skills:
            raise InstallError(
                "invalid_input", f'Package "{package.prefix}" has no skills to install.'
            )

        prefix = normalize_segment(package.prefix, "prefix")
        mode: InstallMode = "symlink" if isinstance(package.canonical, LocalPackage) else "copy"

        for skill in package.skills:
            skill_name = normalize_segment(skill.name, "skill name")
            target_name = f"{prefix}-{skill_name}"
            target_path = base_path / target_name

            if not is_within_base(base_path, target_path):
                raise InstallError(
                    "invalid_target",
                    "Skill target path escapes the agent skills directory.",
                    path=target_path,
                )
            if target_path in seen:
                raise InstallError(
                    "conflict",
                    f"Duplicate target path detected: {target_name}",
                    path=target_path,
                )

            seen.add(target_path)
            tasks.append(
                InstallTask(
                    agent_id=agent.id,
                    source_path=skill.source_path,
                    target_name=target_name,
                    target_path=target_path,
                    skill_name=skill_name,
                    mode=mode,
                )
            )

    return AgentInstallPlan(agent_id=agent.id, base_path=base_path, tasks=tuple(tasks))


def normalize_segment(value: str, label: str) -> str:
    """Trim *value* and make sure it is a single path segment."""
    trimmed = value.strip()
    if not trimmed:
        raise InstallError("invalid_input", f"Skill {label} cannot be empty.")
    if "/" in trimmed or "\\" in trimmed:
        raise InstallError("invalid_target", f"Skill {label} must not include path separators.")
    if trimmed in (".", ".."):
        raise InstallError("invalid_target", f'Skill {label} must not be "." or "..".')
    return trimmed


def is_within_base(base_path: Path, target_path: Path) -> bool:
    relative = os.path.relpath(target_path, base_path)
    return (
        relative not in ("", ".")
        and not relative.startswith("..")
        and not os.path.isabs(relative)
    )


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------


def preflight_targets(plan: AgentInstallPlan, managed: set[str]) -> list[Path]:
    """Check every target before anything is written.

    Returns the existing targets that are managed and must be replaced.

    Raises:
        InstallError: ``conflict`` if a target exists but is not in *managed*.
    """
    removable: list[Path] = []
    for task in plan.tasks:
        if safe_lstat(task.target_path) is None:
            continue
        if task.target_name not in managed:
            raise InstallError(
                "conflict",
                f"Skill target already exists and is not managed by sk: {task.target_name}",
                path=task.target_path,
            )
        removable.append(task.target_path)
    return removable


def remove_managed_targets(paths: Iterable[Path]) -> None:
    for path in paths:
        logger.debug("Removing managed target %s", path)
        remove_path(path)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply_agent_install(
    plan: AgentInstallPlan, managed: set[str] | None = None
) -> list[InstalledSkill]:
    """Install every task in *plan*.

    All targets are checked before the first write. A target that already
    exists is replaced only when its name is in *managed*. The first failing
    task stops the install; earlier tasks are not rolled back.
    """
    _ensure_base(plan.base_path)
    preflight_targets(plan, managed or set())

    installed: list[InstalledSkill] = []
    for task in plan.tasks:
        _require_source(task.source_path)
        try:
            remove_path(task.target_path)
            if task.mode == "symlink":
                symlink_dir(task.source_path, task.target_path)
            else:
                copy_tree(task.source_path, task.target_path)
        except IoError as e:
            raise InstallError("io_error", e.message, path=task.target_path) from e

        logger.info("Installed %s (%s)", task.target_name, task.mode)
        installed.append(
            InstalledSkill(
                agent_id=plan.agent_id,
                name=task.skill_name,
                source_path=task.source_path,
                target_path=task.target_path,
            )
        )
    return installed


def _ensure_base(base_path: Path) -> None:
    stats = safe_stat(base_path)
    if stats is not None and not base_path.is_dir():
        raise InstallError(
            "invalid_target", f"Expected directory at {base_path}.", path=base_path
        )
    try:
        ensure_dir(base_path)
    except IoError as e:
        raise InstallError("io_error", e.message, path=base_path) from e


def _require_source(source_path: Path) -> None:
    stats = safe_stat(source_path)
    if stats is None:
        raise InstallError(
            "invalid_input", f"Skill source path does not exist: {source_path}", path=source_path
        )
    if not source_path.is_dir():
        raise InstallError(
            "invalid_input",
            f"Skill source path is not a directory: {source_path}",
            path=source_path,
        )
