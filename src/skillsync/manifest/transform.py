"""Pure edits on :class:`Manifest`; each returns a new manifest."""

from __future__ import annotations

from dataclasses import replace

from skillsync.coerce import Alias
from skillsync.manifest.models import Manifest, ValidatedDependency


def add_dependency(
    manifest: Manifest,
    alias: Alias,
    dependency: ValidatedDependency,
) -> Manifest:
    """Add or replace the dependency bound to *alias*."""
    dependencies = dict(manifest.dependencies)
    dependencies[alias] = dependency
    return replace(manifest, dependencies=dependencies)


def remove_dependency(manifest: Manifest, alias: Alias) -> Manifest:
    """Drop *alias*; unknown aliases leave the manifest unchanged."""
    if alias not in manifest.dependencies:
        return manifest
    dependencies = {k: v for k, v in manifest.dependencies.items() if k != alias}
    return replace(manifest, dependencies=dependencies)


def has_dependency(manifest: Manifest, alias: Alias) -> bool:
    return alias in manifest.dependencies


def get_dependency(manifest: Manifest, alias: Alias) -> ValidatedDependency | None:
    return manifest.dependencies.get(alias)


def set_agent(manifest: Manifest, agent_id: str, enabled: bool) -> Manifest:
    agents = dict(manifest.agents)
    agents[agent_id] = enabled
    return replace(manifest, agents=agents)


def get_agent(manifest: Manifest, agent_id: str) -> bool | None:
    return manifest.agents.get(agent_id)
