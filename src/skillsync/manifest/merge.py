"""Merge discovered manifests into a single dependency set."""

from __future__ import annotations

from collections.abc import Iterable
from typing import assert_never

from skillsync.coerce import Alias
from skillsync.errors import AliasConflictError
from skillsync.logging import get_logger
from skillsync.manifest.models import (
    ClaudePluginDependency,
    GitDependency,
    GithubDependency,
    LocalDependency,
    Manifest,
    MergedDependency,
    MergedManifest,
    RegistryDependency,
    ValidatedDependency,
)

logger = get_logger("manifest.merge")

DedupeKey = tuple[str, ...]


def dedupe_key(dependency: ValidatedDependency) -> DedupeKey:
    """Identity of a dependency for de-duplication.

    Git refs are not part of the identity: the same repository and path at a
    different ref is still the same dependency.
    """
    if isinstance(dependency, RegistryDependency):
        return ("registry", dependency.org or "", dependency.name)
    if isinstance(dependency, GithubDependency):
        return ("github", dependency.gh, dependency.path or "")
    if isinstance(dependency, GitDependency):
        return ("git", dependency.url, dependency.path or "")
    if isinstance(dependency, LocalDependency):
        return ("local", str(dependency.path))
    if isinstance(dependency, ClaudePluginDependency):
        return ("claude-plugin", dependency.marketplace, dependency.plugin)
    assert_never(dependency)


def merge_manifests(manifests: Iterable[Manifest]) -> MergedManifest:
    """Fold *manifests* (highest precedence first) into one.

    - Agents: the first manifest to mention an agent decides its setting.
    - Dependencies: an alias re-declared with a different identity is an
      error; the same identity under a new alias is a warning and the first
      alias is kept.

    Raises:
        AliasConflictError: On the first alias bound to two identities.
    """
    merged = MergedManifest()
    alias_keys: dict[Alias, DedupeKey] = {}
    key_aliases: dict[DedupeKey, Alias] = {}
    warned_aliases: set[Alias] = set()

    for manifest in manifests:
        merged.sources.append(manifest.origin)

        for agent_id, enabled in manifest.agents.items():
            if agent_id not in merged.agents:
                merged.agents[agent_id] = enabled

        for alias, dependency in manifest.dependencies.items():
            key = dedupe_key(dependency)

            seen_key = alias_keys.get(alias)
            if seen_key is not None:
                if seen_key != key:
                    first = merged.dependencies[alias].origin.source_path
                    raise AliasConflictError(alias, first, manifest.origin.source_path)
                continue

            existing_alias = key_aliases.get(key)
            if existing_alias is not None:
                if alias not in warned_aliases:
                    first = merged.dependencies[existing_alias].origin.source_path
                    merged.warnings.append(
                        f'Dependency alias "{alias}" in {manifest.origin.source_path} '
                        f'resolves to the same package as "{existing_alias}" in {first}; '
                        f'using "{existing_alias}".'
                    )
                    warned_aliases.add(alias)
                continue

            alias_keys[alias] = key
            key_aliases[key] = alias
            merged.dependencies[alias] = MergedDependency(
                dependency=dependency, origin=manifest.origin
            )

    logger.debug(
        "Merged %d manifest(s) into %d dependencies",
        len(merged.sources),
        len(merged.dependencies),
    )
    return merged
