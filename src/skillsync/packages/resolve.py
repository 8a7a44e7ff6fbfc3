"""Turn validated dependencies into fetch-ready canonical packages."""

from __future__ import annotations

from pathlib import Path
from typing import assert_never

from skillsync.coerce import Alias
from skillsync.constants import REGISTRY_NAME
from skillsync.manifest.models import (
    ClaudePluginDependency,
    GitDependency,
    GithubDependency,
    LocalDependency,
    MergedManifest,
    RegistryDependency,
    ValidatedDependency,
)
from skillsync.packages.models import (
    CanonicalPackage,
    ClaudePluginPackage,
    FetchStrategy,
    GithubPackage,
    GitPackage,
    LocalPackage,
    PackageOrigin,
    RegistryPackage,
)


def resolve_dependency(dependency: ValidatedDependency, origin: PackageOrigin) -> CanonicalPackage:
    """Attach a fetch strategy to *dependency*.

    Local packages are symlinked in place. Everything else is cloned, and the
    clone is sparse exactly when a sub-path is declared.
    """
    if isinstance(dependency, LocalDependency):
        return LocalPackage(
            origin=origin,
            fetch_strategy=FetchStrategy.symlink(),
            absolute_path=dependency.path,
        )
    if isinstance(dependency, GithubDependency):
        return GithubPackage(
            origin=origin,
            fetch_strategy=FetchStrategy.clone(sparse=dependency.path is not None),
            gh=dependency.gh,
            ref=dependency.ref,
            path=dependency.path,
        )
    if isinstance(dependency, GitDependency):
        return GitPackage(
            origin=origin,
            fetch_strategy=FetchStrategy.clone(sparse=dependency.path is not None),
            url=dependency.url,
            ref=dependency.ref,
            path=dependency.path,
        )
    if isinstance(dependency, RegistryDependency):
        return RegistryPackage(
            origin=origin,
            fetch_strategy=FetchStrategy.clone(sparse=False),
            name=dependency.name,
            version=dependency.version,
            org=dependency.org,
            registry=REGISTRY_NAME,
        )
    if isinstance(dependency, ClaudePluginDependency):
        return ClaudePluginPackage(
            origin=origin,
            fetch_strategy=FetchStrategy.clone(sparse=False),
            plugin=dependency.plugin,
            marketplace=dependency.marketplace,
        )
    assert_never(dependency)


def resolve_manifest_packages(manifest: MergedManifest) -> list[CanonicalPackage]:
    """Resolve every dependency of *manifest*, in declaration order."""
    return [
        resolve_dependency(
            entry.dependency,
            PackageOrigin(manifest_path=Path(entry.origin.source_path), alias=Alias(alias)),
        )
        for alias, entry in manifest.dependencies.items()
    ]
