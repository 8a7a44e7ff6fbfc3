"""Manifest data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Literal, Union

from skillsync.coerce import (
    AbsolutePath,
    Alias,
    GithubRef,
    GitRef,
    NonEmptyString,
    NormalizedGitUrl,
)

DiscoveredAt = Literal["cwd", "parent", "home", "global"]


@dataclass(frozen=True)
class ManifestOrigin:
    """Where a manifest was found. Discovery order is precedence order."""

    source_path: Path
    discovered_at: DiscoveredAt = "cwd"


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegistryDependency:
    """``[@org/]name@version`` shorthand."""

    type: ClassVar[Literal["registry"]] = "registry"

    name: NonEmptyString
    version: NonEmptyString
    org: NonEmptyString | None = None

    def describe(self) -> str:
        prefix = f"@{self.org}/" if self.org else ""
        return f"{prefix}{self.name}@{self.version}"


@dataclass(frozen=True)
class GithubDependency:
    type: ClassVar[Literal["github"]] = "github"

    gh: GithubRef
    ref: GitRef | None = None
    path: NonEmptyString | None = None

    def describe(self) -> str:
        return _describe_remote(f"gh:{self.gh}", self.ref, self.path)


@dataclass(frozen=True)
class GitDependency:
    type: ClassVar[Literal["git"]] = "git"

    url: NormalizedGitUrl
    ref: GitRef | None = None
    path: NonEmptyString | None = None

    def describe(self) -> str:
        return _describe_remote(self.url, self.ref, self.path)


@dataclass(frozen=True)
class LocalDependency:
    type: ClassVar[Literal["local"]] = "local"

    path: AbsolutePath

    def describe(self) -> str:
        return f"path:{self.path}"


@dataclass(frozen=True)
class ClaudePluginDependency:
    """A plugin published through a Claude plugin marketplace."""

    type: ClassVar[Literal["claude-plugin"]] = "claude-plugin"

    plugin: NonEmptyString
    marketplace: str  # NormalizedGitUrl, owner/repo slug, URL or path spec

    def describe(self) -> str:
        return f"{self.plugin}@{self.marketplace}"


ValidatedDependency = Union[
    RegistryDependency,
    GithubDependency,
    GitDependency,
    LocalDependency,
    ClaudePluginDependency,
]


def _describe_remote(source: str, ref: GitRef | None, path: str | None) -> str:
    text = source
    if ref is not None:
        text += f"#{ref}"
    if path:
        text += f" ({path})"
    return text


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackageMetadata:
    """The ``[package]`` table."""

    name: NonEmptyString
    version: NonEmptyString
    description: str | None = None
    license: str | None = None
    org: str | None = None


@dataclass(frozen=True)
class ManifestExports:
    """``exports.auto_discover.skills``: a path relative to the manifest, or False."""

    skills: str | Literal[False] = "./skills"


@dataclass(frozen=True)
class Manifest:
    """A parsed manifest. Edits produce a new instance."""

    origin: ManifestOrigin
    agents: dict[str, bool] = field(default_factory=dict)
    dependencies: dict[Alias, ValidatedDependency] = field(default_factory=dict)
    package: PackageMetadata | None = None
    exports: ManifestExports | None = None


@dataclass(frozen=True)
class MergedDependency:
    dependency: ValidatedDependency
    origin: ManifestOrigin


@dataclass
class MergedManifest:
    """Several manifests folded into one. Recomputed every sync."""

    agents: dict[str, bool] = field(default_factory=dict)
    dependencies: dict[Alias, MergedDependency] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    sources: list[ManifestOrigin] = field(default_factory=list)
