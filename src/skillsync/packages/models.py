"""Package data models: canonical descriptors, fetched trees, skills."""

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


@dataclass(frozen=True)
class PackageOrigin:
    """Links a package back to the manifest entry that declared it."""

    manifest_path: Path
    alias: Alias


@dataclass(frozen=True)
class FetchStrategy:
    mode: Literal["clone", "symlink"]
    sparse: bool = False

    @classmethod
    def clone(cls, sparse: bool = False) -> FetchStrategy:
        return cls(mode="clone", sparse=sparse)

    @classmethod
    def symlink(cls) -> FetchStrategy:
        return cls(mode="symlink")


@dataclass(frozen=True)
class RegistryPackage:
    type: ClassVar[Literal["registry"]] = "registry"

    origin: PackageOrigin
    fetch_strategy: FetchStrategy
    name: NonEmptyString
    version: NonEmptyString
    registry: str
    org: NonEmptyString | None = None


@dataclass(frozen=True)
class GithubPackage:
    type: ClassVar[Literal["github"]] = "github"

    origin: PackageOrigin
    fetch_strategy: FetchStrategy
    gh: GithubRef
    ref: GitRef | None = None
    path: NonEmptyString | None = None


@dataclass(frozen=True)
class GitPackage:
    type: ClassVar[Literal["git"]] = "git"

    origin: PackageOrigin
    fetch_strategy: FetchStrategy
    url: NormalizedGitUrl
    ref: GitRef | None = None
    path: NonEmptyString | None = None


@dataclass(frozen=True)
class LocalPackage:
    type: ClassVar[Literal["local"]] = "local"

    origin: PackageOrigin
    fetch_strategy: FetchStrategy
    absolute_path: AbsolutePath


@dataclass(frozen=True)
class ClaudePluginPackage:
    type: ClassVar[Literal["claude-plugin"]] = "claude-plugin"

    origin: PackageOrigin
    fetch_strategy: FetchStrategy
    plugin: NonEmptyString
    marketplace: str


CanonicalPackage = Union[
    RegistryPackage,
    GithubPackage,
    GitPackage,
    LocalPackage,
    ClaudePluginPackage,
]

RemotePackage = Union[GithubPackage, GitPackage]


# ---------------------------------------------------------------------------
# Fetch, detect, extract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchedPackage:
    canonical: CanonicalPackage
    package_path: Path
    repo_path: Path


DetectionMethod = Literal["manifest", "plugin", "subdir", "single", "marketplace"]
ExtractionMode = Literal["strict", "lenient"]


@dataclass(frozen=True)
class Detection:
    """How a package directory is laid out.

    Which optional fields are set depends on ``method``:

    - manifest: ``manifest_path``
    - plugin: ``plugin_json_path`` and ``skills_dir`` (None when missing)
    - subdir: ``root_dir``
    - single: ``skill_path``
    - marketplace: ``marketplace_path``
    """

    method: DetectionMethod
    manifest_path: Path | None = None
    plugin_json_path: Path | None = None
    skills_dir: Path | None = None
    root_dir: Path | None = None
    skill_path: Path | None = None
    marketplace_path: Path | None = None


@dataclass(frozen=True)
class DetectedPackage:
    canonical: CanonicalPackage
    package_path: Path
    detection: Detection


@dataclass(frozen=True)
class Skill:
    name: NonEmptyString
    source_path: Path
    origin: PackageOrigin


@dataclass
class ExtractionResult:
    skills: list[Skill] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractedPackage:
    canonical: CanonicalPackage
    prefix: str
    skills: tuple[Skill, ...]
