"""
Repository scanning.

Enumerates every installable unit in a checked-out repository so it can be
indexed or offered to the user. Unlike :func:`detect_structure`, which picks
exactly one layout for a package, the scanner reports a root marketplace and
a root manifest side by side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from skillsync.coerce import GithubRef, NonEmptyString, coerce_github_ref
from skillsync.constants import (
    MANIFEST_FILENAME,
    MARKETPLACE_FILENAME,
    PLUGIN_DIR,
    SKILL_FILENAME,
)
from skillsync.errors import SkillSyncError, ValidationError
from skillsync.fs import is_dir, is_file, list_dirs, path_exists, read_text
from skillsync.logging import get_logger
from skillsync.manifest.models import (
    ClaudePluginDependency,
    GithubDependency,
    ValidatedDependency,
)
from skillsync.manifest.parse import parse_manifest
from skillsync.marketplace.parse import parse_marketplace
from skillsync.packages.detect import walk_skill_dirs
from skillsync.packages.frontmatter import SkillInfo, load_skill_info
from skillsync.packages.models import DetectionMethod

logger = get_logger("scan")

UnitKind = Literal["marketplace", "manifest", "single", "subdir"]


@dataclass(frozen=True)
class ScanUnit:
    kind: UnitKind
    path: str | None  # repo-relative posix path, None for the root
    declaration: ValidatedDependency
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "path": self.path,
            "declaration": self.declaration.describe(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ScanWarning:
    message: str
    path: str


@dataclass
class ScanResult:
    units: list[ScanUnit] = field(default_factory=list)
    warnings: list[ScanWarning] = field(default_factory=list)

    def warn(self, message: str, path: Path | str) -> None:
        warning = ScanWarning(message=message, path=str(path))
        if warning not in self.warnings:
            self.warnings.append(warning)


def scan_repo(repo_path: Path, github_repo: str) -> ScanResult:
    """Find the installable units of the repository at *repo_path*.

    A root marketplace contributes one unit per plugin and a root manifest
    with ``[package]`` contributes one unit. Only when neither yields a unit
    is the tree walked for ``subdir`` and ``single`` layouts.

    Raises:
        ValidationError: If *repo_path* is not a directory or *github_repo*
            is not ``owner/repo``.
    """
    root = Path(repo_path)
    if not root.is_absolute():
        raise ValidationError(f"Repo path is not absolute: {repo_path}", field="path")
    if not is_dir(root):
        raise ValidationError(f"Repo path is not a directory: {repo_path}", field="path")
    slug = coerce_github_ref(github_repo)
    if slug is None:
        raise ValidationError(f"Invalid GitHub repo: {github_repo}", field="githubRepo")

    result = ScanResult()

    marketplace_path = root / PLUGIN_DIR / MARKETPLACE_FILENAME
    if path_exists(marketplace_path):
        if is_file(marketplace_path):
            result.units.extend(_marketplace_units(marketplace_path, slug, result))
        else:
            result.warn(f"Expected file at {marketplace_path}.", marketplace_path)

    manifest_path = root / MANIFEST_FILENAME
    if path_exists(manifest_path):
        if is_file(manifest_path):
            unit = _manifest_unit(manifest_path, slug, result)
            if unit is not None:
                result.units.append(unit)
        else:
            result.warn(f"Expected file at {manifest_path}.", manifest_path)

    if result.units:
        return result

    def classify(path: Path) -> DetectionMethod | None:
        return _classify_for_scan(path, result)

    for path, method in walk_skill_dirs(root, classify):
        relative = _repo_relative(root, path)
        declaration = _github_declaration(slug, relative)
        if method == "subdir":
            result.units.append(
                ScanUnit(
                    kind="subdir",
                    path=relative,
                    declaration=declaration,
                    metadata={"name": path.name},
                )
            )
        else:
            info = _skill_info(path, result)
            result.units.append(
                ScanUnit(
                    kind="single",
                    path=relative,
                    declaration=declaration,
                    metadata=_skill_metadata(info) if info else None,
                )
            )

    logger.debug(
        "Scanned %s: %d unit(s), %d warning(s)", slug, len(result.units), len(result.warnings)
    )
    return result


def _marketplace_units(path: Path, slug: GithubRef, result: ScanResult) -> list[ScanUnit]:
    try:
        info = parse_marketplace(read_text(path))
    except SkillSyncError as e:
        result.warn(e.message, path)
        return []
    return [
        ScanUnit(
            kind="marketplace",
            path=None,
            declaration=ClaudePluginDependency(
                plugin=NonEmptyString(plugin.name), marketplace=slug
            ),
            metadata=plugin.metadata(),
        )
        for plugin in info.plugins
    ]


def _manifest_unit(path: Path, slug: GithubRef, result: ScanResult) -> ScanUnit | None:
    try:
        manifest = parse_manifest(read_text(path), path)
    except SkillSyncError as e:
        result.warn(e.message, path)
        return None
    if manifest.package is None:
        return None

    package = manifest.package
    metadata = {
        key: value
        for key, value in (
            ("name", package.name),
            ("version", package.version),
            ("description", package.description),
            ("license", package.license),
            ("org", package.org),
        )
        if value
    }
    return ScanUnit(
        kind="manifest",
        path=None,
        declaration=GithubDependency(gh=slug),
        metadata=metadata,
    )


def _classify_for_scan(path: Path, result: ScanResult) -> DetectionMethod | None:
    for child in list_dirs(path):
        if is_file(child / SKILL_FILENAME) and _skill_info(child, result) is not None:
            return "subdir"
    if is_file(path / SKILL_FILENAME) and _skill_info(path, result) is not None:
        return "single"
    return None


def _skill_info(skill_dir: Path, result: ScanResult) -> SkillInfo | None:
    skill_file = skill_dir / SKILL_FILENAME
    try:
        return load_skill_info(skill_file)
    except SkillSyncError as e:
        result.warn(e.message, skill_file)
        return None


def _skill_metadata(info: SkillInfo) -> dict[str, Any]:
    data: dict[str, Any] = {"name": info.name}
    if info.description:
        data["description"] = info.description
    return data


def _repo_relative(root: Path, path: Path) -> str | None:
    relative = path.relative_to(root).as_posix()
    return None if relative in ("", ".") else relative


def _github_declaration(slug: GithubRef, relative: str | None) -> GithubDependency:
    if relative:
        return GithubDependency(gh=slug, path=NonEmptyString(relative))
    return GithubDependency(gh=slug)
