"""
Package structure detection.

A package root is classified by an ordered set of checks; the first match
wins because layouts can coexist on disk:

1. ``agents.toml`` with a ``[package]`` table -> ``manifest``
2. ``.claude-plugin/marketplace.json`` -> ``marketplace``
3. ``.claude-plugin/plugin.json`` -> ``plugin``
4. a directory walk for ``subdir`` (children are skills) or ``single``
   (the directory is a skill)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

from skillsync.constants import (
    IGNORED_DIRS,
    MANIFEST_FILENAME,
    MARKETPLACE_FILENAME,
    PLUGIN_DIR,
    PLUGIN_FILENAME,
    PLUGIN_SKILLS_DIR,
    SKILL_FILENAME,
)
from skillsync.errors import DetectionError
from skillsync.fs import is_dir, is_file, list_dirs, safe_stat
from skillsync.logging import get_logger
from skillsync.manifest.parse import load_manifest
from skillsync.packages.models import (
    ClaudePluginPackage,
    DetectedPackage,
    Detection,
    DetectionMethod,
    FetchedPackage,
    GithubPackage,
    GitPackage,
)

logger = get_logger("detect")

# Classifies one directory during the walk; None means "keep descending".
Classifier = Callable[[Path], DetectionMethod | None]


def detect_structure(package_path: Path, *, allow_marketplace: bool = True) -> Detection:
    """Classify the package rooted at *package_path*.

    Args:
        package_path: Package root directory
        allow_marketplace: False when the root is a sub-path of a repository,
            where a marketplace descriptor is rejected

    Raises:
        DetectionError: If the root is missing or no structure is found.
    """
    _require_directory(package_path)

    manifest_path = package_path / MANIFEST_FILENAME
    if is_file(manifest_path) and load_manifest(manifest_path).package is not None:
        return Detection(method="manifest", manifest_path=manifest_path)

    plugin_dir = package_path / PLUGIN_DIR
    if is_dir(plugin_dir):
        marketplace_path = plugin_dir / MARKETPLACE_FILENAME
        plugin_json = plugin_dir / PLUGIN_FILENAME
        if is_file(marketplace_path):
            if not allow_marketplace:
                raise DetectionError(
                    f"Marketplaces must live at the repository root: {package_path}",
                    field="structure",
                    path=package_path,
                )
            return Detection(method="marketplace", marketplace_path=marketplace_path)
        if is_file(plugin_json):
            return _plugin_detection(package_path)
        raise DetectionError(
            f"Found {PLUGIN_DIR} without {PLUGIN_FILENAME} or {MARKETPLACE_FILENAME}.",
            field="structure",
            path=package_path,
        )

    for path, method in walk_skill_dirs(package_path, classify_dir):
        logger.debug("Detected %s layout at %s", method, path)
        if method == "subdir":
            return Detection(method="subdir", root_dir=path)
        return Detection(method="single", skill_path=path)

    raise DetectionError(
        f"No package structure found in {package_path}.",
        field="structure",
        path=package_path,
    )


def detect_plugin(package_path: Path) -> Detection:
    """Require a Claude plugin layout at *package_path*."""
    _require_directory(package_path)
    if not is_file(package_path / PLUGIN_DIR / PLUGIN_FILENAME):
        raise DetectionError(
            "Claude plugins must include .claude-plugin/plugin.json in the plugin source.",
            field="structure",
            path=package_path,
        )
    return _plugin_detection(package_path)


def detect_package(fetched: FetchedPackage) -> DetectedPackage:
    """Detect the structure of a fetched package.

    Plugins expanded from a marketplace must have a plugin layout. A remote
    package declared with a sub-path may not resolve to a marketplace.
    """
    canonical = fetched.canonical
    if isinstance(canonical, ClaudePluginPackage):
        detection = detect_plugin(fetched.package_path)
    else:
        sub_pathed = isinstance(canonical, (GithubPackage, GitPackage)) and bool(canonical.path)
        detection = detect_structure(fetched.package_path, allow_marketplace=not sub_pathed)
    return DetectedPackage(
        canonical=canonical,
        package_path=fetched.package_path,
        detection=detection,
    )


def classify_dir(path: Path) -> DetectionMethod | None:
    """``subdir`` if any child holds a SKILL.md, ``single`` if *path* does."""
    for child in list_dirs(path):
        if is_file(child / SKILL_FILENAME):
            return "subdir"
    if is_file(path / SKILL_FILENAME):
        return "single"
    return None


def walk_skill_dirs(root: Path, classify: Classifier) -> Iterator[tuple[Path, DetectionMethod]]:
    """Depth-first walk yielding classified directories.

    Children of a classified directory are never visited. Ignored
    directories are skipped. Siblings are visited in name order.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        method = classify(current)
        if method is not None:
            yield current, method
            continue
        children = [child for child in list_dirs(current) if child.name not in IGNORED_DIRS]
        stack.extend(reversed(children))


def _plugin_detection(package_path: Path) -> Detection:
    skills_dir = package_path / PLUGIN_SKILLS_DIR
    return Detection(
        method="plugin",
        plugin_json_path=package_path / PLUGIN_DIR / PLUGIN_FILENAME,
        skills_dir=skills_dir if is_dir(skills_dir) else None,
    )


def _require_directory(path: Path) -> None:
    if safe_stat(path) is None:
        raise DetectionError(
            f"Package path does not exist: {path}", field="structure", path=path
        )
    if not path.is_dir():
        raise DetectionError(
            f"Package path is not a directory: {path}", field="structure", path=path
        )
