"""Locate the manifests that apply to a working directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from skillsync.config import SyncConfig
from skillsync.errors import IoError, ValidationError
from skillsync.fs import safe_stat
from skillsync.logging import get_logger
from skillsync.manifest.models import DiscoveredAt

logger = get_logger("manifest.discover")


@dataclass(frozen=True)
class ManifestLocation:
    path: Path
    discovered_at: DiscoveredAt


def discover_manifests(start_dir: Path, config: SyncConfig) -> list[ManifestLocation]:
    """Find every manifest that applies to *start_dir*, highest precedence first.

    Walks upward from *start_dir* and stops at the home directory (when the
    start is inside it) or at the filesystem root. The global manifest under
    ``~/.sk`` is always last.
    """
    start = _require_directory(start_dir)
    home = Path(os.path.realpath(config.home_dir))
    stop = home if _is_within(start, home) else Path(start.anchor)

    locations: list[ManifestLocation] = []
    seen: set[Path] = set()

    current = start
    while True:
        candidate = current / config.manifest_filename
        if _manifest_exists(candidate):
            if current == home:
                discovered_at: DiscoveredAt = "home"
            elif current == start:
                discovered_at = "cwd"
            else:
                discovered_at = "parent"
            locations.append(ManifestLocation(candidate, discovered_at))
            seen.add(candidate)

        if current == stop or current.parent == current:
            break
        current = current.parent

    global_path = Path(os.path.realpath(config.global_manifest_path))
    if global_path not in seen and _manifest_exists(global_path):
        locations.append(ManifestLocation(global_path, "global"))

    logger.debug(
        "Discovered manifests: %s",
        ", ".join(f"{loc.path} ({loc.discovered_at})" for loc in locations) or "none",
    )
    return locations


def find_project_root(start_dir: Path, config: SyncConfig) -> Path | None:
    """Directory of the closest manifest at or above *start_dir*."""
    for location in discover_manifests(start_dir, config):
        if location.discovered_at != "global":
            return location.path.parent
    return None


def _require_directory(path: Path) -> Path:
    resolved = Path(os.path.realpath(path))
    stats = safe_stat(resolved)
    if stats is None or not resolved.is_dir():
        raise ValidationError(
            "Manifest discovery start path must be a directory.",
            field="start",
            path=resolved,
        )
    return resolved


def _is_within(candidate: Path, parent: Path) -> bool:
    return candidate == parent or parent in candidate.parents


def _manifest_exists(path: Path) -> bool:
    stats = safe_stat(path)
    if stats is None:
        return False
    if not path.is_file():
        raise IoError(
            f"{path.name} exists but is not a file: {path}", operation="stat", path=path
        )
    return True
