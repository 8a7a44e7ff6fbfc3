"""Serialize manifests back to TOML."""

from __future__ import annotations

from pathlib import Path
from typing import Any, assert_never

import tomli_w

from skillsync.fs import atomic_write_text
from skillsync.manifest.models import (
    ClaudePluginDependency,
    GitDependency,
    GithubDependency,
    LocalDependency,
    Manifest,
    RegistryDependency,
    ValidatedDependency,
)


def serialize_manifest(manifest: Manifest) -> str:
    """Render *manifest* as TOML.

    Local paths inside the manifest's directory are written relative to it so
    the file stays portable.
    """
    output: dict[str, Any] = {}
    base_dir = Path(manifest.origin.source_path).parent

    if manifest.package is not None:
        package: dict[str, str] = {
            "name": manifest.package.name,
            "version": manifest.package.version,
        }
        for key in ("description", "license", "org"):
            value = getattr(manifest.package, key)
            if value:
                package[key] = value
        output["package"] = package

    if manifest.agents:
        output["agents"] = dict(manifest.agents)

    if manifest.dependencies:
        output["dependencies"] = {
            alias: _serialize_dependency(dep, base_dir)
            for alias, dep in manifest.dependencies.items()
        }

    if manifest.exports is not None:
        output["exports"] = {"auto_discover": {"skills": manifest.exports.skills}}

    text = tomli_w.dumps(output)
    return text if text.endswith("\n") else text + "\n"


def save_manifest(manifest: Manifest, path: Path | None = None) -> Path:
    """Write *manifest* to *path* (defaults to where it was loaded from)."""
    target = path or manifest.origin.source_path
    atomic_write_text(target, serialize_manifest(manifest))
    return target


def _serialize_dependency(dependency: ValidatedDependency, base_dir: Path) -> Any:
    if isinstance(dependency, RegistryDependency):
        return dependency.describe()
    if isinstance(dependency, (GithubDependency, GitDependency)):
        table: dict[str, str] = (
            {"gh": dependency.gh}
            if isinstance(dependency, GithubDependency)
            else {"git": dependency.url}
        )
        if dependency.ref is not None:
            table[dependency.ref.kind] = dependency.ref.value
        if dependency.path:
            table["path"] = dependency.path
        return table
    if isinstance(dependency, LocalDependency):
        return {"path": _portable_path(Path(dependency.path), base_dir)}
    if isinstance(dependency, ClaudePluginDependency):
        return {
            "type": "claude-plugin",
            "plugin": dependency.plugin,
            "marketplace": dependency.marketplace,
        }
    assert_never(dependency)


def _portable_path(path: Path, base_dir: Path) -> str:
    try:
        relative = path.relative_to(base_dir)
    except ValueError:
        return str(path)
    text = relative.as_posix()
    return "." if text == "." else f"./{text}"
