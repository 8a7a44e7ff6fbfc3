"""
Parse ``agents.toml`` manifests into validated :class:`Manifest` objects.

Example manifest::

    [package]
    name = "my-skills"
    version = "1.0.0"

    [agents]
    claude-code = true
    codex = false

    [dependencies]
    superpowers = { gh = "obra/superpowers", tag = "v1.2.0" }
    tools = { git = "git@github.com:acme/tools.git", path = "skills/tools" }
    local-dev = { path = "../my-local-skills" }
    review = { type = "claude-plugin", plugin = "review", marketplace = "acme/plugins" }
    pinned = "@acme/pinned@2.0.0"

    [exports.auto_discover]
    skills = "./skills"
"""

from __future__ import annotations

import re
import tomllib
from pathlib import Path
from typing import Any

from skillsync.coerce import (
    Alias,
    coerce_absolute_path,
    coerce_agent_id,
    coerce_alias,
    coerce_git_ref,
    coerce_git_url,
    coerce_github_ref,
    coerce_non_empty,
)
from skillsync.errors import ManifestError
from skillsync.fs import read_text
from skillsync.logging import get_logger
from skillsync.manifest.models import (
    ClaudePluginDependency,
    DiscoveredAt,
    GitDependency,
    GithubDependency,
    LocalDependency,
    Manifest,
    ManifestExports,
    ManifestOrigin,
    PackageMetadata,
    RegistryDependency,
    ValidatedDependency,
)

logger = get_logger("manifest.parse")

_TOP_LEVEL_KEYS = {"package", "agents", "dependencies", "exports"}
_PACKAGE_KEYS = {"name", "version", "description", "license", "org"}
_REF_KEYS = {"tag", "branch", "rev"}
_GITHUB_KEYS = {"gh", "path"} | _REF_KEYS
_GIT_KEYS = {"git", "path"} | _REF_KEYS
_LOCAL_KEYS = {"path"}
_PLUGIN_KEYS = {"type", "plugin", "marketplace"}

_REGISTRY_ORG = re.compile(r"^@([^/]+)/([^@]+)@(.+)$")
_REGISTRY_SIMPLE = re.compile(r"^([^@]+)@(.+)$")


def load_manifest(path: Path, discovered_at: DiscoveredAt = "cwd") -> Manifest:
    """Read and parse the manifest at *path*."""
    return parse_manifest(read_text(path), path, discovered_at)


def parse_manifest(
    text: str,
    source_path: Path,
    discovered_at: DiscoveredAt = "cwd",
) -> Manifest:
    """Parse manifest *text*.

    Raises:
        ManifestError: On invalid TOML, unknown keys or bad declarations.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(
            "invalid_toml",
            f"Invalid TOML in {source_path}: {e}",
            source_path=source_path,
        ) from e

    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ManifestError(
            "invalid_manifest",
            f"Unknown top-level keys in {source_path}: {', '.join(sorted(unknown))}",
            source_path=source_path,
        )

    origin = ManifestOrigin(source_path=source_path, discovered_at=discovered_at)
    return Manifest(
        origin=origin,
        agents=_parse_agents(data.get("agents", {}), source_path),
        dependencies=_parse_dependencies(data.get("dependencies", {}), source_path),
        package=_parse_package(data.get("package"), source_path),
        exports=_parse_exports(data.get("exports"), source_path),
    )


def _parse_package(value: Any, source_path: Path) -> PackageMetadata | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ManifestError(
            "invalid_manifest", "[package] must be a table.", source_path=source_path
        )

    unknown = set(value) - _PACKAGE_KEYS
    if unknown:
        raise ManifestError(
            "invalid_manifest",
            f"Unknown keys in [package]: {', '.join(sorted(unknown))}",
            source_path=source_path,
            field="package",
        )

    fields: dict[str, str | None] = {}
    for key in _PACKAGE_KEYS:
        raw = value.get(key)
        if raw is None:
            fields[key] = None
            continue
        if not isinstance(raw, str) or coerce_non_empty(raw) is None:
            raise ManifestError(
                "coercion_failed",
                f"package.{key} must be a non-empty string.",
                source_path=source_path,
                field=f"package.{key}",
            )
        fields[key] = raw.strip()

    name = fields.pop("name")
    version = fields.pop("version")
    if name is None or version is None:
        raise ManifestError(
            "invalid_manifest",
            "[package] requires name and version.",
            source_path=source_path,
            field="package",
        )

    return PackageMetadata(
        name=coerce_non_empty(name),  # type: ignore[arg-type]
        version=coerce_non_empty(version),  # type: ignore[arg-type]
        description=fields["description"],
        license=fields["license"],
        org=fields["org"],
    )


def _parse_agents(value: Any, source_path: Path) -> dict[str, bool]:
    if not isinstance(value, dict):
        raise ManifestError(
            "invalid_manifest", "[agents] must be a table.", source_path=source_path
        )

    agents: dict[str, bool] = {}
    for raw_id, enabled in value.items():
        if not isinstance(enabled, bool):
            raise ManifestError(
                "invalid_manifest",
                f"agents.{raw_id} must be true or false.",
                source_path=source_path,
                field=f"agents.{raw_id}",
            )
        agent_id = coerce_agent_id(raw_id)
        if agent_id is None:
            logger.debug("Ignoring unknown agent %r in %s", raw_id, source_path)
            continue
        agents[agent_id] = enabled
    return agents


def _parse_exports(value: Any, source_path: Path) -> ManifestExports | None:
    if value is None:
        return None
    if not isinstance(value, dict) or set(value) - {"auto_discover"}:
        raise ManifestError(
            "invalid_manifest",
            "[exports] only supports auto_discover.",
            source_path=source_path,
            field="exports",
        )

    auto = value.get("auto_discover", {})
    if not isinstance(auto, dict) or set(auto) - {"skills"}:
        raise ManifestError(
            "invalid_manifest",
            "[exports.auto_discover] only supports skills.",
            source_path=source_path,
            field="exports.auto_discover",
        )

    skills = auto.get("skills", "./skills")
    if skills is False:
        return ManifestExports(skills=False)
    if not isinstance(skills, str) or coerce_non_empty(skills) is None:
        raise ManifestError(
            "coercion_failed",
            "exports.auto_discover.skills must be a non-empty string or false.",
            source_path=source_path,
            field="exports.auto_discover.skills",
        )
    return ManifestExports(skills=skills.strip())


def _parse_dependencies(
    value: Any,
    source_path: Path,
) -> dict[Alias, ValidatedDependency]:
    if not isinstance(value, dict):
        raise ManifestError(
            "invalid_manifest", "[dependencies] must be a table.", source_path=source_path
        )

    dependencies: dict[Alias, ValidatedDependency] = {}
    for raw_alias, declaration in value.items():
        alias = coerce_alias(raw_alias)
        if alias is None:
            raise ManifestError(
                "coercion_failed",
                f'Invalid alias "{raw_alias}": aliases cannot be empty or contain '
                "'/', '\\', '.' or ':'.",
                source_path=source_path,
                key=raw_alias,
                field="alias",
            )
        dependencies[alias] = parse_declaration(declaration, alias, source_path)
    return dependencies


def parse_declaration(
    declaration: Any,
    alias: str,
    source_path: Path,
) -> ValidatedDependency:
    """Validate a single dependency declaration (string or table)."""
    if isinstance(declaration, str):
        return _parse_registry(declaration, alias, source_path)

    if not isinstance(declaration, dict):
        raise ManifestError(
            "invalid_dependency",
            f'Dependency "{alias}" must be a string or a table.',
            source_path=source_path,
            key=alias,
        )

    for key, raw in declaration.items():
        if not isinstance(raw, str):
            raise ManifestError(
                "invalid_dependency",
                f'Dependency "{alias}": {key} must be a string.',
                source_path=source_path,
                key=alias,
                field=key,
            )

    if "type" in declaration:
        return _parse_claude_plugin(declaration, alias, source_path)

    has_gh = "gh" in declaration
    has_git = "git" in declaration
    if has_gh and has_git:
        raise ManifestError(
            "invalid_dependency",
            f'Dependency "{alias}" must declare only one of gh, git or path.',
            source_path=source_path,
            key=alias,
        )
    if has_gh:
        _reject_unknown_keys(declaration, _GITHUB_KEYS, alias, source_path)
        return _parse_github(declaration, alias, source_path)
    if has_git:
        _reject_unknown_keys(declaration, _GIT_KEYS, alias, source_path)
        return _parse_git(declaration, alias, source_path)
    if "path" in declaration:
        _reject_unknown_keys(declaration, _LOCAL_KEYS, alias, source_path)
        return _parse_local(declaration, alias, source_path)

    raise ManifestError(
        "invalid_dependency",
        f'Dependency "{alias}" must declare one of gh, git or path.',
        source_path=source_path,
        key=alias,
    )


def _reject_unknown_keys(
    declaration: dict[str, Any],
    allowed: set[str],
    alias: str,
    source_path: Path,
) -> None:
    unknown = set(declaration) - allowed
    if unknown:
        raise ManifestError(
            "invalid_dependency",
            f'Dependency "{alias}" has unsupported keys: {", ".join(sorted(unknown))}',
            source_path=source_path,
            key=alias,
        )


def _parse_registry(value: str, alias: str, source_path: Path) -> RegistryDependency:
    text = value.strip()
    match = _REGISTRY_ORG.match(text)
    if match:
        org, name, version = (coerce_non_empty(part) for part in match.groups())
        if org and name and version:
            return RegistryDependency(name=name, version=version, org=org)
    else:
        match = _REGISTRY_SIMPLE.match(text)
        if match:
            name, version = (coerce_non_empty(part) for part in match.groups())
            if name and version:
                return RegistryDependency(name=name, version=version)

    raise ManifestError(
        "coercion_failed",
        f"Invalid registry dependency format: {value}. "
        "Expected @org/name@version or name@version",
        source_path=source_path,
        key=alias,
    )


def _parse_ref(declaration: dict[str, str], alias: str, source_path: Path):
    try:
        return coerce_git_ref(
            tag=declaration.get("tag"),
            branch=declaration.get("branch"),
            rev=declaration.get("rev"),
        )
    except ValueError as e:
        raise ManifestError(
            "coercion_failed", str(e), source_path=source_path, key=alias
        ) from e


def _parse_subpath(declaration: dict[str, str], alias: str, source_path: Path):
    if "path" not in declaration:
        return None
    path = coerce_non_empty(declaration["path"])
    if path is None:
        raise ManifestError(
            "coercion_failed",
            "path must be non-empty",
            source_path=source_path,
            key=alias,
            field="path",
        )
    return path


def _parse_github(declaration: dict[str, str], alias: str, source_path: Path) -> GithubDependency:
    gh = coerce_github_ref(declaration["gh"])
    if gh is None:
        raise ManifestError(
            "coercion_failed",
            f"Invalid GitHub reference: {declaration['gh']}. Expected owner/repo format.",
            source_path=source_path,
            key=alias,
            field="gh",
        )
    return GithubDependency(
        gh=gh,
        ref=_parse_ref(declaration, alias, source_path),
        path=_parse_subpath(declaration, alias, source_path),
    )


def _parse_git(declaration: dict[str, str], alias: str, source_path: Path) -> GitDependency:
    url = coerce_git_url(declaration["git"])
    if url is None:
        raise ManifestError(
            "coercion_failed",
            f"Invalid git URL: {declaration['git']}",
            source_path=source_path,
            key=alias,
            field="git",
        )
    return GitDependency(
        url=url,
        ref=_parse_ref(declaration, alias, source_path),
        path=_parse_subpath(declaration, alias, source_path),
    )


def _parse_local(declaration: dict[str, str], alias: str, source_path: Path) -> LocalDependency:
    path = coerce_absolute_path(declaration["path"], base=Path(source_path).parent)
    if path is None:
        raise ManifestError(
            "coercion_failed",
            f"Invalid local path: {declaration['path']}",
            source_path=source_path,
            key=alias,
            field="path",
        )
    return LocalDependency(path=path)


def _parse_claude_plugin(
    declaration: dict[str, str],
    alias: str,
    source_path: Path,
) -> ClaudePluginDependency:
    if declaration["type"] != "claude-plugin":
        raise ManifestError(
            "invalid_dependency",
            f'Dependency "{alias}" has unsupported type "{declaration["type"]}".',
            source_path=source_path,
            key=alias,
            field="type",
        )
    _reject_unknown_keys(declaration, _PLUGIN_KEYS, alias, source_path)

    plugin = coerce_non_empty(declaration.get("plugin", ""))
    if plugin is None:
        raise ManifestError(
            "coercion_failed",
            "plugin must be non-empty",
            source_path=source_path,
            key=alias,
            field="plugin",
        )

    marketplace = coerce_non_empty(declaration.get("marketplace", ""))
    if marketplace is None:
        raise ManifestError(
            "coercion_failed",
            "marketplace must be non-empty",
            source_path=source_path,
            key=alias,
            field="marketplace",
        )

    return ClaudePluginDependency(
        plugin=plugin,
        marketplace=normalize_marketplace_spec(marketplace),
    )


def normalize_marketplace_spec(spec: str) -> str:
    """Git URLs are normalized; slugs, JSON URLs and paths are kept verbatim."""
    if spec.startswith("git@") or ("://" in spec and not spec.endswith(".json")):
        url = coerce_git_url(spec)
        if url is not None:
            return url
    return spec
