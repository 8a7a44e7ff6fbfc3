"""
Marketplace resolution.

A ``claude-plugin`` dependency names a plugin inside a marketplace. For Claude
Code the plugin is handed to the ``claude`` CLI. For every other agent the
plugin's source is resolved from the marketplace descriptor and fetched like
any other package, then installed as skills.
"""

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from skillsync.coerce import (
    Alias,
    GithubRef,
    NonEmptyString,
    coerce_absolute_path,
    coerce_alias,
    coerce_git_url,
    coerce_github_ref,
)
from skillsync.config import SyncConfig
from skillsync.constants import MARKETPLACE_FILENAME, PLUGIN_DIR
from skillsync.errors import FetchError, MarketplaceError, NotFoundError
from skillsync.fs import is_dir, path_exists, read_text
from skillsync.logging import get_logger
from skillsync.marketplace.claude import ClaudeCli
from skillsync.marketplace.models import (
    LoadedMarketplace,
    MarketplaceInfo,
    MarketplaceSource,
    PluginSource,
)
from skillsync.marketplace.parse import parse_marketplace
from skillsync.packages.fetch import RepoCache, check_local_directory
from skillsync.packages.models import (
    CanonicalPackage,
    ClaudePluginPackage,
    FetchedPackage,
    FetchStrategy,
    PackageOrigin,
)

logger = get_logger("marketplace")

MARKETPLACE_ALIAS = Alias("marketplace")

_GITHUB_PREFIXES = ("github:", "gh:")


def strip_github_prefix(value: str) -> str:
    for prefix in _GITHUB_PREFIXES:
        if value.startswith(prefix):
            return value[len(prefix) :]
    return value


def _expand_home(value: str) -> str:
    return os.path.expanduser(value)


def _github_slug(value: str) -> GithubRef | None:
    slug = value.strip()
    if slug.endswith(".git"):
        slug = slug[: -len(".git")]
    return coerce_github_ref(slug)


def looks_like_marketplace_url(value: str) -> bool:
    if "://" not in value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and parsed.path.endswith(MARKETPLACE_FILENAME)


def looks_like_git_url(value: str) -> bool:
    return value.startswith("git@") or "://" in value


# ---------------------------------------------------------------------------
# Marketplace specs
# ---------------------------------------------------------------------------


def resolve_marketplace_source(spec: str, manifest_dir: Path) -> MarketplaceSource:
    """Classify a marketplace spec from a manifest.

    Checked in order: ``github:``/``gh:`` prefix, an http(s) URL ending in
    ``marketplace.json``, a git URL, an existing directory (relative to the
    manifest, ``~`` expanded), and finally an ``owner/repo`` slug.

    Raises:
        MarketplaceError: If the spec matches none of these.
    """
    trimmed = spec.strip()
    if not trimmed:
        raise MarketplaceError("Marketplace spec must not be empty.", field="marketplace")

    stripped = strip_github_prefix(trimmed)
    if stripped != trimmed:
        slug = _github_slug(stripped)
        if slug is None:
            raise MarketplaceError(
                f'GitHub marketplace "{stripped}" must be in the form owner/repo.',
                field="marketplace",
            )
        return MarketplaceSource(kind="github", slug=slug)

    if looks_like_marketplace_url(trimmed):
        return MarketplaceSource(kind="url", url=trimmed)

    if looks_like_git_url(trimmed):
        return MarketplaceSource(kind="git", url=coerce_git_url(trimmed) or trimmed)

    candidate = coerce_absolute_path(_expand_home(trimmed), manifest_dir)
    if candidate is not None and path_exists(Path(candidate)):
        if not is_dir(Path(candidate)):
            raise MarketplaceError(
                f"Marketplace path is not a directory: {candidate}",
                field="marketplace",
                path=candidate,
            )
        return MarketplaceSource(kind="local", path=candidate)

    slug = _github_slug(trimmed)
    if slug is None:
        raise MarketplaceError(
            f'Marketplace "{trimmed}" must be a GitHub owner/repo, a git URL, '
            "a marketplace.json URL, or a local directory.",
            field="marketplace",
        )
    return MarketplaceSource(kind="github", slug=slug)


async def fetch_marketplace_json(
    url: str,
    *,
    timeout: float = 10.0,
    retries: int = 3,
    backoff: float = 0.5,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """GET a ``marketplace.json`` URL.

    Connection errors and 5xx responses are retried with exponential backoff;
    other non-2xx responses fail immediately.

    Raises:
        FetchError: When the request ultimately fails.
    """
    attempts = max(1, retries)
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    ) as client:
        for attempt in range(1, attempts + 1):
            try:
                response = await client.get(url)
            except httpx.TransportError as e:
                logger.debug("Marketplace request %s failed (attempt %d): %s", url, attempt, e)
                if attempt == attempts:
                    raise FetchError(
                        "io_error", f"Unable to fetch marketplace URL: {url}.", spec=url
                    ) from e
            else:
                if response.is_success:
                    return response.text
                if response.status_code < 500 or attempt == attempts:
                    raise FetchError(
                        "io_error",
                        f"Marketplace request failed ({response.status_code} "
                        f"{response.reason_phrase}).",
                        spec=url,
                    )
                logger.debug(
                    "Marketplace request %s returned %d (attempt %d)",
                    url,
                    response.status_code,
                    attempt,
                )
            await asyncio.sleep(backoff * (2 ** (attempt - 1)))

    raise FetchError("io_error", f"Unable to fetch marketplace URL: {url}.", spec=url)


class MarketplaceLoader:
    """Loads marketplace descriptors, caching each spec for one agent pass."""

    def __init__(self, repo_cache: RepoCache, config: SyncConfig | None = None) -> None:
        self.repo_cache = repo_cache
        self.config = config or SyncConfig()
        self._cache: dict[str, LoadedMarketplace] = {}

    async def load(self, spec: str, manifest_path: Path) -> LoadedMarketplace:
        cached = self._cache.get(spec)
        if cached is not None:
            return cached

        source = resolve_marketplace_source(spec, manifest_path.parent)
        origin = PackageOrigin(manifest_path=manifest_path, alias=MARKETPLACE_ALIAS)

        root: Path | None
        if source.kind == "url":
            assert source.url is not None
            text = await fetch_marketplace_json(
                source.url,
                timeout=self.config.http_timeout,
                retries=self.config.http_retries,
                backoff=self.config.http_backoff,
            )
            root = None
            descriptor: Path | str = source.url
        else:
            if source.kind == "local":
                assert source.path is not None
                root = Path(source.path)
            elif source.kind == "github":
                assert source.slug is not None
                root = await self.repo_cache.github(source.slug, origin)
            else:
                assert source.url is not None
                root = await self.repo_cache.git(source.url, origin)
            descriptor = root / PLUGIN_DIR / MARKETPLACE_FILENAME
            text = read_text(descriptor)

        try:
            info = parse_marketplace(text)
        except MarketplaceError as e:
            raise MarketplaceError(f"{e.message} ({descriptor})", field=e.field) from e

        loaded = LoadedMarketplace(info=info, source=source, root=root)
        self._cache[spec] = loaded
        logger.debug("Loaded marketplace %s with %d plugin(s)", info.name, len(info.plugins))
        return loaded


# ---------------------------------------------------------------------------
# Plugin sources
# ---------------------------------------------------------------------------


def resolve_plugin_source(
    marketplace: MarketplaceInfo,
    plugin: str,
    base_path: Path,
) -> PluginSource:
    """Resolve the ``source`` of *plugin* in *marketplace*.

    A string source is a path under ``metadata.pluginRoot`` (itself relative
    to *base_path*). An object source is ``{"source": "github", "repo": ...}``
    or ``{"source": "url", "url": ...}``.

    Raises:
        NotFoundError: If the plugin is not listed.
        MarketplaceError: If the source is malformed.
    """
    name = plugin.strip()
    if not name:
        raise MarketplaceError("Plugin name must be non-empty.", field="plugin")

    entry = marketplace.find_plugin(name)
    if entry is None:
        raise NotFoundError(f'Plugin "{name}" not found in marketplace.', target="plugin")

    source: Any = entry.source
    if isinstance(source, str):
        return _resolve_path_source(source, base_path, marketplace.plugin_root)

    if not isinstance(source, dict):
        raise MarketplaceError(
            f'Plugin "{name}" source must be a string or object declaration.', field="source"
        )

    source_type = source.get("source")
    source_type = source_type.strip() if isinstance(source_type, str) else ""
    if not source_type:
        raise MarketplaceError(
            f'Plugin "{name}" source must include a non-empty "source" field.', field="source"
        )

    if source_type == "github":
        repo = source.get("repo")
        if not isinstance(repo, str) or not repo.strip():
            raise MarketplaceError(
                f'Plugin "{name}" source repo must be a non-empty string.', field="source"
            )
        slug = coerce_github_ref(strip_github_prefix(repo.strip()))
        if slug is None:
            raise MarketplaceError(
                f'Plugin "{name}" source repo must be in owner/repo format.', field="source"
            )
        return PluginSource(kind="github", slug=slug)

    if source_type == "url":
        url = source.get("url")
        if not isinstance(url, str) or not url.strip():
            raise MarketplaceError(
                f'Plugin "{name}" source url must be a non-empty string.', field="source"
            )
        normalized = coerce_git_url(url)
        if normalized is None:
            raise MarketplaceError(
                f'Plugin "{name}" source url must be a valid git URL.', field="source"
            )
        return PluginSource(kind="git", url=normalized)

    raise MarketplaceError(
        f'Plugin "{name}" source must use "github" or "url" for source type.', field="source"
    )


def _resolve_path_source(value: str, base_path: Path, plugin_root: str | None) -> PluginSource:
    trimmed = value.strip()
    if not trimmed:
        raise MarketplaceError("Plugin source must not be empty.", field="source")

    base_dir = base_path
    if plugin_root:
        root = coerce_absolute_path(_expand_home(plugin_root), base_path)
        if root is None:
            raise MarketplaceError(
                "Marketplace pluginRoot is invalid.", field="metadata.pluginRoot"
            )
        base_dir = Path(root)

    resolved = coerce_absolute_path(_expand_home(trimmed), base_dir)
    if resolved is None:
        raise MarketplaceError("Plugin source path is invalid.", field="source")
    return PluginSource(kind="local", path=resolved)


@dataclass(frozen=True)
class ResolvedPlugin:
    canonical: ClaudePluginPackage
    source: PluginSource


async def fetch_plugin_sources(
    plugins: list[ResolvedPlugin],
    repo_cache: RepoCache,
) -> list[FetchedPackage]:
    """Materialize each resolved plugin; repositories are cloned once."""
    fetched: list[FetchedPackage] = []
    for plugin in plugins:
        origin = plugin.canonical.origin
        source = plugin.source
        if source.kind == "local":
            assert source.path is not None
            path = Path(source.path)
            check_local_directory(path, origin=origin, label="Plugin source")
        elif source.kind == "github":
            assert source.slug is not None
            path = await repo_cache.github(source.slug, origin)
        else:
            assert source.url is not None
            path = await repo_cache.git(source.url, origin)
        fetched.append(
            FetchedPackage(canonical=plugin.canonical, package_path=path, repo_path=path)
        )
    return fetched


# ---------------------------------------------------------------------------
# Per-agent resolution
# ---------------------------------------------------------------------------


@dataclass
class AgentPackages:
    """Packages an agent installs as skills after marketplace handling."""

    packages: list[CanonicalPackage] = field(default_factory=list)
    plugins: list[ResolvedPlugin] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


async def resolve_agent_packages(
    agent_id: str,
    agent_name: str,
    packages: list[CanonicalPackage],
    loader: MarketplaceLoader,
    claude: ClaudeCli | None = None,
    dry_run: bool = False,
) -> AgentPackages:
    """Split claude-plugin packages out of *packages* for one agent.

    Claude Code installs plugins natively; in a dry run it only reports what
    would be installed. Other agents get each plugin resolved to its source.
    """
    plugins = [p for p in packages if isinstance(p, ClaudePluginPackage)]
    standard = [p for p in packages if not isinstance(p, ClaudePluginPackage)]
    result = AgentPackages(packages=standard)
    if not plugins:
        return result

    if agent_id == "claude-code":
        for plugin in plugins:
            marketplace = await loader.load(plugin.marketplace, plugin.origin.manifest_path)
            _require_plugin(marketplace.info, plugin.plugin)

        if dry_run:
            names = ", ".join(p.plugin for p in plugins)
            result.warnings.append(f"Would install Claude plugins for {agent_name}: {names}.")
            return result

        cli = claude or ClaudeCli()
        for plugin in plugins:
            await cli.add_marketplace(plugin.marketplace, plugin.origin.manifest_path)
            await cli.install_plugin(plugin.plugin, plugin.marketplace, plugin.origin.manifest_path)
        return result

    for plugin in plugins:
        marketplace = await loader.load(plugin.marketplace, plugin.origin.manifest_path)
        _require_plugin(marketplace.info, plugin.plugin)
        base_path = marketplace.root or loader.repo_cache.temp_root
        source = resolve_plugin_source(marketplace.info, plugin.plugin, base_path)
        if marketplace.source.kind == "url" and source.kind == "local":
            raise MarketplaceError(
                f'Marketplace "{plugin.marketplace}" uses a local plugin source, '
                "but URL marketplaces do not support local paths.",
                field="source",
            )
        result.plugins.append(ResolvedPlugin(canonical=plugin, source=source))
    return result


def _require_plugin(info: MarketplaceInfo, plugin: str) -> None:
    if info.find_plugin(plugin) is None:
        raise NotFoundError(
            f'Marketplace "{info.name}" does not contain plugin "{plugin}".', target="plugin"
        )


# ---------------------------------------------------------------------------
# Marketplace packages
# ---------------------------------------------------------------------------


_UNSAFE_ALIAS_CHARS = re.compile(r"[/\\.:\s]+")


async def expand_marketplace_package(
    canonical: CanonicalPackage,
    package_path: Path,
    marketplace_path: Path,
    repo_cache: RepoCache,
) -> list[FetchedPackage]:
    """Fetch every plugin listed by a dependency that is itself a marketplace.

    Each plugin becomes its own ``claude-plugin`` package aliased
    ``<alias>-<plugin>``.
    """
    info = parse_marketplace(read_text(marketplace_path))
    resolved: list[ResolvedPlugin] = []
    for entry in info.plugins:
        raw_alias = f"{canonical.origin.alias}-{entry.name}"
        alias = coerce_alias(_UNSAFE_ALIAS_CHARS.sub("-", raw_alias))
        if alias is None:
            raise MarketplaceError(f'Invalid plugin name "{entry.name}".', field="plugins.name")
        plugin = ClaudePluginPackage(
            origin=PackageOrigin(manifest_path=canonical.origin.manifest_path, alias=alias),
            fetch_strategy=FetchStrategy.clone(sparse=False),
            plugin=NonEmptyString(entry.name),
            marketplace=str(package_path),
        )
        source = resolve_plugin_source(info, entry.name, package_path)
        resolved.append(ResolvedPlugin(canonical=plugin, source=source))
    return await fetch_plugin_sources(resolved, repo_cache)

