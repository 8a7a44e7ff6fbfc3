"""Marketplace and plugin descriptor models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from skillsync.coerce import AbsolutePath, GithubRef, NormalizedGitUrl


@dataclass(frozen=True)
class MarketplacePlugin:
    """One entry of ``marketplace.json``'s ``plugins`` list."""

    name: str
    source: Any  # str path or {"source": "github"|"url", ...}
    description: str | None = None
    version: str | None = None
    author: dict[str, str] | None = None
    category: str | None = None
    homepage: str | None = None
    keywords: tuple[str, ...] = ()
    license: str | None = None
    repository: str | None = None

    def metadata(self) -> dict[str, Any]:
        """Descriptive fields without the source."""
        data: dict[str, Any] = {"name": self.name}
        for key in (
            "description",
            "version",
            "author",
            "category",
            "homepage",
            "license",
            "repository",
        ):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.keywords:
            data["keywords"] = list(self.keywords)
        return data


@dataclass(frozen=True)
class MarketplaceInfo:
    name: str
    plugins: tuple[MarketplacePlugin, ...] = ()
    plugin_root: str | None = None
    description: str | None = None
    version: str | None = None
    owner: dict[str, str] | None = None

    def find_plugin(self, name: str) -> MarketplacePlugin | None:
        for plugin in self.plugins:
            if plugin.name == name:
                return plugin
        return None


@dataclass(frozen=True)
class PluginInfo:
    """``.claude-plugin/plugin.json``."""

    name: str
    description: str | None = None
    version: str | None = None


# ---------------------------------------------------------------------------
# Resolved locations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketplaceSource:
    """Where a marketplace spec points.

    ``kind`` decides which field is set: ``github`` -> ``slug``, ``git`` and
    ``url`` -> ``url``, ``local`` -> ``path``.
    """

    kind: Literal["github", "git", "url", "local"]
    slug: GithubRef | None = None
    url: str | None = None
    path: AbsolutePath | None = None

    def describe(self) -> str:
        if self.kind == "github":
            return f"github:{self.slug}"
        if self.kind == "local":
            return str(self.path)
        return str(self.url)


@dataclass(frozen=True)
class PluginSource:
    """A plugin's resolved source, ready to be fetched."""

    kind: Literal["local", "github", "git"]
    path: AbsolutePath | None = None
    slug: GithubRef | None = None
    url: NormalizedGitUrl | None = None


@dataclass
class LoadedMarketplace:
    """A marketplace descriptor plus the directory plugin paths resolve against."""

    info: MarketplaceInfo
    source: MarketplaceSource
    root: Path | None = None  # None for marketplaces fetched over HTTP
    warnings: list[str] = field(default_factory=list)
