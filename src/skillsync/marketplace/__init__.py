"""Claude plugin marketplaces."""

from skillsync.marketplace.claude import ClaudeCli
from skillsync.marketplace.models import (
    LoadedMarketplace,
    MarketplaceInfo,
    MarketplacePlugin,
    MarketplaceSource,
    PluginInfo,
    PluginSource,
)
from skillsync.marketplace.parse import parse_marketplace, parse_plugin
from skillsync.marketplace.resolve import (
    AgentPackages,
    MarketplaceLoader,
    ResolvedPlugin,
    expand_marketplace_package,
    fetch_marketplace_json,
    fetch_plugin_sources,
    resolve_agent_packages,
    resolve_marketplace_source,
    resolve_plugin_source,
)

__all__ = [
    "AgentPackages",
    "ClaudeCli",
    "LoadedMarketplace",
    "MarketplaceInfo",
    "MarketplaceLoader",
    "MarketplacePlugin",
    "MarketplaceSource",
    "PluginInfo",
    "PluginSource",
    "ResolvedPlugin",
    "expand_marketplace_package",
    "fetch_marketplace_json",
    "fetch_plugin_sources",
    "parse_marketplace",
    "parse_plugin",
    "resolve_agent_packages",
    "resolve_marketplace_source",
    "resolve_plugin_source",
]
