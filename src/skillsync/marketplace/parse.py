"""Parse ``marketplace.json`` and ``plugin.json`` descriptors."""

from __future__ import annotations

import json
from typing import Any

from skillsync.errors import MarketplaceError
from skillsync.marketplace.models import MarketplaceInfo, MarketplacePlugin, PluginInfo

_PLUGIN_STRING_FIELDS = ("description", "version", "category", "homepage", "license", "repository")


def parse_marketplace(text: str) -> MarketplaceInfo:
    """Parse and validate a marketplace descriptor.

    Raises:
        MarketplaceError: On invalid JSON or a schema violation.
    """
    data = _load_json(text, "marketplace.json")
    if not isinstance(data, dict):
        raise MarketplaceError("Marketplace must be a JSON object.", field="marketplace")

    name = _required_string(data, "name", "marketplace")

    plugins_raw = data.get("plugins")
    if not isinstance(plugins_raw, list):
        raise MarketplaceError("Marketplace plugins must be a list.", field="plugins")
    plugins = tuple(
        _parse_marketplace_plugin(entry, index) for index, entry in enumerate(plugins_raw)
    )

    metadata = data.get("metadata")
    plugin_root: str | None = None
    description: str | None = None
    version: str | None = None
    if metadata is not None:
        if not isinstance(metadata, dict):
            raise MarketplaceError("Marketplace metadata must be an object.", field="metadata")
        plugin_root = _optional_string(metadata, "pluginRoot", "metadata.pluginRoot")
        description = _optional_string(metadata, "description", "metadata.description")
        version = _optional_string(metadata, "version", "metadata.version")

    owner = data.get("owner")
    if owner is not None and not (isinstance(owner, dict) and _is_non_empty(owner.get("name"))):
        raise MarketplaceError("Marketplace owner must include a name.", field="owner")

    return MarketplaceInfo(
        name=name,
        plugins=plugins,
        plugin_root=plugin_root,
        description=description,
        version=version,
        owner={k: str(v) for k, v in owner.items() if isinstance(v, str)} if owner else None,
    )


def parse_plugin(text: str) -> PluginInfo:
    """Parse and validate a plugin descriptor."""
    data = _load_json(text, "plugin.json")
    if not isinstance(data, dict):
        raise MarketplaceError("Plugin must be a JSON object.", field="plugin")
    return PluginInfo(
        name=_required_string(data, "name", "plugin"),
        description=_optional_string(data, "description", "description"),
        version=_optional_string(data, "version", "version"),
    )


def _parse_marketplace_plugin(entry: Any, index: int) -> MarketplacePlugin:
    if not isinstance(entry, dict):
        raise MarketplaceError(f"Plugin entry {index} must be an object.", field="plugins")
    if "source" not in entry:
        raise MarketplaceError(f"Plugin entry {index} is missing a source.", field="plugins")

    fields = {key: _optional_string(entry, key, f"plugins.{key}") for key in _PLUGIN_STRING_FIELDS}

    keywords = entry.get("keywords", [])
    if not isinstance(keywords, list) or not all(_is_non_empty(k) for k in keywords):
        raise MarketplaceError(
            "Plugin keywords must be non-empty strings.", field="plugins.keywords"
        )

    author = entry.get("author")
    if author is not None and not isinstance(author, dict):
        raise MarketplaceError("Plugin author must be an object.", field="plugins.author")

    return MarketplacePlugin(
        name=_required_string(entry, "name", "plugins.name"),
        source=entry["source"],
        author={k: v for k, v in author.items() if isinstance(v, str)} if author else None,
        keywords=tuple(k.strip() for k in keywords),
        **fields,
    )


def _load_json(text: str, label: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MarketplaceError(f"Invalid JSON in {label}.", field=label) from e


def _is_non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _required_string(data: dict[str, Any], key: str, field_name: str) -> str:
    value = data.get(key)
    if not _is_non_empty(value):
        raise MarketplaceError(f"{field_name} must be a non-empty string.", field=field_name)
    return value.strip()


def _optional_string(data: dict[str, Any], key: str, field_name: str) -> str | None:
    if key not in data or data[key] is None:
        return None
    return _required_string(data, key, field_name)
