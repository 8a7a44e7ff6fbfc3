"""Manifest parsing, discovery, merging and editing."""

from __future__ import annotations

from skillsync.manifest.discover import ManifestLocation, discover_manifests, find_project_root
from skillsync.manifest.merge import dedupe_key, merge_manifests
from skillsync.manifest.models import (
    ClaudePluginDependency,
    GitDependency,
    GithubDependency,
    LocalDependency,
    Manifest,
    ManifestExports,
    ManifestOrigin,
    MergedDependency,
    MergedManifest,
    PackageMetadata,
    RegistryDependency,
    ValidatedDependency,
)
from skillsync.manifest.parse import load_manifest, parse_declaration, parse_manifest
from skillsync.manifest.transform import (
    add_dependency,
    get_agent,
    get_dependency,
    has_dependency,
    remove_dependency,
    set_agent,
)
from skillsync.manifest.write import save_manifest, serialize_manifest

__all__ = [
    "ClaudePluginDependency",
    "GitDependency",
    "GithubDependency",
    "LocalDependency",
    "Manifest",
    "ManifestExports",
    "ManifestLocation",
    "ManifestOrigin",
    "MergedDependency",
    "MergedManifest",
    "PackageMetadata",
    "RegistryDependency",
    "ValidatedDependency",
    "add_dependency",
    "dedupe_key",
    "discover_manifests",
    "find_project_root",
    "get_agent",
    "get_dependency",
    "has_dependency",
    "load_manifest",
    "merge_manifests",
    "parse_declaration",
    "parse_manifest",
    "remove_dependency",
    "save_manifest",
    "serialize_manifest",
    "set_agent",
]
