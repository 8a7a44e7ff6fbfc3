"""
skillsync - declarative skill packages for AI coding agents.

Skills are declared as dependencies in ``agents.toml``. A sync fetches each
dependency, finds the skills inside it and installs them into the skills
directory of every enabled agent (Claude Code, Codex, OpenCode, Amp,
Factory). Previously installed skills that are no longer declared are
removed; anything skillsync did not install is left alone.

Example:
    import asyncio
    from skillsync import SyncConfig, SyncOptions, sync

    config = SyncConfig.load()
    summary = asyncio.run(sync(config, SyncOptions(dry_run=True)))
    for result in summary.results:
        print(result.agent.display_name, result.installed, result.removed)
"""

from skillsync.agents import (
    AgentDefinition,
    AgentState,
    ResolvedAgent,
    detect_installed_agents,
    get_agent_by_id,
    list_agents,
    resolve_agent,
)
from skillsync.config import SyncConfig
from skillsync.errors import (
    AgentError,
    AliasConflictError,
    ConflictError,
    DetectionError,
    ExtractionError,
    FetchError,
    InstallError,
    IoError,
    ManifestError,
    MarketplaceError,
    NotFoundError,
    SkillSyncError,
    StateError,
    SyncError,
    ValidationError,
)
from skillsync.logging import get_logger, setup_logging
from skillsync.manifest import (
    Manifest,
    MergedManifest,
    discover_manifests,
    load_manifest,
    merge_manifests,
    parse_manifest,
)
from skillsync.packages.scan import ScanResult, ScanUnit, scan_repo
from skillsync.sync import AgentSyncResult, SyncOptions, SyncSummary, run_sync, sync

__version__ = "0.1.0"

__all__ = [
    # Sync
    "sync",
    "run_sync",
    "SyncOptions",
    "SyncSummary",
    "AgentSyncResult",
    "SyncConfig",
    # Manifests
    "Manifest",
    "MergedManifest",
    "discover_manifests",
    "load_manifest",
    "merge_manifests",
    "parse_manifest",
    # Agents
    "AgentDefinition",
    "AgentState",
    "ResolvedAgent",
    "detect_installed_agents",
    "get_agent_by_id",
    "list_agents",
    "resolve_agent",
    # Scanning
    "ScanResult",
    "ScanUnit",
    "scan_repo",
    # Errors
    "AgentError",
    "AliasConflictError",
    "ConflictError",
    "DetectionError",
    "ExtractionError",
    "FetchError",
    "InstallError",
    "IoError",
    "ManifestError",
    "MarketplaceError",
    "NotFoundError",
    "SkillSyncError",
    "StateError",
    "SyncError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
]
