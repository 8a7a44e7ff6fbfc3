"""
Sync orchestration.

A sync reads the applicable manifests, merges them, resolves each dependency
to a canonical package and then runs one pipeline per agent:

    fetch -> detect -> extract -> validate -> plan -> preflight
          -> install -> reconcile -> write state

Agents are processed one after another. A failing agent is recorded in the
summary and the remaining agents still run; only a merge conflict or an
empty agent list aborts the whole sync.

Example:
    from skillsync.config import SyncConfig
    from skillsync.sync import SyncOptions, sync

    summary = asyncio.run(sync(SyncConfig.load(), SyncOptions(dry_run=True)))
    print(summary.installed, summary.removed)
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillsync.agents.install import (
    apply_agent_install,
    plan_agent_install,
    preflight_targets,
    remove_managed_targets,
)
from skillsync.agents.reconcile import reconcile_agent_skills, stale_skills
from skillsync.agents.registry import (
    AgentDefinition,
    AgentScope,
    ResolvedAgent,
    detect_installed_agents,
    get_agent_by_id,
    resolve_agent,
)
from skillsync.agents.state import build_agent_state, read_agent_state, write_agent_state
from skillsync.config import SyncConfig
from skillsync.errors import (
    ExtractionError,
    IoError,
    NotFoundError,
    SkillSyncError,
    SyncError,
    ValidationError,
)
from skillsync.fs import ensure_dir, is_file
from skillsync.logging import get_logger
from skillsync.manifest.discover import ManifestLocation, discover_manifests
from skillsync.manifest.merge import merge_manifests
from skillsync.manifest.models import MergedManifest
from skillsync.manifest.parse import load_manifest
from skillsync.marketplace.claude import ClaudeCli
from skillsync.marketplace.resolve import (
    MarketplaceLoader,
    expand_marketplace_package,
    fetch_plugin_sources,
    resolve_agent_packages,
)
from skillsync.packages.detect import detect_package
from skillsync.packages.extract import extract_skills
from skillsync.packages.fetch import RepoCache, fetch_packages
from skillsync.packages.git import GitRunner
from skillsync.packages.models import (
    CanonicalPackage,
    ClaudePluginPackage,
    DetectedPackage,
    ExtractedPackage,
    ExtractionMode,
    FetchedPackage,
)
from skillsync.packages.resolve import resolve_manifest_packages

logger = get_logger("sync")

SyncStage = Literal[
    "discover",
    "parse",
    "merge",
    "resolve",
    "agents",
    "fetch",
    "detect",
    "extract",
    "validate",
    "install",
    "reconcile",
]


@contextmanager
def stage(name: SyncStage) -> Iterator[None]:
    """Attribute any skillsync error raised inside the block to *name*."""
    try:
        yield
    except SyncError:
        raise
    except SkillSyncError as e:
        raise SyncError(name, e) from e


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class SyncOptions:
    dry_run: bool = False
    scope: AgentScope = "local"
    start_dir: Path | None = None


@dataclass
class AgentSyncResult:
    """Outcome of one agent's pipeline."""

    agent: ResolvedAgent
    success: bool
    installed: int = 0
    removed: int = 0
    warnings: list[str] = field(default_factory=list)
    error: SyncError | None = None

    @classmethod
    def success_result(
        cls,
        agent: ResolvedAgent,
        installed: int,
        removed: int,
        warnings: list[str] | None = None,
    ) -> AgentSyncResult:
        """Create a successful result."""
        return cls(
            agent=agent,
            success=True,
            installed=installed,
            removed=removed,
            warnings=warnings or [],
        )

    @classmethod
    def error_result(
        cls, agent: ResolvedAgent, error: SyncError, warnings: list[str] | None = None
    ) -> AgentSyncResult:
        """Create an error result."""
        return cls(agent=agent, success=False, warnings=warnings or [], error=error)


@dataclass
class SyncSummary:
    agents: list[str] = field(default_factory=list)
    dependencies: int = 0
    dry_run: bool = False
    installed: int = 0
    manifests: int = 0
    removed: int = 0
    warnings: list[str] = field(default_factory=list)
    no_op_reason: Literal["no-dependencies"] | None = None
    results: list[AgentSyncResult] = field(default_factory=list)

    @property
    def failures(self) -> list[AgentSyncResult]:
        return [result for result in self.results if not result.success]

    @property
    def success(self) -> bool:
        return not self.failures

    def add(self, result: AgentSyncResult) -> None:
        self.results.append(result)
        self.agents.append(result.agent.display_name)
        self.installed += result.installed
        self.removed += result.removed
        self.warnings.extend(result.warnings)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def sync(
    config: SyncConfig,
    options: SyncOptions | None = None,
    runner: GitRunner | None = None,
    claude: ClaudeCli | None = None,
) -> SyncSummary:
    """Discover, merge and install the manifests that apply to *options.start_dir*.

    Raises:
        SyncError: If no manifest is found, a manifest is invalid, manifests
            conflict, or no agent is enabled or detected.
    """
    options = options or SyncOptions()
    start_dir = Path(options.start_dir or Path.cwd())

    with stage("discover"):
        locations = _manifest_locations(start_dir, config, options.scope)
    if not locations:
        raise SyncError(
            "discover",
            NotFoundError(f"No {config.manifest_filename} found.", target="manifest"),
        )

    with stage("parse"):
        manifests = [load_manifest(loc.path, loc.discovered_at) for loc in locations]
    with stage("merge"):
        merged = merge_manifests(manifests)
    for warning in merged.warnings:
        logger.warning(warning)

    project_root = next(
        (loc.path.parent for loc in locations if loc.discovered_at != "global"), start_dir
    )
    with stage("agents"):
        agents = await select_agents(
            merged, config, options.scope, project_root=project_root
        )

    summary = await run_sync(
        merged,
        agents,
        config,
        dry_run=options.dry_run,
        manifests=len(manifests),
        runner=runner,
        claude=claude,
    )
    summary.warnings[:0] = merged.warnings
    return summary


def _manifest_locations(
    start_dir: Path, config: SyncConfig, scope: AgentScope
) -> list[ManifestLocation]:
    if scope == "global":
        path = config.global_manifest_path
        return [ManifestLocation(path, "global")] if is_file(path) else []
    return discover_manifests(start_dir, config)


async def select_agents(
    merged: MergedManifest,
    config: SyncConfig,
    scope: AgentScope,
    *,
    project_root: Path,
) -> list[ResolvedAgent]:
    """Agents enabled in the ``[agents]`` table, or the detected ones when it is empty.

    Raises:
        ValidationError: If no agent is enabled or detected.
        AgentError: If the table enables an unknown agent.
    """
    definitions: list[AgentDefinition]
    if merged.agents:
        definitions = [
            get_agent_by_id(agent_id) for agent_id, enabled in merged.agents.items() if enabled
        ]
    else:
        definitions = await detect_installed_agents(config.detect_timeout)
        logger.debug("Detected agents: %s", ", ".join(a.id for a in definitions) or "none")

    if not definitions:
        raise ValidationError("No agents enabled or detected.", field="agents")

    return [
        resolve_agent(agent, scope, project_root=project_root, home=config.home_dir)
        for agent in definitions
    ]


async def run_sync(
    manifest: MergedManifest,
    agents: list[ResolvedAgent],
    config: SyncConfig,
    *,
    dry_run: bool = False,
    manifests: int = 1,
    runner: GitRunner | None = None,
    claude: ClaudeCli | None = None,
) -> SyncSummary:
    """Install *manifest*'s dependencies for each agent in turn."""
    if not agents:
        raise SyncError(
            "agents", ValidationError("No agents provided for sync.", field="agents")
        )

    with stage("resolve"):
        packages = resolve_manifest_packages(manifest)
    if not packages:
        return _sync_without_dependencies(agents, config, dry_run, manifests)

    runner = runner or GitRunner(config.git_binary)
    claude = claude or ClaudeCli(config.claude_binary)

    summary = SyncSummary(dependencies=len(packages), dry_run=dry_run, manifests=manifests)
    for agent in agents:
        logger.info("Syncing %s (%s)", agent.display_name, agent.skills_path)
        summary.add(await sync_agent(agent, packages, config, runner, claude, dry_run))
    return summary


def _sync_without_dependencies(
    agents: list[ResolvedAgent], config: SyncConfig, dry_run: bool, manifests: int
) -> SyncSummary:
    summary = SyncSummary(dependencies=0, dry_run=dry_run, manifests=manifests)
    has_state = False

    for agent in agents:
        try:
            with stage("reconcile"):
                previous = read_agent_state(agent, config.state_filename)
                if previous is None:
                    summary.add(AgentSyncResult.success_result(agent, 0, 0))
                    continue
                has_state = True
                if dry_run:
                    removed = len(previous.skills)
                else:
                    removed = len(reconcile_agent_skills(agent, previous, set()).removed)
                    write_agent_state(agent, build_agent_state([]), config.state_filename)
        except SyncError as e:
            logger.error("Sync failed for %s: %s", agent.display_name, e)
            summary.add(AgentSyncResult.error_result(agent, e))
            continue
        summary.add(AgentSyncResult.success_result(agent, 0, removed))

    if not has_state:
        summary.no_op_reason = "no-dependencies"
    return summary


# ---------------------------------------------------------------------------
# Per-agent pipeline
# ---------------------------------------------------------------------------


async def sync_agent(
    agent: ResolvedAgent,
    packages: list[CanonicalPackage],
    config: SyncConfig,
    runner: GitRunner,
    claude: ClaudeCli,
    dry_run: bool = False,
) -> AgentSyncResult:
    """Run the full pipeline for one agent; failures are returned, not raised."""
    warnings: list[str] = []
    try:
        with stage("fetch"):
            temp_root = _create_temp_root(agent, config)
    except SyncError as e:
        return AgentSyncResult.error_result(agent, e, warnings)

    try:
        installed, removed = await _sync_agent_packages(
            agent, packages, config, runner, claude, dry_run, temp_root, warnings
        )
    except SyncError as e:
        logger.error("Sync failed for %s at %s: %s", agent.display_name, e.stage, e.error)
        return AgentSyncResult.error_result(agent, e, warnings)
    finally:
        shutil.rmtree(temp_root, ignore_errors=True)

    return AgentSyncResult.success_result(agent, installed, removed, warnings)


async def _sync_agent_packages(
    agent: ResolvedAgent,
    packages: list[CanonicalPackage],
    config: SyncConfig,
    runner: GitRunner,
    claude: ClaudeCli,
    dry_run: bool,
    temp_root: Path,
    warnings: list[str],
) -> tuple[int, int]:
    repo_cache = RepoCache(temp_root, runner)
    loader = MarketplaceLoader(repo_cache, config)

    with stage("resolve"):
        resolution = await resolve_agent_packages(
            agent.id, agent.display_name, packages, loader, claude=claude, dry_run=dry_run
        )
    _warn(warnings, resolution.warnings)

    with stage("fetch"):
        fetched = await fetch_packages(
            resolution.packages, temp_root, runner, config.fetch_concurrency
        )
        fetched += await fetch_plugin_sources(resolution.plugins, repo_cache)

    extracted = await detect_and_extract(fetched, repo_cache, warnings)

    with stage("validate"):
        validate_extracted_packages(extracted)

    with stage("install"):
        plan = plan_agent_install(agent, extracted)
    desired = set(plan.target_names)
    logger.debug("Planned %d skill(s) for %s", len(plan.tasks), agent.display_name)

    with stage("reconcile"):
        previous = read_agent_state(agent, config.state_filename)
    if previous is None:
        _warn(
            warnings,
            [f"No prior state for {agent.display_name}; skipping stale skill removal."],
        )

    with stage("install"):
        replaceable = preflight_targets(plan, set(previous.skills) if previous else set())

    if dry_run:
        return len(plan.tasks), len(stale_skills(previous, desired))

    with stage("install"):
        remove_managed_targets(replaceable)
        installed = apply_agent_install(plan)

    with stage("reconcile"):
        reconciled = reconcile_agent_skills(agent, previous, desired)
        write_agent_state(agent, build_agent_state(desired), config.state_filename)

    return len(installed), len(reconciled.removed)


async def detect_and_extract(
    fetched: Iterable[FetchedPackage], repo_cache: RepoCache, warnings: list[str]
) -> list[ExtractedPackage]:
    """Detect each fetched package's layout and extract its skills.

    A package laid out as a marketplace is replaced by its plugins, each
    extracted leniently.
    """
    extracted: list[ExtractedPackage] = []
    for package in fetched:
        with stage("detect"):
            detected = detect_package(package)

        if detected.detection.method != "marketplace":
            _extend(extracted, _extract_package(detected, warnings))
            continue

        assert detected.detection.marketplace_path is not None
        with stage("fetch"):
            plugins = await expand_marketplace_package(
                detected.canonical,
                detected.package_path,
                detected.detection.marketplace_path,
                repo_cache,
            )
        for plugin in plugins:
            with stage("detect"):
                plugin_detected = detect_package(plugin)
            _extend(extracted, _extract_package(plugin_detected, warnings))
    return extracted


def _extract_package(detected: DetectedPackage, warnings: list[str]) -> ExtractedPackage | None:
    canonical = detected.canonical
    alias = str(canonical.origin.alias)
    mode: ExtractionMode = "lenient" if isinstance(canonical, ClaudePluginPackage) else "strict"

    with stage("extract"):
        try:
            result = extract_skills(detected, mode)
        except ExtractionError as e:
            # Only a marketplace plugin without a skills directory is skippable.
            if isinstance(canonical, ClaudePluginPackage) and e.field == "skills_dir":
                _warn(warnings, [f'Skipping plugin "{alias}": {e.message}'])
                return None
            raise

    _warn(warnings, result.warnings)
    logger.debug(
        "Extracted %d skill(s) from %s (%s)",
        len(result.skills),
        alias,
        detected.detection.method,
    )
    return ExtractedPackage(canonical=canonical, prefix=alias, skills=tuple(result.skills))


def validate_extracted_packages(packages: Iterable[ExtractedPackage]) -> None:
    """Check prefixes and target names across every package for one agent.

    Raises:
        ValidationError: On an empty prefix, a package without skills, an
            empty skill name, or two skills mapping to the same target.
    """
    seen: set[str] = set()
    for package in packages:
        prefix = package.prefix.strip()
        if not prefix:
            raise ValidationError("Package prefix cannot be empty.", field="prefix")
        if not package.skills:
            raise ValidationError(
                f'Package "{package.prefix}" has no skills to install.', field="skills"
            )
        for skill in package.skills:
            name = skill.name.strip()
            if not name:
                raise ValidationError(
                    f'Package "{package.prefix}" has an empty skill name.', field="skills"
                )
            target = f"{prefix}-{name}"
            if target in seen:
                raise ValidationError(
                    f"Duplicate skill target detected: {target}", field="skills"
                )
            seen.add(target)


def _create_temp_root(agent: ResolvedAgent, config: SyncConfig) -> Path:
    base = config.temp_dir
    try:
        if base is not None:
            ensure_dir(base)
        return Path(tempfile.mkdtemp(prefix=f"sk-{agent.id}-", dir=base))
    except OSError as e:
        raise IoError(
            "Unable to create temporary directory.", operation="mkdtemp", path=base
        ) from e


def _warn(warnings: list[str], messages: Iterable[str]) -> None:
    for message in messages:
        logger.warning(message)
        warnings.append(message)


def _extend(extracted: list[ExtractedPackage], package: ExtractedPackage | None) -> None:
    if package is not None:
        extracted.append(package)
