"""Tests for sync orchestration."""

import asyncio
import json
from pathlib import Path

import pytest

from conftest import FakeGitRunner, RecordingClaude, write_manifest, write_skill
from skillsync.agents import get_agent_by_id, read_agent_state, resolve_agent
from skillsync.config import SyncConfig
from skillsync.errors import AliasConflictError, IoError, NotFoundError, SyncError
from skillsync.manifest import MergedManifest
from skillsync.fs import remove_path
from skillsync.sync import SyncOptions, run_sync, sync


@pytest.fixture
def vendor(config: SyncConfig) -> Path:
    """Local skills at ``~/vendor/skills``."""
    root = config.home_dir / "vendor"
    write_skill(root / "skills", "lint")
    write_skill(root / "skills", "review")
    return root


@pytest.fixture
def market_repo(tmp_path: Path) -> Path:
    """A repository laid out as a marketplace with one usable plugin."""
    root = tmp_path / "repos" / "market"
    (root / ".claude-plugin").mkdir(parents=True)
    (root / ".claude-plugin" / "marketplace.json").write_text(
        json.dumps(
            {
                "name": "acme-market",
                "plugins": [
                    {"name": "review", "source": "./plugins/review"},
                    {"name": "empty", "source": "./plugins/empty"},
                ],
            }
        )
    )
    for name in ("review", "empty"):
        plugin = root / "plugins" / name
        (plugin / ".claude-plugin").mkdir(parents=True)
        (plugin / ".claude-plugin" / "plugin.json").write_text(json.dumps({"name": name}))
    write_skill(root / "plugins" / "review" / "skills", "pr-review")
    return root


def run(config: SyncConfig, project: Path, runner=None, claude=None, **options):
    return sync(
        config,
        SyncOptions(start_dir=project, **options),
        runner=runner or FakeGitRunner(),
        claude=claude or RecordingClaude(),
    )


class TestSync:
    """End-to-end sync against temporary projects."""

    @pytest.mark.asyncio
    async def test_installs_local_package(
        self, config: SyncConfig, project: Path, vendor: Path
    ) -> None:
        """Should symlink local skills and record them in the state file."""
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            team = { path = "../vendor" }
        """)

        summary = await run(config, project)

        skills_path = project / ".codex" / "skills"
        assert summary.success
        assert summary.agents == ["Codex"]
        assert summary.installed == 2
        assert summary.dependencies == 1
        assert summary.manifests == 1
        assert (skills_path / "team-lint").is_symlink()
        assert (skills_path / "team-review" / "SKILL.md").is_file()
        codex = resolve_agent(get_agent_by_id("codex"), "local", project_root=project)
        state = read_agent_state(codex)
        assert state is not None
        assert state.skills == ("team-lint", "team-review")
        assert any("No prior state for Codex" in w for w in summary.warnings)

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(
        self, config: SyncConfig, project: Path, vendor: Path
    ) -> None:
        """Should report the plan without writing to the skills directory."""
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            team = { path = "../vendor" }
        """)

        summary = await run(config, project, dry_run=True)

        assert summary.dry_run
        assert summary.installed == 2
        assert not (project / ".codex").exists()

    @pytest.mark.asyncio
    async def test_removes_stale_skills(
        self, config: SyncConfig, project: Path, vendor: Path
    ) -> None:
        """Should delete skills a previous sync installed that are no longer declared."""
        extra = write_skill(config.home_dir / "extra", "solo")
        write_manifest(project, f"""
            [agents]
            codex = true

            [dependencies]
            team = {{ path = "../vendor" }}
            extra = {{ path = "{extra}" }}
        """)
        first = await run(config, project)
        assert first.installed == 3

        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            team = { path = "../vendor" }
        """)
        second = await run(config, project)

        skills_path = project / ".codex" / "skills"
        assert second.success
        assert second.installed == 2
        assert second.removed == 1
        assert not (skills_path / "extra-solo").exists()
        assert (extra / "SKILL.md").is_file()
        assert (skills_path / "team-lint").is_symlink()

    @pytest.mark.asyncio
    async def test_dry_run_counts_stale(
        self, config: SyncConfig, project: Path, vendor: Path
    ) -> None:
        """Should count stale skills in a dry run without removing them."""
        stale = project / ".codex" / "skills" / "old-skill"
        stale.mkdir(parents=True)
        state_file = project / ".codex" / "skills" / ".skillsync-state.json"
        state_file.write_text(
            json.dumps({"version": 1, "skills": ["old-skill"], "updated_at": "2026-01-01"})
        )
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            team = { path = "../vendor" }
        """)

        summary = await run(config, project, dry_run=True)

        assert summary.removed == 1
        assert stale.is_dir()

    @pytest.mark.asyncio
    async def test_unmanaged_conflict_isolated_per_agent(
        self, config: SyncConfig, project: Path, vendor: Path
    ) -> None:
        """Should fail only the agent whose target is unmanaged."""
        blocked = project / ".codex" / "skills" / "team-lint"
        blocked.mkdir(parents=True)
        (blocked / "notes.md").write_text("mine")
        write_manifest(project, """
            [agents]
            codex = true
            amp = true

            [dependencies]
            team = { path = "../vendor" }
        """)

        summary = await run(config, project)

        assert not summary.success
        codex, amp = summary.results
        assert not codex.success
        assert codex.error is not None
        assert codex.error.stage == "install"
        assert "not managed by sk" in codex.error.error.message
        assert (blocked / "notes.md").read_text() == "mine"
        assert amp.success
        assert amp.installed == 2
        assert (project / ".agents" / "skills" / "team-lint").is_symlink()

    @pytest.mark.asyncio
    async def test_remote_package_is_copied(
        self, config: SyncConfig, project: Path, skills_repo: Path
    ) -> None:
        """Should clone remote packages and copy their skills."""
        runner = FakeGitRunner({"https://github.com/acme/skills.git": skills_repo})
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            acme = { gh = "acme/skills", tag = "v1.0.0" }
        """)

        summary = await run(config, project, runner=runner)

        target = project / ".codex" / "skills" / "acme-lint"
        assert summary.success
        assert target.is_dir()
        assert not target.is_symlink()
        assert len(runner.clones) == 1
        assert ["checkout", "--detach", "tags/v1.0.0"] == runner.calls[-1][2:]
        assert list((config.temp_dir or Path()).iterdir()) == []

    @pytest.mark.asyncio
    async def test_marketplace_dependency_expanded(
        self, config: SyncConfig, project: Path, market_repo: Path
    ) -> None:
        """Should install skills from every plugin of a marketplace dependency."""
        runner = FakeGitRunner({"https://github.com/acme/market.git": market_repo})
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            market = { gh = "acme/market" }
        """)

        summary = await run(config, project, runner=runner)

        assert summary.success
        assert (project / ".codex" / "skills" / "market-review-pr-review").is_dir()
        assert any('Skipping plugin "market-empty"' in w for w in summary.warnings)

    @pytest.mark.asyncio
    async def test_claude_plugin_for_claude_code(
        self, config: SyncConfig, project: Path, market_repo: Path
    ) -> None:
        """Should install claude-plugin dependencies through the claude CLI."""
        claude = RecordingClaude()
        write_manifest(project, f"""
            [agents]
            claude-code = true

            [dependencies]
            review = {{ type = "claude-plugin", plugin = "review", marketplace = "{market_repo}" }}
        """)

        summary = await run(config, project, claude=claude)

        assert summary.success
        assert summary.installed == 0
        assert claude.calls == [
            ["marketplace", "add", str(market_repo)],
            ["install", f"review@{market_repo}"],
        ]

    @pytest.mark.asyncio
    async def test_claude_plugin_for_other_agents(
        self, config: SyncConfig, project: Path, market_repo: Path
    ) -> None:
        """Should install a plugin's skills directly for agents without plugin support."""
        write_manifest(project, f"""
            [agents]
            opencode = true

            [dependencies]
            review = {{ type = "claude-plugin", plugin = "review", marketplace = "{market_repo}" }}
        """)

        summary = await run(config, project)

        assert summary.success
        assert (project / ".opencode" / "skill" / "review-pr-review").is_dir()

    @pytest.mark.asyncio
    async def test_no_dependencies(self, config: SyncConfig, project: Path) -> None:
        """Should report a no-op when nothing is declared or installed."""
        write_manifest(project, """
            [agents]
            codex = true
        """)

        summary = await run(config, project)

        assert summary.no_op_reason == "no-dependencies"
        assert summary.success

    @pytest.mark.asyncio
    async def test_no_dependencies_clears_previous(
        self, config: SyncConfig, project: Path
    ) -> None:
        """Should remove everything a previous sync installed when deps are emptied."""
        skills_path = project / ".codex" / "skills"
        (skills_path / "team-lint").mkdir(parents=True)
        (skills_path / ".skillsync-state.json").write_text(
            json.dumps({"version": 1, "skills": ["team-lint"], "updated_at": "2026-01-01"})
        )
        write_manifest(project, """
            [agents]
            codex = true
        """)

        summary = await run(config, project)

        assert summary.no_op_reason is None
        assert summary.removed == 1
        assert not (skills_path / "team-lint").exists()
        state = json.loads((skills_path / ".skillsync-state.json").read_text())
        assert state["skills"] == []

    @pytest.mark.asyncio
    async def test_global_scope(self, config: SyncConfig, project: Path, vendor: Path) -> None:
        """Should sync only the global manifest into each agent's home directory."""
        write_manifest(project, """
            [dependencies]
            ignored = { path = "./nowhere" }
        """)
        write_manifest(config.home_dir / ".sk", f"""
            [agents]
            opencode = true

            [dependencies]
            team = {{ path = "{vendor}" }}
        """)

        summary = await run(config, project, scope="global")

        assert summary.success
        skill_dir = config.home_dir / ".config" / "opencode" / "skill" / "team-lint"
        assert skill_dir.is_symlink()
        assert not (project / ".opencode").exists()


class TestSyncFailures:
    """Failures that abort the whole sync."""

    @pytest.mark.asyncio
    async def test_no_manifest(self, config: SyncConfig, project: Path) -> None:
        """Should fail at discovery when no manifest applies."""
        with pytest.raises(SyncError) as exc_info:
            await run(config, project)

        assert exc_info.value.stage == "discover"
        assert isinstance(exc_info.value.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_alias_conflict(self, config: SyncConfig, project: Path) -> None:
        """Should fail at merge when manifests disagree on an alias."""
        write_manifest(project, '[dependencies]\na = { gh = "acme/a" }\n')
        write_manifest(config.home_dir, '[dependencies]\na = { gh = "acme/b" }\n')

        with pytest.raises(SyncError) as exc_info:
            await run(config, project)

        assert exc_info.value.stage == "merge"
        assert isinstance(exc_info.value.error, AliasConflictError)

    @pytest.mark.asyncio
    async def test_invalid_manifest(self, config: SyncConfig, project: Path) -> None:
        """Should fail at parse on a malformed manifest."""
        write_manifest(project, "[dependencies]\nx = 42\n")

        with pytest.raises(SyncError) as exc_info:
            await run(config, project)

        assert exc_info.value.stage == "parse"

    @pytest.mark.asyncio
    async def test_all_agents_disabled(self, config: SyncConfig, project: Path) -> None:
        """Should fail when every listed agent is disabled."""
        write_manifest(project, """
            [agents]
            codex = false
        """)

        with pytest.raises(SyncError, match="No agents enabled or detected") as exc_info:
            await run(config, project)

        assert exc_info.value.stage == "agents"

    @pytest.mark.asyncio
    async def test_run_sync_requires_agents(self, config: SyncConfig) -> None:
        """Should refuse to run without agents."""
        with pytest.raises(SyncError, match="No agents provided"):
            await run_sync(MergedManifest(), [], config)

    @pytest.mark.asyncio
    async def test_fetch_failure_recorded(self, config: SyncConfig, project: Path) -> None:
        """Should record a failed clone against the agent instead of raising."""
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            missing = { gh = "acme/missing" }
        """)

        summary = await run(config, project)

        assert not summary.success
        assert summary.failures[0].error is not None
        assert summary.failures[0].error.stage == "fetch"


def write_named_skill(root: Path, directory: str, name: str) -> None:
    skill_dir = root / directory
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {name}\n---\n")


class TestAgentFailures:
    """Failures recorded against one agent without aborting the sync."""

    @pytest.mark.asyncio
    async def test_duplicate_names_in_marketplace_plugin(
        self, config: SyncConfig, project: Path, market_repo: Path
    ) -> None:
        """Should fail extraction when a plugin ships two skills with one name."""
        skills = market_repo / "plugins" / "review" / "skills"
        write_named_skill(skills, "a", "dup")
        write_named_skill(skills, "b", "dup")
        runner = FakeGitRunner({"https://github.com/acme/market.git": market_repo})
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            market = { gh = "acme/market" }
        """)

        summary = await run(config, project, runner=runner)

        assert not summary.success
        error = summary.failures[0].error
        assert error is not None
        assert error.stage == "extract"
        assert 'Duplicate skill name "dup"' in error.error.message
        assert not (project / ".codex" / "skills").exists()

    @pytest.mark.asyncio
    async def test_marketplace_plugin_with_empty_skills_dir(
        self, config: SyncConfig, project: Path, market_repo: Path
    ) -> None:
        """Should fail extraction when a plugin's skills directory holds no skills."""
        (market_repo / "plugins" / "empty" / "skills").mkdir()
        runner = FakeGitRunner({"https://github.com/acme/market.git": market_repo})
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            market = { gh = "acme/market" }
        """)

        summary = await run(config, project, runner=runner)

        assert not summary.success
        error = summary.failures[0].error
        assert error is not None
        assert error.stage == "extract"
        assert "No skills found" in error.error.message
        assert not any("Skipping plugin" in w for w in summary.warnings)

    @pytest.mark.asyncio
    async def test_local_plugin_layout_without_skills_dir(
        self, config: SyncConfig, project: Path
    ) -> None:
        """Should fail a direct dependency laid out as a plugin with no skills directory."""
        plugin = config.home_dir / "plugin"
        (plugin / ".claude-plugin").mkdir(parents=True)
        (plugin / ".claude-plugin" / "plugin.json").write_text(json.dumps({"name": "tools"}))
        write_manifest(project, f"""
            [agents]
            codex = true

            [dependencies]
            tools = {{ path = "{plugin}" }}
        """)

        summary = await run(config, project)

        assert not summary.success
        error = summary.failures[0].error
        assert error is not None
        assert error.stage == "extract"
        assert "Plugin skills directory not found" in error.error.message
        assert summary.warnings == []

    @pytest.mark.asyncio
    async def test_failed_stale_removal(
        self,
        config: SyncConfig,
        project: Path,
        vendor: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Should fail at reconcile and keep the previous state when a stale skill stays."""
        skills_path = project / ".codex" / "skills"
        (skills_path / "old-skill").mkdir(parents=True)
        state_file = skills_path / ".skillsync-state.json"
        state_file.write_text(
            json.dumps({"version": 1, "skills": ["old-skill"], "updated_at": "2026-01-01"})
        )

        def stuck_remove(path: Path) -> None:
            if path.name == "old-skill":
                raise IoError(f"Unable to remove {path}.", operation="remove", path=path)
            remove_path(path)

        monkeypatch.setattr("skillsync.agents.reconcile.remove_path", stuck_remove)
        write_manifest(project, """
            [agents]
            codex = true

            [dependencies]
            team = { path = "../vendor" }
        """)

        summary = await run(config, project)

        assert not summary.success
        error = summary.failures[0].error
        assert error is not None
        assert error.stage == "reconcile"
        assert isinstance(error.error, IoError)
        assert (skills_path / "old-skill").is_dir()
        assert json.loads(state_file.read_text())["skills"] == ["old-skill"]

    @pytest.mark.asyncio
    async def test_failed_clone_leaves_no_temp_files(
        self, config: SyncConfig, project: Path, skills_repo: Path
    ) -> None:
        """Should stop slower clones so nothing reappears under the temp directory."""
        runner = FakeGitRunner({"https://github.com/acme/skills.git": skills_repo})
        runner.delays["https://github.com/acme/skills.git"] = 0.05
        write_manifest(project, """
            [agents]
            codex = true
            amp = true

            [dependencies]
            bad = { gh = "acme/bad" }
            good = { gh = "acme/skills" }
        """)

        summary = await run(config, project, runner=runner)
        await asyncio.sleep(0.1)

        assert [r.error.stage for r in summary.results if r.error] == ["fetch", "fetch"]
        assert list((config.temp_dir or Path()).iterdir()) == []
