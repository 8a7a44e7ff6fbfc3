"""Shared pytest fixtures for skillsync tests."""

import asyncio
import shutil
from collections.abc import Sequence
from pathlib import Path
from textwrap import dedent

import pytest

from skillsync.agents.registry import ResolvedAgent, get_agent_by_id, resolve_agent
from skillsync.config import SyncConfig
from skillsync.marketplace.claude import ClaudeCli
from skillsync.packages.git import GitRunner
from skillsync.process import CommandResult


def write_skill(parent: Path, name: str, description: str = "A test skill") -> Path:
    """Create ``parent/name/SKILL.md`` and return the skill directory."""
    skill_dir = parent / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        dedent(f"""
            ---
            name: {name}
            description: "{description}"
            ---

            # {name}

            Instructions for {name}.
        """).lstrip()
    )
    return skill_dir


def write_manifest(directory: Path, content: str) -> Path:
    """Write a dedented ``agents.toml`` into *directory*."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "agents.toml"
    path.write_text(dedent(content).lstrip())
    return path


class FakeGitRunner(GitRunner):
    """Records git invocations and materializes clones from local fixture trees."""

    def __init__(self, repos: dict[str, Path] | None = None) -> None:
        super().__init__("git")
        self.repos = repos or {}
        self.calls: list[list[str]] = []
        self.failing: set[str] = set()
        self.delays: dict[str, float] = {}

    async def run(self, args: Sequence[str], cwd: Path | None = None) -> CommandResult:
        argv = list(args)
        self.calls.append(argv)

        subcommand = argv[2] if argv[0] == "-C" else argv[0]
        if subcommand in self.failing:
            return CommandResult.error_result(stderr=f"fatal: {subcommand} failed")

        if argv[0] == "clone":
            remote_url, destination = argv[-2], Path(argv[-1])
            if remote_url in self.delays:
                await asyncio.sleep(self.delays[remote_url])
            source = self.repos.get(remote_url)
            if source is None:
                return CommandResult.error_result(
                    stderr=f"fatal: repository '{remote_url}' not found", exit_code=128
                )
            shutil.copytree(source, destination)

        return CommandResult.success_result(stdout="")

    @property
    def clones(self) -> list[list[str]]:
        return [call for call in self.calls if call[0] == "clone"]


class RecordingClaude(ClaudeCli):
    """Records ``claude plugin`` invocations instead of running them."""

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        super().__init__("claude")
        self.calls: list[list[str]] = []
        self.results = results or {}

    async def run(self, args: list[str]) -> CommandResult:
        self.calls.append(list(args))
        return self.results.get(args[0], CommandResult.success_result(stdout=""))


@pytest.fixture
def fake_git() -> FakeGitRunner:
    """A git runner that never touches the network."""
    return FakeGitRunner()


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    """Config rooted in a temporary home directory."""
    home = tmp_path / "home"
    home.mkdir(exist_ok=True)
    return SyncConfig(home_dir=home, temp_dir=tmp_path / "tmp")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory inside the temporary home."""
    path = tmp_path / "home" / "project"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def codex_agent(project: Path) -> ResolvedAgent:
    """Codex resolved against the test project."""
    return resolve_agent(get_agent_by_id("codex"), "local", project_root=project)


@pytest.fixture
def skills_repo(tmp_path: Path) -> Path:
    """A repository with two skills under ``skills/``."""
    repo = tmp_path / "repos" / "skills-repo"
    write_skill(repo / "skills", "lint", "Run the linters")
    write_skill(repo / "skills", "review", "Review a diff")
    return repo
