"""Tests for git operations and package fetching."""

import asyncio
from pathlib import Path

import pytest

from conftest import FakeGitRunner, write_skill
from skillsync.coerce import Alias, GitRef
from skillsync.errors import FetchError
from skillsync.packages.fetch import RepoCache, fetch_local_package, fetch_packages
from skillsync.packages.git import checkout_ref, clone_repository
from skillsync.packages.models import (
    ClaudePluginPackage,
    FetchStrategy,
    GithubPackage,
    LocalPackage,
    PackageOrigin,
    RegistryPackage,
)
from skillsync.process import CommandResult

ORIGIN = PackageOrigin(manifest_path=Path("/work/agents.toml"), alias=Alias("acme"))
REMOTE = "https://github.com/acme/skills.git"


class ShallowMissRunner(FakeGitRunner):
    """Fails depth-1 fetches so checkout has to deepen."""

    async def run(self, args, cwd=None):
        result = await super().run(args, cwd)
        if list(args[2:5]) == ["fetch", "--depth", "1"]:
            return CommandResult.error_result(stderr="fatal: couldn't find remote ref")
        return result


def github(path: str | None = None, ref: GitRef | None = None) -> GithubPackage:
    return GithubPackage(
        origin=ORIGIN,
        fetch_strategy=FetchStrategy.clone(sparse=path is not None),
        gh="acme/skills",
        ref=ref,
        path=path,
    )


class TestCloneRepository:
    """Tests for clone_repository and checkout_ref."""

    @pytest.mark.asyncio
    async def test_shallow_clone(self, tmp_path: Path, skills_repo: Path) -> None:
        """Should run a depth-1 clone into the destination."""
        runner = FakeGitRunner({REMOTE: skills_repo})
        destination = tmp_path / "out" / "repo"

        path = await clone_repository(
            runner, remote_url=REMOTE, destination=destination, origin=ORIGIN, spec="acme/skills"
        )

        assert path == destination
        assert (destination / "skills" / "lint" / "SKILL.md").is_file()
        assert runner.clones == [["clone", "--depth", "1", REMOTE, str(destination)]]

    @pytest.mark.asyncio
    async def test_sparse_clone(self, tmp_path: Path, skills_repo: Path) -> None:
        """Should enable cone-mode sparse checkout for the given paths."""
        runner = FakeGitRunner({REMOTE: skills_repo})
        destination = tmp_path / "repo"

        await clone_repository(
            runner,
            remote_url=REMOTE,
            destination=destination,
            origin=ORIGIN,
            spec="acme/skills",
            sparse_paths=["skills"],
        )

        repo = str(destination)
        assert runner.calls[1:] == [
            ["clone", "--depth", "1", "--filter=blob:none", "--sparse", REMOTE, repo],
            ["-C", repo, "sparse-checkout", "init", "--cone"],
            ["-C", repo, "sparse-checkout", "set", "skills"],
        ]

    @pytest.mark.asyncio
    async def test_existing_destination(self, tmp_path: Path) -> None:
        """Should refuse to clone over an existing path."""
        destination = tmp_path / "repo"
        destination.mkdir()

        with pytest.raises(FetchError, match="Destination already exists") as exc_info:
            await clone_repository(
                FakeGitRunner(),
                remote_url=REMOTE,
                destination=destination,
                origin=ORIGIN,
                spec="acme/skills",
            )

        assert exc_info.value.kind == "invalid_repo"

    @pytest.mark.asyncio
    async def test_clone_failure(self, tmp_path: Path) -> None:
        """Should surface git's error message."""
        with pytest.raises(FetchError, match="git clone failed for acme/skills") as exc_info:
            await clone_repository(
                FakeGitRunner(),
                remote_url=REMOTE,
                destination=tmp_path / "repo",
                origin=ORIGIN,
                spec="acme/skills",
            )

        assert exc_info.value.kind == "git_error"
        assert exc_info.value.origin == ORIGIN

    @pytest.mark.asyncio
    async def test_git_unavailable(self, tmp_path: Path) -> None:
        """Should fail early when git cannot run."""
        runner = FakeGitRunner()
        runner.failing.add("--version")

        with pytest.raises(FetchError, match="git is not available"):
            await clone_repository(
                runner,
                remote_url=REMOTE,
                destination=tmp_path / "repo",
                origin=ORIGIN,
                spec="acme/skills",
            )

    @pytest.mark.asyncio
    async def test_checkout_tag(self, tmp_path: Path) -> None:
        """Should fetch and detach at a tag."""
        runner = FakeGitRunner()
        repo = str(tmp_path)

        await checkout_ref(
            runner, tmp_path, GitRef(kind="tag", value="v1"), origin=ORIGIN, spec="acme/skills"
        )

        assert runner.calls == [
            ["-C", repo, "fetch", "--depth", "1", "origin", "tag", "v1"],
            ["-C", repo, "checkout", "--detach", "tags/v1"],
        ]

    @pytest.mark.asyncio
    async def test_checkout_branch_deepens(self, tmp_path: Path) -> None:
        """Should deepen history when the shallow fetch misses the ref."""
        runner = ShallowMissRunner()
        repo = str(tmp_path)

        await checkout_ref(
            runner, tmp_path, GitRef(kind="rev", value="abc123"), origin=ORIGIN, spec="x"
        )

        assert runner.calls == [
            ["-C", repo, "fetch", "--depth", "1", "origin", "abc123"],
            ["-C", repo, "fetch", "--depth", "50", "origin"],
            ["-C", repo, "checkout", "--detach", "abc123"],
        ]


class TestFetchPackages:
    """Tests for fetch_packages."""

    @pytest.mark.asyncio
    async def test_groups_share_clone(self, tmp_path: Path, skills_repo: Path) -> None:
        """Should clone once and map each member to its sub-path."""
        runner = FakeGitRunner({REMOTE: skills_repo})

        fetched = await fetch_packages(
            [github("skills/lint"), github("skills/review")], tmp_path / "tmp", runner
        )

        assert len(runner.clones) == 1
        assert [f.package_path.relative_to(f.repo_path).as_posix() for f in fetched] == [
            "skills/lint",
            "skills/review",
        ]

    @pytest.mark.asyncio
    async def test_checks_out_ref(self, tmp_path: Path, skills_repo: Path) -> None:
        """Should check out the group's ref after cloning."""
        runner = FakeGitRunner({REMOTE: skills_repo})

        await fetch_packages(
            [github(ref=GitRef(kind="branch", value="dev"))], tmp_path / "tmp", runner
        )

        assert runner.calls[-1][2:] == ["checkout", "-B", "dev", "origin/dev"]

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_clones(
        self, tmp_path: Path, skills_repo: Path
    ) -> None:
        """Should stop in-flight clones before reporting the first failure."""
        runner = FakeGitRunner({REMOTE: skills_repo})
        runner.delays[REMOTE] = 0.05
        missing = GithubPackage(
            origin=PackageOrigin(manifest_path=ORIGIN.manifest_path, alias=Alias("gone")),
            fetch_strategy=FetchStrategy.clone(sparse=False),
            gh="acme/missing",
        )
        temp_root = tmp_path / "tmp"

        with pytest.raises(FetchError, match="git clone failed"):
            await fetch_packages([github(), missing], temp_root, runner)
        await asyncio.sleep(0.1)

        assert list(temp_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_local_package(self, tmp_path: Path) -> None:
        """Should use local packages in place."""
        source = write_skill(tmp_path, "solo")
        local = LocalPackage(
            origin=ORIGIN, fetch_strategy=FetchStrategy.symlink(), absolute_path=source
        )

        fetched = await fetch_packages([local], tmp_path / "tmp", FakeGitRunner())

        assert fetched[0].package_path == source
        assert fetched[0].repo_path == source

    def test_local_package_missing(self, tmp_path: Path) -> None:
        """Should reject a local path that does not exist."""
        local = LocalPackage(
            origin=ORIGIN,
            fetch_strategy=FetchStrategy.symlink(),
            absolute_path=tmp_path / "missing",
        )

        with pytest.raises(FetchError, match="Local path does not exist"):
            fetch_local_package(local)

    @pytest.mark.asyncio
    async def test_rejects_unexpanded_plugins(self, tmp_path: Path) -> None:
        """Should refuse claude-plugin packages."""
        plugin = ClaudePluginPackage(
            origin=ORIGIN, fetch_strategy=FetchStrategy.clone(), plugin="p", marketplace="a/b"
        )

        with pytest.raises(FetchError, match="must be resolved before fetch"):
            await fetch_packages([plugin], tmp_path, FakeGitRunner())

    @pytest.mark.asyncio
    async def test_rejects_registry(self, tmp_path: Path) -> None:
        """Should report registry packages as unsupported."""
        package = RegistryPackage(
            origin=ORIGIN,
            fetch_strategy=FetchStrategy.clone(),
            name="tool",
            version="1.0.0",
            registry="skills.supply",
        )

        with pytest.raises(FetchError, match="Registry packages are not supported"):
            await fetch_packages([package], tmp_path, FakeGitRunner())


class TestRepoCache:
    """Tests for RepoCache."""

    @pytest.mark.asyncio
    async def test_clones_once(self, tmp_path: Path, skills_repo: Path) -> None:
        """Should reuse a clone for the same repository."""
        runner = FakeGitRunner({REMOTE: skills_repo})
        cache = RepoCache(tmp_path / "tmp", runner)

        first = await cache.github("acme/skills", ORIGIN)
        second = await cache.github("acme/skills", ORIGIN)

        assert first == second
        assert len(runner.clones) == 1
