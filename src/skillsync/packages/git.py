"""
Git operations for fetching remote packages.

All commands go through :class:`GitRunner` so tests can substitute a fake that
records argv and materializes files instead of touching the network.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from skillsync.coerce import GitRef
from skillsync.errors import FetchError
from skillsync.fs import ensure_dir, path_exists
from skillsync.logging import get_logger
from skillsync.packages.models import PackageOrigin
from skillsync.process import CommandResult, run_command

logger = get_logger("git")

GitResult = CommandResult

DEEPEN_DEPTH = 50


class GitRunner:
    """Runs git subcommands with a configurable binary."""

    def __init__(self, binary: str = "git") -> None:
        self.binary = binary
        self._available: bool | None = None

    async def run(self, args: Sequence[str], cwd: Path | None = None) -> GitResult:
        logger.debug("git %s", " ".join(args))
        return await run_command([self.binary, *args], cwd=cwd)

    async def ensure_available(self) -> None:
        """Check ``git --version`` once; later calls reuse the answer.

        Raises:
            FetchError: If git cannot be executed.
        """
        if self._available is None:
            result = await self.run(["--version"])
            self._available = result.success
        if not self._available:
            raise FetchError(
                "git_error",
                "git is not available. Install git and ensure it is on your PATH.",
            )


async def clone_repository(
    runner: GitRunner,
    *,
    remote_url: str,
    destination: Path,
    origin: PackageOrigin,
    spec: str,
    ref: GitRef | None = None,
    sparse_paths: list[str] | None = None,
) -> Path:
    """Shallow-clone *remote_url* into *destination* and check out *ref*.

    Returns:
        The repository path.

    Raises:
        FetchError: If the destination exists or any git command fails.
    """
    await runner.ensure_available()

    ensure_dir(destination.parent)
    if path_exists(destination):
        raise FetchError(
            "invalid_repo",
            f"Destination already exists: {destination}",
            spec=spec,
            origin=origin,
            path=destination,
        )

    args = ["clone", "--depth", "1"]
    if sparse_paths:
        args += ["--filter=blob:none", "--sparse"]
    args += [remote_url, str(destination)]
    await _run_checked(runner, args, origin=origin, spec=spec)

    if sparse_paths:
        await _run_checked(
            runner,
            ["-C", str(destination), "sparse-checkout", "init", "--cone"],
            origin=origin,
            spec=spec,
        )
        await _run_checked(
            runner,
            ["-C", str(destination), "sparse-checkout", "set", *sparse_paths],
            origin=origin,
            spec=spec,
        )

    if ref is not None:
        await checkout_ref(runner, destination, ref, origin=origin, spec=spec)

    return destination


async def checkout_ref(
    runner: GitRunner,
    repo_dir: Path,
    ref: GitRef,
    *,
    origin: PackageOrigin,
    spec: str,
) -> None:
    """Fetch and check out *ref*, deepening the history if a shallow fetch misses it."""
    repo = str(repo_dir)

    if ref.kind == "tag":
        fetch_args = ["-C", repo, "fetch", "--depth", "1", "origin", "tag", ref.value]
        checkout_args = ["-C", repo, "checkout", "--detach", f"tags/{ref.value}"]
    elif ref.kind == "branch":
        fetch_args = ["-C", repo, "fetch", "--depth", "1", "origin", ref.value]
        checkout_args = ["-C", repo, "checkout", "-B", ref.value, f"origin/{ref.value}"]
    elif ref.kind == "rev":
        fetch_args = ["-C", repo, "fetch", "--depth", "1", "origin", ref.value]
        checkout_args = ["-C", repo, "checkout", "--detach", ref.value]
    else:
        raise ValueError(f"Unknown git ref kind: {ref.kind}")

    fetched = await runner.run(fetch_args)
    if not fetched.success:
        logger.debug("Shallow fetch of %s failed; deepening", ref)
        await _deepen(runner, repo, origin=origin, spec=spec)

    await _run_checked(runner, checkout_args, origin=origin, spec=spec)


async def _deepen(runner: GitRunner, repo: str, *, origin: PackageOrigin, spec: str) -> None:
    await _run_checked(
        runner,
        ["-C", repo, "fetch", "--depth", str(DEEPEN_DEPTH), "origin"],
        origin=origin,
        spec=spec,
    )


async def _run_checked(
    runner: GitRunner,
    args: list[str],
    *,
    origin: PackageOrigin,
    spec: str,
) -> GitResult:
    result = await runner.run(args)
    if not result.success:
        raise FetchError(
            "git_error",
            f"git {_subcommand(args)} failed for {spec}: {result.message}",
            spec=spec,
            origin=origin,
        )
    return result


def _subcommand(args: list[str]) -> str:
    if args[0] == "-C" and len(args) > 2:
        return args[2]
    return args[0]
