"""
Materialize canonical packages on disk.

Remote packages are cloned into per-group directories under a temp root;
groups are independent and fetched concurrently. Local packages are used in
place after an existence check.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from skillsync.errors import FetchError
from skillsync.fs import safe_stat
from skillsync.logging import get_logger
from skillsync.packages.git import GitRunner, clone_repository
from skillsync.packages.models import (
    CanonicalPackage,
    ClaudePluginPackage,
    FetchedPackage,
    LocalPackage,
    PackageOrigin,
    RegistryPackage,
)
from skillsync.packages.repo import (
    RepoGroup,
    build_repo_dir,
    build_repo_key,
    github_remote_url,
    group_packages,
    join_repo_path,
)

logger = get_logger("fetch")


async def fetch_packages(
    packages: list[CanonicalPackage],
    temp_root: Path,
    runner: GitRunner,
    concurrency: int = 4,
) -> list[FetchedPackage]:
    """Fetch every package for one agent pass.

    Claude plugin packages must already have been expanded by marketplace
    resolution. Registry packages cannot be fetched.

    Raises:
        FetchError: On the first package that cannot be fetched.
    """
    for package in packages:
        if isinstance(package, ClaudePluginPackage):
            raise FetchError(
                "invalid_source",
                "Claude plugin dependencies must be resolved before fetch.",
                origin=package.origin,
            )
    for package in packages:
        if isinstance(package, RegistryPackage):
            raise FetchError(
                "invalid_source",
                "Registry packages are not supported yet.",
                spec=package.name,
                origin=package.origin,
            )

    groups = group_packages(packages)
    logger.debug("Fetching %d repo group(s) into %s", len(groups), temp_root)

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def fetch_one(group: RepoGroup) -> list[FetchedPackage]:
        async with semaphore:
            return await fetch_group(group, temp_root, runner)

    # Remaining clones are cancelled and awaited before the first failure propagates.
    try:
        async with asyncio.TaskGroup() as tasks:
            pending = [tasks.create_task(fetch_one(group)) for group in groups]
    except ExceptionGroup as failures:
        raise failures.exceptions[0]

    fetched: list[FetchedPackage] = []
    for task in pending:
        fetched.extend(task.result())

    for package in packages:
        if isinstance(package, LocalPackage):
            fetched.append(fetch_local_package(package))

    return fetched


async def fetch_group(group: RepoGroup, temp_root: Path, runner: GitRunner) -> list[FetchedPackage]:
    """Clone one repository group and map each member to its package path."""
    repo_path = await clone_repository(
        runner,
        remote_url=group.remote_url,
        destination=temp_root / group.dir_name,
        origin=group.origin,
        spec=group.source,
        ref=group.ref,
        sparse_paths=group.checkout_paths,
    )
    return [
        FetchedPackage(
            canonical=member.package,
            package_path=join_repo_path(repo_path, member.sparse_path),
            repo_path=repo_path,
        )
        for member in group.members
    ]


def fetch_local_package(package: LocalPackage) -> FetchedPackage:
    path = Path(package.absolute_path)
    check_local_directory(path, origin=package.origin, label="Local path")
    return FetchedPackage(canonical=package, package_path=path, repo_path=path)


def check_local_directory(path: Path, *, origin: PackageOrigin | None, label: str) -> None:
    stats = safe_stat(path)
    if stats is None:
        raise FetchError(
            "invalid_source",
            f"{label} does not exist: {path}",
            spec=str(path),
            origin=origin,
            path=path,
        )
    if not path.is_dir():
        raise FetchError(
            "invalid_source",
            f"{label} is not a directory: {path}",
            spec=str(path),
            origin=origin,
            path=path,
        )


class RepoCache:
    """Clones shared by several plugins within one agent pass, keyed by repo."""

    def __init__(self, temp_root: Path, runner: GitRunner) -> None:
        self.temp_root = temp_root
        self.runner = runner
        self._paths: dict[str, Path] = {}

    async def github(self, slug: str, origin: PackageOrigin) -> Path:
        return await self._clone(
            build_repo_key("github", slug, None), github_remote_url(slug), slug, origin
        )

    async def git(self, url: str, origin: PackageOrigin) -> Path:
        return await self._clone(build_repo_key("git", url, None), url, url, origin)

    async def _clone(self, key: str, remote_url: str, spec: str, origin: PackageOrigin) -> Path:
        cached = self._paths.get(key)
        if cached is not None:
            return cached
        path = await clone_repository(
            self.runner,
            remote_url=remote_url,
            destination=self.temp_root / build_repo_dir(key, str(origin.alias)),
            origin=origin,
            spec=spec,
        )
        self._paths[key] = path
        return path
