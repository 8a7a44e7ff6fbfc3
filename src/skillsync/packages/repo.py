"""
Repository grouping.

Packages that live in the same remote repository at the same ref are fetched
with a single clone. Groups are computed up front, before any fetch starts.
"""

from __future__ import annotations

import hashlib
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillsync.coerce import GitRef
from skillsync.errors import FetchError
from skillsync.packages.models import (
    CanonicalPackage,
    GithubPackage,
    GitPackage,
    PackageOrigin,
    RemotePackage,
)

_UNSAFE_DIR_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def build_repo_key(kind: Literal["github", "git"], identity: str, ref: GitRef | None) -> str:
    """``<kind>:<identity>:<refkey>`` with refkey ``default`` when no ref is set."""
    ref_key = "default" if ref is None else f"{ref.kind}:{ref.value}"
    return f"{kind}:{identity}:{ref_key}"


def build_repo_dir(key: str, alias: str) -> str:
    """Directory name for a group clone, unique per key within a temp root."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
    safe_alias = _UNSAFE_DIR_CHARS.sub("_", alias.strip())
    return f"{safe_alias}-{digest}" if safe_alias else digest


def normalize_sparse_path(value: str | None) -> str | None:
    """Normalize a repo sub-path for sparse checkout.

    Returns ``None`` when the path selects the whole repository.

    Raises:
        ValueError: If the path is blank, absolute or escapes the repository.
    """
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("Package path must not be empty.")

    cleaned = trimmed.replace("\\", "/")
    if cleaned.startswith("/"):
        raise ValueError("Package path must be relative.")
    if ".." in cleaned.split("/"):
        raise ValueError("Package path must not escape the repository.")

    normalized = re.sub(r"^(\./)+", "", posixpath.normpath(cleaned))
    if not normalized or normalized == ".":
        return None
    return normalized


def join_repo_path(repo_dir: Path, sparse_path: str | None) -> Path:
    if not sparse_path:
        return repo_dir
    return repo_dir.joinpath(*sparse_path.split("/"))


@dataclass(frozen=True)
class GroupMember:
    package: RemotePackage
    sparse_path: str | None


@dataclass
class RepoGroup:
    """Every declared package sharing one ``(kind, identity, ref)`` key."""

    key: str
    kind: Literal["github", "git"]
    remote_url: str
    source: str
    origin: PackageOrigin
    ref: GitRef | None = None
    members: list[GroupMember] = field(default_factory=list)
    sparse_paths: set[str] = field(default_factory=set)
    full_checkout: bool = False

    def add(self, package: RemotePackage, sparse_path: str | None) -> None:
        self.members.append(GroupMember(package=package, sparse_path=sparse_path))
        if sparse_path is None:
            self.full_checkout = True
        else:
            self.sparse_paths.add(sparse_path)

    @property
    def checkout_paths(self) -> list[str] | None:
        """Sorted sparse paths, or ``None`` for a full checkout."""
        if self.full_checkout or not self.sparse_paths:
            return None
        return sorted(self.sparse_paths)

    @property
    def dir_name(self) -> str:
        return build_repo_dir(self.key, str(self.origin.alias))


def github_remote_url(slug: str) -> str:
    owner, _, repo = slug.partition("/")
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return f"https://github.com/{owner}/{repo}.git"


def group_packages(packages: list[CanonicalPackage]) -> list[RepoGroup]:
    """Group github and git packages by repository and ref.

    Other package types are ignored. Group order follows first appearance.

    Raises:
        FetchError: If a member's sub-path is invalid.
    """
    groups: dict[str, RepoGroup] = {}

    for package in packages:
        if isinstance(package, GithubPackage):
            key = build_repo_key("github", package.gh, package.ref)
            remote_url = github_remote_url(package.gh)
            source = str(package.gh)
        elif isinstance(package, GitPackage):
            key = build_repo_key("git", package.url, package.ref)
            remote_url = str(package.url)
            source = str(package.url)
        else:
            continue

        try:
            sparse_path = normalize_sparse_path(package.path)
        except ValueError as e:
            raise FetchError(
                "invalid_source", str(e), spec=source, origin=package.origin
            ) from e

        group = groups.get(key)
        if group is None:
            group = RepoGroup(
                key=key,
                kind=package.type,
                remote_url=remote_url,
                source=source,
                origin=package.origin,
                ref=package.ref,
            )
            groups[key] = group
        group.add(package, sparse_path)

    return list(groups.values())
