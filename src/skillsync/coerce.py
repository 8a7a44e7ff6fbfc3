"""
Validated string types and the factories that produce them.

Raw strings from manifests, marketplaces and the command line are converted
here exactly once. Every ``coerce_*`` function returns ``None`` for invalid
input; downstream code accepts the branded type and never re-validates it.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, NewType

Alias = NewType("Alias", str)
AbsolutePath = NewType("AbsolutePath", Path)
GithubRef = NewType("GithubRef", str)
NormalizedGitUrl = NewType("NormalizedGitUrl", str)
NonEmptyString = NewType("NonEmptyString", str)
AgentId = NewType("AgentId", str)

VALID_AGENT_IDS: tuple[str, ...] = ("amp", "claude-code", "codex", "opencode", "factory")

_ALIAS_INVALID_CHARS = re.compile(r"[/\\.:]")
_GITHUB_REF = re.compile(r"^([a-zA-Z0-9_.-]+)/([a-zA-Z0-9_.-]+)$")
_SSH_GIT_URL = re.compile(r"^git@([^:]+):(.+?)(?:\.git)?$")
_HTTPS_GIT_URL = re.compile(r"^https?://([^/]+)/(.+?)(?:\.git)?/?$")

GitRefKind = Literal["tag", "branch", "rev"]


@dataclass(frozen=True)
class GitRef:
    """A single git reference: exactly one of tag, branch or rev."""

    kind: GitRefKind
    value: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


def coerce_non_empty(value: str) -> NonEmptyString | None:
    trimmed = value.strip()
    if not trimmed:
        return None
    return NonEmptyString(trimmed)


def coerce_alias(value: str) -> Alias | None:
    """Aliases must be non-empty and free of path separators, dots and colons."""
    trimmed = value.strip()
    if not trimmed or _ALIAS_INVALID_CHARS.search(trimmed):
        return None
    return Alias(trimmed)


def coerce_agent_id(value: str) -> AgentId | None:
    trimmed = value.strip()
    if trimmed not in VALID_AGENT_IDS:
        return None
    return AgentId(trimmed)


def coerce_absolute_path(
    value: str | Path,
    base: str | Path | None = None,
) -> AbsolutePath | None:
    """Normalize *value* to an absolute path.

    Relative values are resolved against *base*; without a base they are
    rejected. ``~`` is expanded. Symlinks are not resolved.
    """
    text = str(value).strip()
    if not text:
        return None

    expanded = os.path.expanduser(text)
    if os.path.isabs(expanded):
        return AbsolutePath(Path(os.path.normpath(expanded)))
    if base is None:
        return None
    return AbsolutePath(Path(os.path.normpath(os.path.join(str(base), expanded))))


def coerce_github_ref(value: str) -> GithubRef | None:
    """Accept ``owner/repo`` slugs."""
    trimmed = value.strip()
    if not _GITHUB_REF.match(trimmed):
        return None
    return GithubRef(trimmed)


def coerce_git_url(value: str) -> NormalizedGitUrl | None:
    """Normalize SSH and HTTP(S) git URLs to ``https://host/path``.

    A trailing ``.git`` is dropped so that both spellings of the same remote
    compare equal.
    """
    trimmed = value.strip()
    if not trimmed:
        return None

    match = _SSH_GIT_URL.match(trimmed)
    if match:
        host, repo_path = match.groups()
        return NormalizedGitUrl(f"https://{host}/{repo_path}")

    match = _HTTPS_GIT_URL.match(trimmed)
    if match:
        host, repo_path = match.groups()
        return NormalizedGitUrl(f"https://{host}/{repo_path}")

    return None


def coerce_git_ref(
    tag: str | None = None,
    branch: str | None = None,
    rev: str | None = None,
) -> GitRef | None:
    """Build a :class:`GitRef` from optional tag/branch/rev values.

    Returns ``None`` when none is set.

    Raises:
        ValueError: If more than one is set or the value is blank.
    """
    given: list[tuple[GitRefKind, str]] = [
        (kind, value)
        for kind, value in (("tag", tag), ("branch", branch), ("rev", rev))
        if value is not None
    ]
    if not given:
        return None
    if len(given) > 1:
        names = ", ".join(kind for kind, _ in given)
        raise ValueError(f"Only one of tag, branch, or rev may be set (got {names}).")

    kind, value = given[0]
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{kind} must be non-empty.")
    return GitRef(kind=kind, value=trimmed)
