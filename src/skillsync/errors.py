"""
Exception hierarchy for skillsync.

Every failure carries a ``type`` drawn from a small taxonomy so callers can
decide how to report it:

- ``validation``: bad user input (alias, path, ref, URL shape, manifest content)
- ``io``: filesystem or subprocess failure
- ``conflict``: a target already exists or two declarations disagree
- ``not_found``: a missing agent, plugin, or path reference
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Literal

if TYPE_CHECKING:
    from skillsync.packages.models import PackageOrigin

ErrorType = Literal["validation", "io", "conflict", "not_found"]


class SkillSyncError(Exception):
    """Base class for all skillsync errors."""

    type: ClassVar[ErrorType] = "validation"

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        return self.message


class ValidationError(SkillSyncError):
    """Invalid user input."""

    type: ClassVar[ErrorType] = "validation"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.field = field


class IoError(SkillSyncError):
    """A filesystem or subprocess operation failed."""

    type: ClassVar[ErrorType] = "io"

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.operation = operation


class ConflictError(SkillSyncError):
    """A target already exists or two declarations disagree."""

    type: ClassVar[ErrorType] = "conflict"


class NotFoundError(SkillSyncError):
    """A referenced agent, plugin, or path does not exist."""

    type: ClassVar[ErrorType] = "not_found"

    def __init__(
        self,
        message: str,
        *,
        target: str,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.target = target


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

ManifestErrorKind = Literal[
    "invalid_toml",
    "invalid_manifest",
    "invalid_dependency",
    "coercion_failed",
]


class ManifestError(ValidationError):
    """A manifest file could not be parsed or validated."""

    def __init__(
        self,
        kind: ManifestErrorKind,
        message: str,
        *,
        source_path: Path | str,
        key: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, field=field, path=source_path)
        self.kind = kind
        self.source_path = Path(source_path)
        self.key = key


class AliasConflictError(ConflictError):
    """The same alias refers to different dependencies in two manifests."""

    kind = "alias_conflict"

    def __init__(self, alias: str, first_path: Path, next_path: Path) -> None:
        super().__init__(
            f'Alias "{alias}" refers to different dependencies '
            f"(first: {first_path}, next: {next_path}).",
            path=next_path,
        )
        self.alias = alias
        self.first_path = first_path
        self.next_path = next_path


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------

FetchErrorKind = Literal[
    "invalid_source",
    "invalid_ref",
    "invalid_repo",
    "io_error",
    "git_error",
]


class FetchError(SkillSyncError):
    """Fetching a package's contents failed."""

    type: ClassVar[ErrorType] = "io"

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        *,
        spec: str = "",
        origin: PackageOrigin | None = None,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.kind = kind
        self.spec = spec
        self.origin = origin


class DetectionError(ValidationError):
    """A package directory has no recognizable structure."""


class ExtractionError(ValidationError):
    """Skills could not be extracted from a detected package."""

    def __init__(
        self,
        message: str,
        *,
        field: str = "skills",
        path: Path | str | None = None,
        origin: PackageOrigin | None = None,
    ) -> None:
        super().__init__(message, field=field, path=path)
        self.origin = origin


class MarketplaceError(ValidationError):
    """A marketplace or plugin descriptor is malformed."""


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

InstallErrorKind = Literal["invalid_input", "invalid_target", "conflict", "io_error"]


class InstallError(SkillSyncError):
    """Planning or applying an agent install failed."""

    def __init__(
        self,
        kind: InstallErrorKind,
        message: str,
        *,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.kind = kind

    @property
    def type(self) -> ErrorType:  # type: ignore[override]
        return {
            "invalid_input": "validation",
            "invalid_target": "validation",
            "conflict": "conflict",
            "io_error": "io",
        }[self.kind]


class StateError(ValidationError):
    """A persisted agent state file is malformed."""


class AgentError(NotFoundError):
    """An agent id is not in the registry."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Unknown agent: {agent_id}", target="agent")
        self.agent_id = agent_id


class SyncError(SkillSyncError):
    """A sync stage failed; wraps the underlying error with its stage name."""

    def __init__(self, stage: str, error: SkillSyncError) -> None:
        super().__init__(f"{stage}: {error.message}", path=error.path)
        self.stage = stage
        self.error = error

    @property
    def type(self) -> ErrorType:  # type: ignore[override]
        return self.error.type
