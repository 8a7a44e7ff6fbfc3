"""
Configuration for skillsync.

A :class:`SyncConfig` is built once at process start (from defaults, an
optional YAML file and environment variables) and passed explicitly to the
components that need it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from skillsync.constants import GLOBAL_DIR, MANIFEST_FILENAME, STATE_FILENAME
from skillsync.logging import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "SKILLSYNC_CONFIG"
CONFIG_FILENAME = "config.yaml"


@dataclass
class SyncConfig:
    """
    Process-wide settings.

    Example YAML (``~/.sk/config.yaml``):
        detect_timeout: 3
        git_binary: /usr/local/bin/git
        http_retries: 5
        fetch_concurrency: 8
    """

    home_dir: Path = field(default_factory=Path.home)
    global_dir: Path | None = None  # Defaults to <home_dir>/.sk
    manifest_filename: str = MANIFEST_FILENAME
    state_filename: str = STATE_FILENAME

    # Subprocesses
    git_binary: str = "git"
    claude_binary: str = "claude"
    detect_timeout: float = 5.0  # Seconds per agent CLI check

    # Marketplace HTTP fetches
    http_timeout: float = 10.0
    http_retries: int = 3
    http_backoff: float = 0.5  # Base delay, doubled per retry

    # Fetching
    fetch_concurrency: int = 4  # Repository groups cloned in parallel
    temp_dir: Path | None = None  # Base for per-agent temp roots

    def __post_init__(self) -> None:
        self.home_dir = Path(self.home_dir)
        if self.global_dir is None:
            self.global_dir = self.home_dir / GLOBAL_DIR

    @property
    def global_manifest_path(self) -> Path:
        assert self.global_dir is not None
        return self.global_dir / self.manifest_filename

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Create config from a dictionary."""
        home_dir = Path(data["home_dir"]).expanduser() if data.get("home_dir") else Path.home()
        return cls(
            home_dir=home_dir,
            global_dir=Path(data["global_dir"]).expanduser() if data.get("global_dir") else None,
            manifest_filename=data.get("manifest_filename", MANIFEST_FILENAME),
            state_filename=data.get("state_filename", STATE_FILENAME),
            git_binary=data.get("git_binary", "git"),
            claude_binary=data.get("claude_binary", "claude"),
            detect_timeout=float(data.get("detect_timeout", 5.0)),
            http_timeout=float(data.get("http_timeout", 10.0)),
            http_retries=int(data.get("http_retries", 3)),
            http_backoff=float(data.get("http_backoff", 0.5)),
            fetch_concurrency=int(data.get("fetch_concurrency", 4)),
            temp_dir=Path(data["temp_dir"]).expanduser() if data.get("temp_dir") else None,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> SyncConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> SyncConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, path: Path | None = None) -> SyncConfig:
        """Load config the way the CLI does.

        Order: ``.env`` (found by python-dotenv), then the YAML file (explicit
        *path*, ``$SKILLSYNC_CONFIG`` or ``~/.sk/config.yaml``), then
        ``SKILLSYNC_*`` environment overrides.
        """
        load_dotenv()

        data: dict[str, Any] = {}
        candidate = path or _default_config_path()
        if candidate is not None and candidate.is_file():
            with open(candidate) as f:
                data = yaml.safe_load(f) or {}

        data.update(_env_overrides())
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "home_dir": str(self.home_dir),
            "global_dir": str(self.global_dir),
            "manifest_filename": self.manifest_filename,
            "state_filename": self.state_filename,
            "git_binary": self.git_binary,
            "claude_binary": self.claude_binary,
            "detect_timeout": self.detect_timeout,
            "http_timeout": self.http_timeout,
            "http_retries": self.http_retries,
            "http_backoff": self.http_backoff,
            "fetch_concurrency": self.fetch_concurrency,
            "temp_dir": str(self.temp_dir) if self.temp_dir else None,
        }


def _default_config_path() -> Path | None:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    home = os.environ.get("SKILLSYNC_HOME")
    base = Path(home).expanduser() if home else Path.home()
    return base / GLOBAL_DIR / CONFIG_FILENAME


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if os.environ.get("SKILLSYNC_HOME"):
        overrides["home_dir"] = os.environ["SKILLSYNC_HOME"]
    if os.environ.get("SKILLSYNC_GIT"):
        overrides["git_binary"] = os.environ["SKILLSYNC_GIT"]
    timeout = os.environ.get("SKILLSYNC_DETECT_TIMEOUT")
    if timeout:
        try:
            overrides["detect_timeout"] = float(timeout)
        except ValueError:
            logger.warning("Ignoring non-numeric SKILLSYNC_DETECT_TIMEOUT=%r", timeout)
    return overrides
