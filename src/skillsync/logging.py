"""
Logging for skillsync.

Every module logs through a child of the ``skillsync`` logger. The ``sk``
command configures it once per run: ``--verbose`` forces DEBUG, otherwise
the level comes from ``SKILLSYNC_LOG_LEVEL`` and defaults to WARNING so
that normal runs only print the rich summary.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

LOG_LEVEL_ENV_VAR = "SKILLSYNC_LOG_LEVEL"
DEFAULT_LEVEL = logging.WARNING
DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# Package root logger
_root_logger = logging.getLogger("skillsync")


def resolve_level(level: str | int | None = None) -> int:
    """Turn a level name, number or ``None`` into a logging level.

    ``None`` reads ``SKILLSYNC_LOG_LEVEL``. Unknown names fall back to
    WARNING.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "").strip() or DEFAULT_LEVEL
    if isinstance(level, int):
        return level
    if level.isdigit():
        return int(level)
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else DEFAULT_LEVEL


def setup_logging(
    level: str | int | None = None,
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for skillsync.

    Args:
        level: Log level name or number; ``None`` uses ``SKILLSYNC_LOG_LEVEL``
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to write logs

    Example:
        from skillsync.logging import setup_logging

        # Show git commands and detection decisions
        setup_logging("DEBUG")

        # Keep a log of sync runs
        setup_logging("INFO", file="sync.log")
    """
    level = resolve_level(level)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Child logger for a submodule, e.g. ``get_logger("packages.fetch")``."""
    if name.startswith("skillsync."):
        return logging.getLogger(name)
    return logging.getLogger(f"skillsync.{name}")


def set_level(level: str | int) -> None:
    """Set the log level for skillsync and its handlers."""
    level = resolve_level(level)
    _root_logger.setLevel(level)
    for handler in _root_logger.handlers:
        handler.setLevel(level)


def disable() -> None:
    """Disable all logging for skillsync."""
    _root_logger.disabled = True


def enable() -> None:
    """Re-enable logging for skillsync."""
    _root_logger.disabled = False
