"""
Async subprocess execution shared by git, agent detection and the claude CLI.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skillsync.logging import get_logger

logger = get_logger("process")


@dataclass
class CommandResult:
    """Result of a subprocess invocation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success_result(
        cls, stdout: str, stderr: str = "", duration_ms: float = 0.0
    ) -> CommandResult:
        """Create a successful result."""
        return cls(success=True, stdout=stdout, stderr=stderr, duration_ms=duration_ms)

    @classmethod
    def error_result(
        cls,
        stderr: str,
        exit_code: int = 1,
        stdout: str = "",
        duration_ms: float = 0.0,
    ) -> CommandResult:
        """Create an error result."""
        return cls(
            success=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )

    @property
    def message(self) -> str:
        """Best single-line description of a failure."""
        text = (self.stderr or self.stdout).strip()
        return text or f"Command failed with exit code {self.exit_code}"


async def run_command(
    argv: Sequence[str],
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """
    Run *argv* without a shell and capture its output.

    A missing executable, a timeout and a non-zero exit all produce an error
    result; nothing is raised.

    Args:
        argv: Program and arguments
        cwd: Working directory
        timeout: Seconds before the process is killed

    Returns:
        CommandResult with decoded stdout/stderr
    """
    start = time.perf_counter()

    def elapsed() -> float:
        return (time.perf_counter() - start) * 1000

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
        )
    except (FileNotFoundError, PermissionError) as e:
        return CommandResult.error_result(stderr=str(e), exit_code=127, duration_ms=elapsed())

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return CommandResult.error_result(
            stderr=f"Command timed out after {timeout}s",
            exit_code=-1,
            duration_ms=elapsed(),
        )
    except asyncio.CancelledError:
        # A cancelled caller must not leave the child running.
        process.kill()
        await process.wait()
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    logger.debug("%s exited %s", argv[0], process.returncode)

    if process.returncode == 0:
        return CommandResult.success_result(stdout=out, stderr=err, duration_ms=elapsed())
    return CommandResult.error_result(
        stderr=err,
        exit_code=process.returncode or 1,
        stdout=out,
        duration_ms=elapsed(),
    )
