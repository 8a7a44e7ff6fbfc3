"""Install Claude plugins through the ``claude`` CLI."""

from __future__ import annotations

from pathlib import Path

from skillsync.errors import IoError
from skillsync.logging import get_logger
from skillsync.process import CommandResult, run_command

logger = get_logger("marketplace.claude")


class ClaudeCli:
    """Runs ``claude plugin ...`` subcommands.

    Each marketplace is added once and each ``plugin@marketplace`` pair is
    installed once per instance.
    """

    def __init__(self, binary: str = "claude") -> None:
        self.binary = binary
        self._marketplaces: set[str] = set()
        self._plugins: set[str] = set()

    async def run(self, args: list[str]) -> CommandResult:
        return await run_command([self.binary, "plugin", *args])

    async def add_marketplace(self, marketplace: str, context_path: Path | None = None) -> None:
        if marketplace in self._marketplaces:
            return
        await self._run_checked(["marketplace", "add", marketplace], context_path)
        self._marketplaces.add(marketplace)

    async def install_plugin(
        self, plugin: str, marketplace: str, context_path: Path | None = None
    ) -> None:
        key = f"{plugin}@{marketplace}"
        if key in self._plugins:
            return
        await self._run_checked(["install", key], context_path)
        self._plugins.add(key)

    async def _run_checked(self, args: list[str], context_path: Path | None) -> None:
        result = await self.run(args)
        if result.success:
            return
        # Re-adding a marketplace or plugin reports "already installed".
        if "already installed" in f"{result.stdout}\n{result.stderr}":
            logger.debug("claude plugin %s: already installed", " ".join(args))
            return
        raise IoError(
            f"Failed to run: {self.binary} plugin {' '.join(args)}: {result.message}",
            operation="claude plugin",
            path=context_path,
        )
