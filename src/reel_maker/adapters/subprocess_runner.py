"""Asyncio subprocess adapter for external command-line tools."""

import asyncio
from dataclasses import dataclass

from reel_maker.services.encoding import CommandResult, CommandRunner


@dataclass
class AsyncioCommandRunner(CommandRunner):
    """Run commands with ``asyncio.create_subprocess_exec`` (no shell)."""

    async def run(self, args: list[str]) -> CommandResult:
        """Run the command and collect its exit status and stderr."""
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        return CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stderr=stderr.decode("utf-8", errors="replace"),
        )
