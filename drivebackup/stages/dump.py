# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
drivebackup Dump Stage - Datastore dump via the vendor utility.

The pipeline only talks to the Dumper protocol. MongoDumper is the
production implementation that spawns mongodump; tests substitute a
fake that writes a canned file.
"""

import asyncio
from pathlib import Path
from typing import List, Protocol

import structlog

from drivebackup.errors import explain_missing_dump_tool
from drivebackup.exceptions import DumpFailedError, ToolUnavailableError

logger = structlog.get_logger()


class Dumper(Protocol):
    """Produces a portable dump file of the live datastore."""

    async def probe(self) -> None:
        """Raise ToolUnavailableError if the dump cannot possibly run."""
        ...

    async def dump(self, database_uri: str, dest_path: Path) -> None:
        """Write the dump to dest_path."""
        ...


async def _run(command: List[str]) -> tuple[int, str, str]:
    """Run a command to completion, returning (returncode, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # Stage deadline hit: do not leave the utility running
        proc.kill()
        await proc.wait()
        raise
    return (
        proc.returncode,
        stdout.decode(errors="replace") if stdout else "",
        stderr.decode(errors="replace") if stderr else "",
    )


class MongoDumper:
    """Dumps a MongoDB database with ``mongodump --archive --gzip``."""

    def __init__(self, tool_path: str = "mongodump"):
        self.tool_path = tool_path

    async def probe(self) -> None:
        """
        Check that mongodump can be executed (``mongodump --version``).

        Raises:
            ToolUnavailableError: If the executable is missing or fails
        """
        try:
            returncode, stdout, stderr = await _run([self.tool_path, "--version"])
        except OSError as e:
            raise ToolUnavailableError(
                explain_missing_dump_tool(self.tool_path),
                details={"tool": self.tool_path, "error": str(e)},
            )

        if returncode != 0:
            raise ToolUnavailableError(
                explain_missing_dump_tool(self.tool_path),
                details={"tool": self.tool_path, "stderr": stderr.strip()[-500:]},
            )

        logger.debug("dump_tool_available", tool=self.tool_path, version=stdout.strip()[:80])

    async def dump(self, database_uri: str, dest_path: Path) -> None:
        """
        Run mongodump into a gzipped archive file.

        Raises:
            ToolUnavailableError: If the executable disappears between probe and dump
            DumpFailedError: If mongodump exits non-zero
        """
        command = [
            self.tool_path,
            "--uri",
            database_uri,
            f"--archive={dest_path}",
            "--gzip",
        ]

        try:
            returncode, _stdout, stderr = await _run(command)
        except OSError as e:
            raise ToolUnavailableError(
                explain_missing_dump_tool(self.tool_path),
                details={"tool": self.tool_path, "error": str(e)},
            )

        if returncode != 0:
            raise DumpFailedError(
                f"{self.tool_path} exited with status {returncode}",
                details={"stderr": stderr.strip()[-500:]},
            )

        logger.info(
            "dump_written",
            dest_path=str(dest_path),
            size=Path(dest_path).stat().st_size if Path(dest_path).exists() else 0,
        )
