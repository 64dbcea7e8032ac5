"""Subprocess helper for the spooler and network command-line tools."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import ExternalToolError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandResult:
    args: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        """Best human-readable reason for the command's outcome."""
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or f"{self.args[0]} exited with status {self.returncode}"
        )


class CommandRunner:
    """Run external commands without a shell, bounded by a timeout.

    The operating system's print subsystem is an unreliable actor: a hung
    ``lpadmin`` must not stall the event loop's sweeps, so every invocation
    is killed once its timeout elapses.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    async def run(
        self,
        *args: str,
        timeout: Optional[float] = None,
        check: bool = False,
    ) -> CommandResult:
        """Run ``args`` and capture its output.

        Args:
            args: Program and arguments, passed as an argument vector.
            timeout: Seconds before the process is killed (defaults to the
                runner's timeout).
            check: Raise when the command exits with a non-zero status.

        Raises:
            ExternalToolError: If the program is missing, times out, or
                (with ``check``) fails.
        """
        limit = self.timeout if timeout is None else timeout
        LOGGER.debug("Running %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ExternalToolError(
                f"{args[0]} unavailable: {exc}", command=args
            ) from exc

        try:
            async with asyncio.timeout(limit):
                stdout, stderr = await process.communicate()
        except asyncio.TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise ExternalToolError(
                f"{args[0]} timed out after {limit:g}s", command=args
            ) from exc

        result = CommandResult(
            args=tuple(args),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and not result.ok:
            raise ExternalToolError(
                result.describe(), command=args, returncode=result.returncode
            )
        return result
