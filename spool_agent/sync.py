"""Acknowledges printed jobs with the central service."""

from __future__ import annotations

import logging

from .adapters.central import CentralClient
from .core.guards import SweepFlag
from .core.protocols import JobStore
from .errors import TransientIOError

LOGGER = logging.getLogger(__name__)


class JobAcknowledger:
    """Reports printed-but-unsynced jobs and marks them synced."""

    def __init__(self, jobs: JobStore, central: CentralClient) -> None:
        self._jobs = jobs
        self._central = central
        self._flag = SweepFlag("job-sync")

    async def run_once(self) -> int:
        """Report every pending job once; returns how many were acknowledged.

        Jobs the service rejects or that fail in transit stay unsynced and
        are retried on the next run.
        """
        acknowledged = 0
        async with self._flag.hold():
            for job in await self._jobs.list_unsynced():
                try:
                    if not await self._central.report_printed(job):
                        continue
                    if await self._jobs.mark_synced(job.id):
                        acknowledged += 1
                except TransientIOError as exc:
                    LOGGER.warning("Acknowledgement of job %s failed: %s", job.id, exc.message)

        if acknowledged:
            LOGGER.info("Acknowledged %d printed job(s)", acknowledged)
        return acknowledged
