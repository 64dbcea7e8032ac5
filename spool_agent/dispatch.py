"""Hands adopted jobs to a spooler queue."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Set

from .adapters.documents import remove_file
from .core.protocols import JobStore, PrinterStore, SpoolerGateway
from .core.saga import Saga
from .errors import NotFoundError, StaleJobError, ValidationError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DispatchReceipt:
    job_id: str
    printer_id: str
    queue: str
    request_id: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "printerId": self.printer_id,
            "queue": self.queue,
            "requestId": self.request_id,
        }


class PrintDispatcher:
    """Validates a job/printer pair and submits the job's file.

    The job is marked printed before submission so a concurrent listing never
    offers it twice; a rejected submission clears the mark again. The source
    file is removed in the background once the spooler accepted it.
    """

    def __init__(
        self,
        jobs: JobStore,
        printers: PrinterStore,
        spooler: SpoolerGateway,
    ) -> None:
        self._jobs = jobs
        self._printers = printers
        self._spooler = spooler
        self._cleanup: Set[asyncio.Task[Any]] = set()

    async def dispatch(self, job_id: str, printer_id: str) -> DispatchReceipt:
        """Print ``job_id`` on ``printer_id``.

        Raises:
            ValidationError: If an identifier is missing or the job was
                already printed.
            NotFoundError: If the job or printer does not exist.
            StaleJobError: If the job's file vanished (the job is
                soft-deleted and nothing is submitted).
            ExternalToolError: If the spooler rejected the submission.
        """
        if not job_id or not printer_id:
            raise ValidationError("Job and printer identifiers are required", step="validate")

        job = await self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", step="lookup-job")
        if job.printed:
            raise ValidationError(f"Job {job_id} was already printed", step="lookup-job")

        printer = await self._printers.get(printer_id)
        if printer is None:
            raise NotFoundError(f"Printer {printer_id} not found", step="lookup-printer")

        source = Path(job.path)
        if not await asyncio.to_thread(source.is_file):
            current = await self._jobs.get(job_id)
            if current is not None and current.printed:
                # A concurrent dispatch printed it and removed the source.
                raise ValidationError(f"Job {job_id} was already printed", step="mark-printed")
            await self._jobs.soft_delete(job_id)
            LOGGER.warning("Job %s is stale: %s no longer exists", job_id, source)
            raise StaleJobError(f"File for job {job_id} not found", step="stale-check")

        LOGGER.info("Printing %s (%s) on %s", job_id, job.file_name, printer.name)
        saga = Saga(f"dispatch {job_id}")
        saga.step(
            "mark-printed",
            lambda: self._jobs.mark_printed(job_id, printer_id),
            lambda: self._jobs.clear_printed(job_id),
        )
        saga.step("submit", lambda: self._spooler.submit(printer.name, source))
        _, request_id = await saga.run()

        task = asyncio.create_task(self._remove_source(source))
        self._cleanup.add(task)
        task.add_done_callback(self._cleanup.discard)

        return DispatchReceipt(
            job_id=job_id,
            printer_id=printer_id,
            queue=printer.name,
            request_id=request_id,
        )

    async def _remove_source(self, source: Path) -> None:
        try:
            await remove_file(source)
        except OSError as exc:
            LOGGER.error("Could not remove printed file %s: %s", source, exc)

    async def wait_cleanup(self) -> None:
        """Await the outstanding source-file removals."""
        if self._cleanup:
            await asyncio.gather(*list(self._cleanup), return_exceptions=True)
