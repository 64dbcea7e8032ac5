"""Operations exposed to the HTTP layer and other collaborators."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from .adapters.documents import remove_file
from .core.models import DiscoveredDevice, Job, Printer, SyncItem, SyncResult
from .core.protocols import JobStore, PrinterStore, SpoolerGateway
from .dispatch import DispatchReceipt, PrintDispatcher
from .errors import NotFoundError, TransientIOError, ValidationError
from .reconciler import PrinterReconciler

LOGGER = logging.getLogger(__name__)


class PrintServerFacade:
    """Thin entry points over the stores, the reconciler and dispatch.

    Point operations (printer create/update, dispatch, delete) raise the
    failing step's ``AgentError``; batch operations return summaries.
    """

    def __init__(
        self,
        jobs: JobStore,
        printers: PrinterStore,
        spooler: SpoolerGateway,
        reconciler: PrinterReconciler,
        dispatcher: PrintDispatcher,
    ) -> None:
        self._jobs = jobs
        self._printers = printers
        self._spooler = spooler
        self._reconciler = reconciler
        self._dispatcher = dispatcher

    async def list_unprinted_files(self) -> List[Job]:
        return await self._jobs.list_unprinted()

    async def list_unsynced_files(self) -> List[Job]:
        return await self._jobs.list_unsynced()

    async def mark_synced(self, job_ids: Iterable[str]) -> int:
        """Mark the given jobs as acknowledged; returns how many matched."""
        count = 0
        for job_id in job_ids:
            if await self._jobs.mark_synced(job_id):
                count += 1
        return count

    async def delete_file(self, job_id: str) -> None:
        """Remove the job's document and soft-delete its row.

        The file goes first: a document left on disk would be adopted again
        by the next reconciliation sweep.
        """
        if not job_id:
            raise ValidationError("Job identifier is required", step="validate")
        job = await self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", step="lookup-job")
        try:
            await remove_file(job.path)
        except OSError as exc:
            raise TransientIOError(
                f"Could not remove {job.path}: {exc}", step="remove-file"
            ) from exc
        if not await self._jobs.soft_delete(job_id):
            raise NotFoundError(f"Job {job_id} not found", step="soft-delete")
        LOGGER.info("Deleted job %s (%s)", job_id, job.file_name)

    async def list_printers(self) -> List[Printer]:
        return await self._printers.list_all()

    async def create_printer(self, entry: Mapping[str, Any]) -> SyncItem:
        printer_id = entry.get("id")
        if printer_id and await self._printers.get(str(printer_id)) is not None:
            raise ValidationError(f"Printer {printer_id} already exists", step="validate")
        return self._raise_on_error(await self._reconciler.reconcile_one(entry))

    async def update_printer(self, entry: Mapping[str, Any]) -> SyncItem:
        printer_id = entry.get("id")
        if not printer_id:
            raise ValidationError("Printer identifier is required", step="validate")
        current = await self._printers.get(str(printer_id))
        if current is None:
            raise NotFoundError(f"Printer {printer_id} not found", step="lookup-printer")

        # Fields the caller left out keep their stored values.
        merged: Dict[str, Any] = current.as_dict()
        merged.pop("uri", None)
        merged.update({key: value for key, value in entry.items() if value is not None})
        return self._raise_on_error(await self._reconciler.reconcile_one(merged))

    async def sync_printers(self, entries: Iterable[Mapping[str, Any]]) -> SyncResult:
        return await self._reconciler.sync(entries)

    async def dispatch(self, job_id: str, printer_id: str) -> DispatchReceipt:
        return await self._dispatcher.dispatch(job_id, printer_id)

    async def list_drivers(self) -> List[str]:
        return await self._spooler.list_drivers()

    async def discover_printers(self) -> List[DiscoveredDevice]:
        return await self._spooler.discover()

    @staticmethod
    def _raise_on_error(item: SyncItem) -> SyncItem:
        if item.error is not None:
            raise item.error
        return item
