"""Protocol definitions for the stores, the spooler and the network probe."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Union

from .models import (
    ConnectivityReport,
    DeviceStatus,
    DiscoveredDevice,
    Job,
    PingResult,
    Printer,
    PrinterSpec,
    SpoolerResult,
)

PathLike = Union[str, Path]


class JobStore(Protocol):
    """Persistence for adopted documents. Deletion is always soft."""

    async def get(self, job_id: str, *, include_deleted: bool = False) -> Optional[Job]:
        ...

    async def insert(self, job: Job) -> None:
        ...

    async def mark_printed(self, job_id: str, asset_id: str) -> None:
        """Flag a live, unprinted job as printed; raises when it is not one."""
        ...

    async def clear_printed(self, job_id: str) -> None:
        """Undo ``mark_printed`` when the spooler rejected the submission."""
        ...

    async def mark_synced(self, job_id: str) -> bool:
        ...

    async def soft_delete(self, job_id: str) -> bool:
        """Stamp ``deleted_at``; returns False when no live row matched."""
        ...

    async def list_unprinted(self) -> List[Job]:
        ...

    async def list_unsynced(self) -> List[Job]:
        """Printed jobs not yet acknowledged by the central authority."""
        ...


class PrinterStore(Protocol):
    async def get(self, printer_id: str) -> Optional[Printer]:
        ...

    async def list_all(self) -> List[Printer]:
        ...

    async def insert(self, printer: Printer) -> None:
        ...

    async def update(self, printer: Printer) -> None:
        ...


class SpoolerGateway(Protocol):
    """The only component allowed to talk to the operating system's spooler."""

    async def provision(self, spec: PrinterSpec) -> SpoolerResult:
        """Create or recreate the queue ``spec.name``. Never raises."""
        ...

    async def remove(self, name: str) -> SpoolerResult:
        """Delete a queue; an absent queue counts as success. Never raises."""
        ...

    async def list_drivers(self) -> List[str]:
        ...

    async def discover(self) -> List[DiscoveredDevice]:
        ...

    async def list_queues(self) -> Optional[List[str]]:
        """Configured queue names; None when the spooler cannot be queried."""
        ...

    async def submit(self, queue: str, path: PathLike) -> str:
        """Hand a file to a queue and return the spooler's request id.

        Raises:
            ExternalToolError: If the spooler rejects the submission.
        """
        ...


class NetworkProbe(Protocol):
    async def ping(self, ip: str) -> PingResult:
        ...

    async def port_open(self, ip: str, port: int, timeout: Optional[float] = None) -> bool:
        ...

    async def device_status(self, ip: str) -> DeviceStatus:
        ...

    async def connectivity(
        self, ip: str, port: Optional[int], protocol: Optional[str] = None
    ) -> ConnectivityReport:
        ...
