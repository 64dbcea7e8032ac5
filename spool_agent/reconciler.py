"""Printer state reconciler.

Brings the spooler and the printer store into agreement with a desired
printer list supplied by the central service. Every mutation runs as a saga
with the spooler ahead of the store, so a failure at any step leaves both
sides as they were before the entry was processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Collection, Iterable, List, Mapping, Optional

from . import constants
from .core.guards import SweepFlag
from .core.models import (
    ConnectivityReport,
    Printer,
    PrinterProtocol,
    PrinterSpec,
    SyncItem,
    SyncOutcome,
    SyncResult,
    utcnow,
)
from .core.protocols import NetworkProbe, PrinterStore, SpoolerGateway
from .core.saga import Saga
from .core.utils import build_printer_uri, coerce_port, normalize_mac
from .errors import AgentError, ExternalToolError, ValidationError

LOGGER = logging.getLogger(__name__)

DEFAULT_STATUS = "functional"
DEFAULT_PORT = 9100

TRACKED_FIELDS = (
    "name",
    "status",
    "protocol",
    "mac_address",
    "driver",
    "uri",
    "description",
    "location",
    "port",
)


@dataclass(slots=True, frozen=True)
class DesiredPrinter:
    """A validated desired-state entry with defaults applied."""

    id: str
    name: str
    ip_address: str
    status: str
    protocol: str
    driver: str
    uri: str
    description: str
    location: str
    port: Optional[int]
    mac_address: Optional[str]

    @classmethod
    def from_entry(cls, entry: Mapping[str, Any]) -> "DesiredPrinter":
        """Validate ``entry`` and derive its URI.

        Raises:
            ValidationError: If ``id``, ``name`` or ``ip_address`` is missing,
                or the protocol or port is invalid.
        """
        printer_id = _text(entry.get("id"))
        name = _text(entry.get("name"))
        if not printer_id or not name:
            raise ValidationError("ID and name are required", step="validate")
        ip_address = _text(entry.get("ip_address"))
        if not ip_address:
            raise ValidationError("IP address is required", step="validate")

        try:
            protocol = PrinterProtocol.parse(_text(entry.get("protocol"))).value
        except ValueError as exc:
            raise ValidationError(
                f"Unsupported protocol: {entry.get('protocol')!r}", step="validate"
            ) from exc

        port = coerce_port(entry.get("port", DEFAULT_PORT))
        uri = _text(entry.get("uri")) or build_printer_uri(protocol, ip_address, port)
        return cls(
            id=printer_id,
            name=name,
            ip_address=ip_address,
            status=_text(entry.get("status")) or DEFAULT_STATUS,
            protocol=protocol,
            driver=_text(entry.get("driver")) or constants.DEFAULT_DRIVER,
            uri=uri,
            description=_text(entry.get("description")) or "",
            location=_text(entry.get("location")) or "",
            port=port,
            mac_address=_text(entry.get("mac_address")),
        )

    def to_printer(self) -> Printer:
        now = utcnow()
        return Printer(
            id=self.id,
            name=self.name,
            status=self.status,
            protocol=self.protocol,
            driver=self.driver,
            uri=self.uri,
            ip_address=self.ip_address,
            port=self.port,
            description=self.description,
            location=self.location,
            mac_address=self.mac_address,
            created_at=now,
            updated_at=now,
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def detect_changes(desired: DesiredPrinter, current: Printer) -> List[str]:
    """List tracked fields whose desired value differs from the stored one.

    A desired value of ``None`` means "keep the stored value". MAC addresses
    are compared in normalised form. ``ip_address`` is always compared.
    """
    changes = []
    for name in TRACKED_FIELDS:
        wanted = getattr(desired, name)
        if wanted is None:
            continue
        existing = getattr(current, name)
        if name == "mac_address":
            if normalize_mac(wanted) != normalize_mac(existing):
                changes.append(name)
        elif wanted != existing:
            changes.append(name)
    if desired.ip_address != current.ip_address:
        changes.append("ip_address")
    return changes


class PrinterReconciler:
    """Converges local printers toward a desired list.

    Entries are processed sequentially; a failing entry is recorded in the
    result and never prevents the following entries from being processed.
    """

    def __init__(
        self,
        printers: PrinterStore,
        spooler: SpoolerGateway,
        probe: NetworkProbe,
    ) -> None:
        self._printers = printers
        self._spooler = spooler
        self._probe = probe
        self._flag = SweepFlag("printer-sync")

    @property
    def running(self) -> bool:
        return self._flag.running

    async def sync(self, desired: Iterable[Mapping[str, Any]]) -> SyncResult:
        """Reconcile every entry of ``desired``.

        Raises:
            SweepAlreadyRunning: If another sync is in progress.
        """
        async with self._flag.hold():
            result = SyncResult()
            queues = await self._spooler.list_queues()
            for entry in desired:
                try:
                    item = await self.reconcile_one(entry, queues=queues)
                except Exception as exc:
                    LOGGER.exception("Unexpected failure reconciling %r", entry)
                    item = SyncItem(
                        id=str(entry.get("id") or "unknown"),
                        name=entry.get("name"),
                        outcome=SyncOutcome.ERROR,
                        message=str(exc),
                        error=AgentError(str(exc), step="reconcile"),
                    )
                result.add(item)

        LOGGER.info("Printer sync finished: %s", result.summary())
        return result

    async def reconcile_one(
        self,
        entry: Mapping[str, Any],
        *,
        queues: Optional[Collection[str]] = None,
    ) -> SyncItem:
        """Reconcile a single desired-state entry. Failures become error items.

        ``queues`` lists the spooler's current queues; when given, an
        unchanged printer whose queue has vanished is provisioned again.
        """
        try:
            desired = DesiredPrinter.from_entry(entry)
        except ValidationError as exc:
            return SyncItem(
                id=str(entry.get("id") or "unknown"),
                name=entry.get("name"),
                outcome=SyncOutcome.ERROR,
                message=exc.message,
                error=exc,
            )

        connectivity = await self._connectivity(desired)
        try:
            current = await self._printers.get(desired.id)
            if current is None:
                return await self._create(desired, connectivity)
            return await self._update(desired, current, connectivity, queues)
        except AgentError as exc:
            LOGGER.error(
                "Printer %s (%s) failed at %s: %s",
                desired.id,
                desired.name,
                exc.step,
                exc.message,
            )
            return SyncItem(
                id=desired.id,
                name=desired.name,
                outcome=SyncOutcome.ERROR,
                ip_address=desired.ip_address,
                message=exc.message,
                connectivity=connectivity,
                error=exc,
            )

    async def _connectivity(self, desired: DesiredPrinter) -> ConnectivityReport:
        try:
            return await self._probe.connectivity(
                desired.ip_address, desired.port, desired.protocol
            )
        except AgentError as exc:
            LOGGER.warning("Connectivity probe for %s failed: %s", desired.ip_address, exc)
            return ConnectivityReport(details={"error": exc.message})

    async def _create(
        self, desired: DesiredPrinter, connectivity: ConnectivityReport
    ) -> SyncItem:
        printer = desired.to_printer()
        spec = printer.to_spec()
        LOGGER.info("Creating printer %s (%s)", printer.id, printer.name)

        saga = Saga(f"create {printer.id}")
        saga.step(
            "provision",
            lambda: self._provision(spec),
            lambda: self._remove(printer.name),
            on_failure=lambda: self._remove(printer.name),
        )
        saga.step("store-insert", lambda: self._printers.insert(printer))
        await saga.run()

        return self._classify(
            desired,
            connectivity,
            SyncOutcome.CREATED,
            warning="Printer created but unreachable",
        )

    async def _update(
        self,
        desired: DesiredPrinter,
        current: Printer,
        connectivity: ConnectivityReport,
        queues: Optional[Collection[str]] = None,
    ) -> SyncItem:
        changes = detect_changes(desired, current)
        if not changes:
            if queues is not None and current.name not in queues:
                LOGGER.warning(
                    "Queue %s for printer %s is missing; provisioning it again",
                    current.name,
                    current.id,
                )
                spec = current.to_spec()
                await Saga(f"restore {current.id}").step(
                    "provision", lambda: self._provision(spec)
                ).run()
            return self._classify(
                desired,
                connectivity,
                SyncOutcome.UNCHANGED,
                warning="Printer unreachable",
            )

        LOGGER.info("Updating printer %s: %s", current.id, ", ".join(changes))
        merged = current.with_changes(
            **{name: getattr(desired, name) for name in changes},
            updated_at=utcnow(),
        )
        previous = current.to_spec()
        spec = merged.to_spec()
        renamed = "name" in changes

        saga = Saga(f"update {current.id}")
        if renamed:
            saga.step(
                "remove-old",
                lambda: self._remove(current.name),
                lambda: self._provision(previous),
            )
            saga.step(
                "provision",
                lambda: self._provision(spec),
                lambda: self._remove(merged.name),
                on_failure=lambda: self._remove(merged.name),
            )
        else:
            saga.step(
                "provision",
                lambda: self._provision(spec),
                lambda: self._provision(previous),
                on_failure=lambda: self._provision(previous),
            )
        saga.step("store-update", lambda: self._printers.update(merged))
        await saga.run()

        item = self._classify(
            desired,
            connectivity,
            SyncOutcome.UPDATED,
            warning="Printer updated but unreachable",
        )
        item.changes = changes
        return item

    def _classify(
        self,
        desired: DesiredPrinter,
        connectivity: ConnectivityReport,
        healthy: SyncOutcome,
        *,
        warning: str,
    ) -> SyncItem:
        reachable = connectivity.overall
        return SyncItem(
            id=desired.id,
            name=desired.name,
            outcome=healthy if reachable else SyncOutcome.WARNING,
            ip_address=desired.ip_address,
            message=None if reachable else warning,
            connectivity=connectivity,
        )

    async def _provision(self, spec: PrinterSpec) -> None:
        result = await self._spooler.provision(spec)
        if not result.success:
            raise ExternalToolError(result.message)

    async def _remove(self, name: str) -> None:
        result = await self._spooler.remove(name)
        if not result.success:
            raise ExternalToolError(result.message)
