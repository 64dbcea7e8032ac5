from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import pytest
import pytest_asyncio
from pypdf import PdfWriter

from spool_agent.config import DatabaseConfig
from spool_agent.core.models import (
    ConnectivityReport,
    DeviceState,
    DeviceStatus,
    DiscoveredDevice,
    PingResult,
    PrinterSpec,
    SpoolerResult,
)
from spool_agent.errors import ExternalToolError
from spool_agent.store import SqlJobStore, SqlPrinterStore, create_store_engine, ensure_schema


class FakeSpooler:
    """In-memory spooler recording every queue it holds."""

    def __init__(self) -> None:
        self.queues: Dict[str, PrinterSpec] = {}
        self.calls: List[tuple] = []
        self.fail_provision: Set[str] = set()
        self.fail_submit = False
        self.submitted: List[tuple] = []

    async def provision(self, spec: PrinterSpec) -> SpoolerResult:
        """Drop then re-add the queue, like ``lpadmin -x`` followed by ``-p``.

        ``fail_provision`` holds queue names or IP addresses whose re-add fails.
        """
        self.calls.append(("provision", spec.name))
        self.queues.pop(spec.name, None)
        if spec.name in self.fail_provision or spec.ip_address in self.fail_provision:
            return SpoolerResult(success=False, message=f"lpadmin failed for {spec.name}")
        self.queues[spec.name] = spec
        return SpoolerResult(success=True, message="Printer configured in CUPS")

    async def remove(self, name: str) -> SpoolerResult:
        self.calls.append(("remove", name))
        self.queues.pop(name, None)
        return SpoolerResult(success=True, message="Printer removed from CUPS")

    async def list_drivers(self) -> List[str]:
        return ["raw", "drv:///sample.drv/generic.ppd"]

    async def discover(self) -> List[DiscoveredDevice]:
        return [DiscoveredDevice(type="network", uri="socket://10.0.0.9:9100")]

    async def list_queues(self) -> Optional[List[str]]:
        return sorted(self.queues)

    async def submit(self, queue: str, path) -> str:
        self.calls.append(("submit", queue))
        if self.fail_submit:
            raise ExternalToolError("lp: The printer or class does not exist.", step="submit")
        self.submitted.append((queue, str(path)))
        return f"{queue}-{len(self.submitted)}"


class FakeProbe:
    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.probed: List[tuple] = []

    async def ping(self, ip: str) -> PingResult:
        return PingResult(success=self.reachable, output="")

    async def port_open(self, ip: str, port: int, timeout: Optional[float] = None) -> bool:
        return self.reachable

    async def device_status(self, ip: str) -> DeviceStatus:
        if self.reachable:
            return DeviceStatus(online=True, status=DeviceState.ONLINE)
        return DeviceStatus(online=False, status=DeviceState.OFFLINE, error="timeout")

    async def connectivity(self, ip: str, port: Optional[int], protocol: Optional[str] = None) -> ConnectivityReport:
        self.probed.append((ip, port))
        return ConnectivityReport(
            ping=self.reachable,
            port_open=self.reachable,
            status=await self.device_status(ip),
        )


@pytest_asyncio.fixture
async def engine(tmp_path_factory):
    # A file keeps every pooled connection on the same database; it lives
    # outside tmp_path, which the ingestion tests use as their watch root.
    database = tmp_path_factory.mktemp("store") / "spool.sqlite"
    engine = create_store_engine(DatabaseConfig(url=f"sqlite+aiosqlite:///{database}"))
    await ensure_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def job_store(engine) -> SqlJobStore:
    return SqlJobStore(engine)


@pytest.fixture
def printer_store(engine) -> SqlPrinterStore:
    return SqlPrinterStore(engine)


@pytest.fixture
def spooler() -> FakeSpooler:
    return FakeSpooler()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def make_pdf() -> Callable[..., Path]:
    """Write a PDF with blank pages and return its path."""

    def factory(path: Path, pages: int = 1) -> Path:
        writer = PdfWriter()
        for _ in range(pages):
            writer.add_blank_page(width=72, height=72)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as stream:
            writer.write(stream)
        return path

    return factory
