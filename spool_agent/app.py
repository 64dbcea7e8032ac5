"""Main application entry-point for spool-agent."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .adapters import CentralClient, CommandRunner, CupsGateway, FileWatcher, NetworkProber
from .config import AgentConfig, load_config
from .core.guards import PathGuard
from .core.protocols import JobStore, NetworkProbe, PrinterStore, SpoolerGateway
from .dispatch import PrintDispatcher
from .errors import AgentError, SweepAlreadyRunning
from .facade import PrintServerFacade
from .health import HealthReporter, HealthServer
from .ingestion import IngestionService
from .logging import configure_logging
from .reconciler import PrinterReconciler
from .store import SqlJobStore, SqlPrinterStore, create_store_engine
from .sync import JobAcknowledger

LOGGER = logging.getLogger(__name__)


class AgentState(str, Enum):
    COLD_START = "cold_start"
    STARTING = "starting"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPING = "stopping"


@dataclass
class AgentServices:
    """Long-lived service instances shared by the watcher, the loops and callers."""

    engine: Optional[AsyncEngine]
    jobs: JobStore
    printers: PrinterStore
    spooler: SpoolerGateway
    probe: NetworkProbe
    ingestion: IngestionService
    reconciler: PrinterReconciler
    dispatcher: PrintDispatcher
    facade: PrintServerFacade
    central: Optional[CentralClient] = None
    acknowledger: Optional[JobAcknowledger] = None

    async def close(self) -> None:
        if self.central is not None:
            await self.central.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    config: AgentConfig,
    *,
    engine: Optional[AsyncEngine] = None,
    spooler: Optional[SpoolerGateway] = None,
    probe: Optional[NetworkProbe] = None,
    central: Optional[CentralClient] = None,
) -> AgentServices:
    """Construct every service once from ``config``.

    Collaborators can be injected for testing; anything omitted is built
    from the configuration.
    """
    engine = engine or create_store_engine(config.database)
    jobs = SqlJobStore(engine)
    printers = SqlPrinterStore(engine)

    runner = CommandRunner(timeout=config.spooler.command_timeout_seconds)
    if spooler is None:
        spooler = CupsGateway(runner, default_driver=config.spooler.default_driver)
    if probe is None:
        probe = NetworkProber(
            runner,
            ping_timeout=config.network.ping_timeout_seconds,
            port_timeout=config.network.port_timeout_seconds,
            snmp_community=config.network.snmp_community,
            snmp_timeout=config.network.snmp_timeout_seconds,
        )

    watcher_config = config.watcher
    ingestion = IngestionService(
        jobs,
        watcher_config.root,
        debounce_seconds=watcher_config.debounce_seconds,
        max_age_days=watcher_config.max_age_days,
        guard=PathGuard(watcher_config.cooldown_seconds),
    )
    reconciler = PrinterReconciler(printers, spooler, probe)
    dispatcher = PrintDispatcher(jobs, printers, spooler)
    facade = PrintServerFacade(jobs, printers, spooler, reconciler, dispatcher)

    if central is None and config.central.enabled:
        central = CentralClient(
            config.central.base_url or "",
            config.central.api_token,
            timeout=config.central.request_timeout_seconds,
        )
    acknowledger = JobAcknowledger(jobs, central) if central is not None else None

    return AgentServices(
        engine=engine,
        jobs=jobs,
        printers=printers,
        spooler=spooler,
        probe=probe,
        ingestion=ingestion,
        reconciler=reconciler,
        dispatcher=dispatcher,
        facade=facade,
        central=central,
        acknowledger=acknowledger,
    )


class SpoolAgentApp:
    """Coordinates startup, the periodic sweeps and shutdown.

    One ``AgentServices`` container is built at start and shared by the
    filesystem watcher and the periodic loops:

    - tree reconciliation (heals events the watcher missed)
    - stale-file purge
    - desired printer sync and job acknowledgement, when a central service
      is configured

    A running sweep is never interrupted; shutdown waits for it to finish.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        *,
        services: Optional[AgentServices] = None,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._config = config or load_config()
        self._services = services
        self._health = health or HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._watcher: Optional[FileWatcher] = None
        self._loops: List[asyncio.Task[None]] = []
        self._stop_event: Optional[asyncio.Event] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = AgentState.COLD_START
        self._state_detail: Optional[str] = None

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def services(self) -> Optional[AgentServices]:
        return self._services

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        """Start everything and idle until ``request_stop`` or cancellation."""
        self._shutdown_event = asyncio.Event()
        LOGGER.info("spool-agent starting with config: %s", self._config.path)
        started = await self.start_services()
        if not started:
            LOGGER.warning("Service startup incomplete; running in degraded mode")

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("spool-agent received shutdown signal")
            raise
        finally:
            await self.stop_services()

    def request_stop(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[AgentConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            verbose_libraries=instance._config.logging.verbose_libraries,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("spool-agent received shutdown signal")

    async def _transition_state(
        self, state: AgentState, *, detail: Optional[str] = None
    ) -> None:
        if state == self._state and detail == self._state_detail:
            return

        previous = self._state
        self._state = state
        self._state_detail = detail

        message_detail = detail or state.value
        LOGGER.info(
            "Agent state transition %s -> %s (%s)",
            previous.value,
            state.value,
            message_detail,
        )
        await self._health.set_agent_state(
            state.value,
            healthy=state == AgentState.ACTIVE,
            detail=message_detail,
        )

    async def start_services(self) -> bool:
        await self._transition_state(AgentState.STARTING, detail="initialising")
        self._stop_event = asyncio.Event()

        if self._services is None:
            self._services = build_services(self._config)
        services = self._services

        healthy = True
        try:
            await services.jobs.list_unprinted()
        except AgentError as exc:
            LOGGER.error("Store unavailable at startup: %s", exc.message)
            await self._health.update("store", False, exc.message)
            healthy = False
        else:
            await self._health.update("store", True, None)

        if services.central is not None:
            await services.central.start()

        self._watcher = FileWatcher(
            services.ingestion.root,
            services.ingestion.on_file_appeared,
            services.ingestion.on_file_removed,
        )
        try:
            self._watcher.start()
        except OSError as exc:
            LOGGER.error("Failed to watch %s: %s", services.ingestion.root, exc)
            await self._health.update("watcher", False, str(exc))
            self._watcher = None
            healthy = False
        else:
            await self._health.update("watcher", True, str(services.ingestion.root))

        await self._start_health_server()
        try:
            await self._tree_pass()
        except (AgentError, OSError) as exc:
            LOGGER.warning("Initial tree reconciliation failed: %s", exc)
            await self._health.update("tree-reconcile", False, str(exc))
        self._start_loops()

        if healthy:
            await self._transition_state(AgentState.ACTIVE, detail="runtime ready")
        else:
            await self._transition_state(
                AgentState.DEGRADED, detail="runtime initialisation incomplete"
            )
        return healthy

    def _start_loops(self) -> None:
        watcher_config = self._config.watcher
        central_config = self._config.central
        services = self._services
        assert services is not None

        schedule: List[tuple[str, float, Callable[[], Awaitable[None]]]] = [
            ("tree-reconcile", watcher_config.scan_interval_seconds, self._tree_pass),
            ("stale-purge", watcher_config.purge_interval_seconds, self._purge_pass),
        ]
        if services.central is not None:
            schedule.append(
                (
                    "printer-sync",
                    central_config.printer_sync_interval_seconds,
                    self._printer_pass,
                )
            )
        if services.acknowledger is not None:
            schedule.append(
                ("job-sync", central_config.job_sync_interval_seconds, self._job_sync_pass)
            )

        for name, interval, action in schedule:
            task = asyncio.create_task(self._periodic(name, interval, action))
            self._loops.append(task)

    async def _periodic(
        self, name: str, interval: float, action: Callable[[], Awaitable[None]]
    ) -> None:
        stop_event = self._stop_event
        assert stop_event is not None
        LOGGER.debug("%s loop scheduled every %.1fs", name, interval)

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await action()
            except SweepAlreadyRunning:
                LOGGER.debug("%s skipped: previous run still in progress", name)
            except AgentError as exc:
                LOGGER.warning("%s failed at %s: %s", name, exc.step, exc.message)
                await self._health.update(name, False, exc.message)
            except Exception as exc:
                LOGGER.error("%s failed: %s", name, exc, exc_info=True)
                await self._health.update(name, False, str(exc))

    async def _record(self, name: str, summary: Dict[str, Any]) -> None:
        await self._health.record_sweep(name, summary)
        await self._health.update(name, True, None)

    async def _tree_pass(self) -> None:
        assert self._services is not None
        try:
            report = await self._services.ingestion.reconcile_tree()
        except SweepAlreadyRunning:
            return
        await self._record("tree-reconcile", report.as_dict())

    async def _purge_pass(self) -> None:
        assert self._services is not None
        report = await self._services.ingestion.purge_stale()
        await self._record("stale-purge", report.as_dict())

    async def _printer_pass(self) -> None:
        services = self._services
        assert services is not None and services.central is not None
        desired = await services.central.fetch_printers()
        result = await services.reconciler.sync(desired)
        await self._record("printer-sync", result.summary())

    async def _job_sync_pass(self) -> None:
        services = self._services
        assert services is not None and services.acknowledger is not None
        acknowledged = await services.acknowledger.run_once()
        await self._record("job-sync", {"acknowledged": acknowledged})

    async def _start_health_server(self) -> None:
        health_config = self._config.health
        if not health_config.enabled or health_config.port <= 0:
            return

        server = HealthServer(self._health, health_config.host, health_config.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _stop_health_server(self) -> None:
        if self._health_server is None:
            return
        await self._health_server.stop()
        self._health_server = None
        await self._health.update("health-endpoint", False, "shutdown")

    async def stop_services(self) -> None:
        if self._state == AgentState.STOPPING:
            return
        await self._transition_state(AgentState.STOPPING, detail="shutdown requested")

        if self._stop_event is not None:
            self._stop_event.set()
        if self._loops:
            # Loops finish their current sweep before exiting.
            await asyncio.gather(*self._loops, return_exceptions=True)
            self._loops = []

        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
            await self._health.update("watcher", False, "shutdown")

        services = self._services
        if services is not None:
            await services.ingestion.wait_idle(flush=True)
            await services.dispatcher.wait_cleanup()
            await services.close()

        await self._stop_health_server()

        if self._shutdown_event is not None:
            self._shutdown_event.set()
