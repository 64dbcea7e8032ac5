"""Health reporting for spool-agent.

The reporter keeps three kinds of facts: the agent's lifecycle state, the
health of each long-lived component (store, watcher, health endpoint, ...)
and the outcome of the most recent run of every periodic sweep. The HTTP
endpoint answers 503 whenever the agent is not active or a component is
failing, so a process supervisor can restart a wedged agent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=_now)

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": _stamp(self.updated_at),
        }


@dataclass(slots=True)
class SweepRecord:
    """Last completed run of one periodic sweep."""

    name: str
    summary: Dict[str, Any]
    finished_at: datetime = field(default_factory=_now)
    runs: int = 1

    def as_dict(self) -> Dict[str, object]:
        return {
            "summary": self.summary,
            "finishedAt": _stamp(self.finished_at),
            "runs": self.runs,
        }


class HealthReporter:
    """Collects agent, component and sweep health behind one lock."""

    def __init__(self) -> None:
        self._components: Dict[str, ComponentStatus] = {}
        self._sweeps: Dict[str, SweepRecord] = {}
        self._agent: Optional[ComponentStatus] = None
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            previous = self._components.get(name)
            self._components[name] = ComponentStatus(name, healthy, detail)
        if previous is not None and previous.healthy and not healthy:
            LOGGER.warning("Component %s became unhealthy: %s", name, detail)

    async def set_agent_state(
        self, state: str, *, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._agent = ComponentStatus(state, healthy, detail or state)

    async def record_sweep(self, name: str, summary: Dict[str, Any]) -> None:
        async with self._lock:
            previous = self._sweeps.get(name)
            runs = previous.runs + 1 if previous is not None else 1
            self._sweeps[name] = SweepRecord(name, dict(summary), runs=runs)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            agent = self._agent
            components: List[ComponentStatus] = sorted(
                self._components.values(), key=lambda item: item.name
            )
            sweeps = {name: record.as_dict() for name, record in self._sweeps.items()}

        healthy = all(item.healthy for item in components)
        if agent is not None and not agent.healthy:
            healthy = False

        payload: Dict[str, object] = {
            "status": "ok" if healthy else "degraded",
            "components": [item.as_dict() for item in components],
        }
        if agent is not None:
            payload["agentState"] = {
                "state": agent.name,
                "healthy": agent.healthy,
                "detail": agent.detail,
                "updatedAt": _stamp(agent.updated_at),
            }
        if sweeps:
            payload["sweeps"] = sweeps
        return payload


class HealthServer:
    """aiohttp server exposing ``/healthz`` and ``/healthz/sweeps``."""

    def __init__(self, reporter: HealthReporter, host: str, port: int) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/healthz/sweeps", self._handle_sweeps)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)

    async def _handle_sweeps(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        return web.json_response(snapshot.get("sweeps", {}))
