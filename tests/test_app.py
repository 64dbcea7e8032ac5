import asyncio
import os
import time

import pytest

from spool_agent.app import AgentState, SpoolAgentApp, build_services
from spool_agent.config import load_config


@pytest.fixture
def config(tmp_path):
    config = load_config(tmp_path / "absent.cfg")
    config.watcher.root = tmp_path / "drop"
    config.watcher.debounce_seconds = 0.05
    config.watcher.cooldown_seconds = 0
    config.watcher.scan_interval_seconds = 3600
    config.logging.path = None
    return config


@pytest.fixture
def services(config, engine, spooler, probe):
    return build_services(config, engine=engine, spooler=spooler, probe=probe)


def _age(path, seconds=60):
    past = time.time() - seconds
    os.utime(path, (past, past))


class TestSpoolAgentApp:
    @pytest.mark.asyncio
    async def test_startup_adopts_backlog_and_shuts_down(self, config, services, make_pdf):
        backlog = make_pdf(config.watcher.root / "backlog-job_7.pdf", pages=2)
        _age(backlog)
        app = SpoolAgentApp(config, services=services)

        started = await app.start_services()
        try:
            assert started is True
            assert app.state is AgentState.ACTIVE
            jobs = await services.jobs.list_unprinted()
            assert [job.file_name for job in jobs] == ["backlog.pdf"]

            snapshot = await app.health.snapshot()
            assert snapshot["status"] == "ok"
            assert snapshot["sweeps"]["tree-reconcile"]["summary"]["outcomes"] == {"adopted": 1}
        finally:
            await app.stop_services()

        assert app.state is AgentState.STOPPING

    @pytest.mark.asyncio
    async def test_watcher_adopts_new_documents(self, config, services, make_pdf):
        app = SpoolAgentApp(config, services=services)
        await app.start_services()
        try:
            make_pdf(config.watcher.root / "incoming.pdf", pages=1)

            jobs = []
            for _ in range(100):
                await asyncio.sleep(0.05)
                jobs = await services.jobs.list_unprinted()
                if jobs:
                    break
        finally:
            await app.stop_services()

        assert [job.file_name for job in jobs] == ["incoming.pdf"]

    @pytest.mark.asyncio
    async def test_no_central_means_no_sync_loops(self, config, services):
        assert services.central is None
        assert services.acknowledger is None

        app = SpoolAgentApp(config, services=services)
        await app.start_services()
        try:
            assert len(app._loops) == 2
        finally:
            await app.stop_services()

    @pytest.mark.asyncio
    async def test_run_stops_on_request(self, config, services):
        app = SpoolAgentApp(config, services=services)

        task = asyncio.create_task(app.run())
        for _ in range(50):
            await asyncio.sleep(0.02)
            if app.state is AgentState.ACTIVE:
                break
        app.request_stop()
        await asyncio.wait_for(task, timeout=10)

        assert app.state is AgentState.STOPPING
