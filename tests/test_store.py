import asyncio
from datetime import timedelta

import pytest

from spool_agent.core.models import Job, Printer, utcnow
from spool_agent.errors import NotFoundError, TransientIOError, ValidationError


def _job(job_id: str, *, minutes_ago: int = 0, **overrides) -> Job:
    values = dict(
        id=job_id,
        file_name=f"{job_id}.pdf",
        pages=1,
        path=f"/srv/print_server/{job_id}.pdf",
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    values.update(overrides)
    return Job(**values)


def _printer(printer_id: str, name: str, **overrides) -> Printer:
    values = dict(
        id=printer_id,
        name=name,
        status="functional",
        protocol="socket",
        driver="generic",
        uri="socket://10.0.0.5:9100",
        ip_address="10.0.0.5",
        port=9100,
    )
    values.update(overrides)
    return Printer(**values)


class TestJobStore:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, job_store):
        await job_store.insert(_job("a", pages=4))

        job = await job_store.get("a")

        assert job is not None
        assert job.pages == 4
        assert job.printed is False
        assert job.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_unprinted_listing_is_ordered_and_live_only(self, job_store):
        await job_store.insert(_job("newer", minutes_ago=1))
        await job_store.insert(_job("older", minutes_ago=5))
        await job_store.insert(_job("gone", minutes_ago=3))
        await job_store.soft_delete("gone")

        listed = [job.id for job in await job_store.list_unprinted()]

        assert listed == ["older", "newer"]
        assert await job_store.get("gone") is None
        assert (await job_store.get("gone", include_deleted=True)).deleted

    @pytest.mark.asyncio
    async def test_inserts_survive_concurrent_listing(self, job_store):
        async def insert_all():
            for index in range(20):
                await job_store.insert(_job(f"job-{index}"))

        async def poll():
            for _ in range(20):
                await job_store.list_unprinted()

        await asyncio.gather(insert_all(), poll(), poll())

        assert len(await job_store.list_unprinted()) == 20

    @pytest.mark.asyncio
    async def test_mark_printed_then_synced(self, job_store):
        await job_store.insert(_job("a"))

        await job_store.mark_printed("a", "printer-1")
        unsynced = await job_store.list_unsynced()
        assert [job.asset_id for job in unsynced] == ["printer-1"]

        assert await job_store.mark_synced("a") is True
        assert await job_store.list_unsynced() == []
        assert await job_store.list_unprinted() == []

    @pytest.mark.asyncio
    async def test_clear_printed_resets_asset(self, job_store):
        await job_store.insert(_job("a"))
        await job_store.mark_printed("a", "printer-1")

        await job_store.clear_printed("a")

        job = await job_store.get("a")
        assert job.printed is False
        assert job.asset_id is None

    @pytest.mark.asyncio
    async def test_mark_printed_on_deleted_job_raises(self, job_store):
        await job_store.insert(_job("a"))
        await job_store.soft_delete("a")

        with pytest.raises(NotFoundError) as excinfo:
            await job_store.mark_printed("a", "printer-1")

        assert excinfo.value.step == "mark-printed"

    @pytest.mark.asyncio
    async def test_mark_printed_twice_is_rejected(self, job_store):
        await job_store.insert(_job("a"))
        await job_store.mark_printed("a", "printer-1")

        with pytest.raises(ValidationError) as excinfo:
            await job_store.mark_printed("a", "printer-2")

        assert excinfo.value.step == "mark-printed"
        assert (await job_store.get("a")).asset_id == "printer-1"

    @pytest.mark.asyncio
    async def test_soft_delete_unknown_returns_false(self, job_store):
        assert await job_store.soft_delete("missing") is False
        assert await job_store.mark_synced("missing") is False

    @pytest.mark.asyncio
    async def test_duplicate_insert_is_transient_error(self, job_store):
        await job_store.insert(_job("a"))

        with pytest.raises(TransientIOError) as excinfo:
            await job_store.insert(_job("a"))

        assert excinfo.value.step == "job-insert"


class TestPrinterStore:
    @pytest.mark.asyncio
    async def test_insert_get_and_list(self, printer_store):
        await printer_store.insert(_printer("p2", "Zeta", mac_address="aa:bb:cc:dd:ee:ff"))
        await printer_store.insert(_printer("p1", "Alpha"))

        printer = await printer_store.get("p2")
        names = [item.name for item in await printer_store.list_all()]

        assert printer.mac_address == "aa:bb:cc:dd:ee:ff"
        assert names == ["Alpha", "Zeta"]
        assert await printer_store.get("absent") is None

    @pytest.mark.asyncio
    async def test_update_rewrites_fields(self, printer_store):
        printer = _printer("p1", "Alpha")
        await printer_store.insert(printer)

        await printer_store.update(
            printer.with_changes(ip_address="10.0.0.6", uri="socket://10.0.0.6:9100")
        )

        stored = await printer_store.get("p1")
        assert stored.ip_address == "10.0.0.6"
        assert stored.uri == "socket://10.0.0.6:9100"

    @pytest.mark.asyncio
    async def test_update_missing_printer_raises(self, printer_store):
        with pytest.raises(NotFoundError) as excinfo:
            await printer_store.update(_printer("ghost", "Ghost"))

        assert excinfo.value.step == "store-update"

    @pytest.mark.asyncio
    async def test_duplicate_insert_reports_step(self, printer_store):
        await printer_store.insert(_printer("p1", "Alpha"))

        with pytest.raises(TransientIOError) as excinfo:
            await printer_store.insert(_printer("p1", "Alpha"))

        assert excinfo.value.step == "store-insert"
