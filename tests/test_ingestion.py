import asyncio
import os
import time

import pytest

from spool_agent import ingestion
from spool_agent.core.models import Job
from spool_agent.core.utils import is_job_id, new_job_id
from spool_agent.errors import SweepAlreadyRunning, TransientIOError
from spool_agent.ingestion import AdoptionOutcome, IngestionService


def _later() -> float:
    return time.time() + 3600


@pytest.fixture
def service(job_store, tmp_path):
    return IngestionService(
        job_store,
        tmp_path,
        debounce_seconds=0.01,
        cooldown_seconds=0,
        wall_clock=_later,
    )


def _pdfs(root):
    return sorted(path for path in root.rglob("*.pdf"))


class TestAdoption:
    """A document dropped under the root becomes exactly one job."""

    @pytest.mark.asyncio
    async def test_adopt_cleans_name_and_renames_file(self, service, job_store, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "report-job_42.pdf", pages=3)

        outcome = await service.adopt(source)

        assert outcome is AdoptionOutcome.ADOPTED
        assert not source.exists()
        jobs = await job_store.list_unprinted()
        assert len(jobs) == 1
        job = jobs[0]
        assert job.file_name == "report.pdf"
        assert job.pages == 3
        assert is_job_id(job.id)
        assert _pdfs(tmp_path) == [tmp_path / f"{job.id}.pdf"]
        assert job.path == str(tmp_path / f"{job.id}.pdf")

    @pytest.mark.asyncio
    async def test_adopt_keeps_subdirectory(self, service, job_store, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "finance" / "invoice.pdf")

        await service.adopt(source)

        job = (await job_store.list_unprinted())[0]
        assert job.path == str(tmp_path / "finance" / f"{job.id}.pdf")

    @pytest.mark.asyncio
    async def test_non_pdf_is_deleted(self, service, job_store, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("hello")

        outcome = await service.adopt(source)

        assert outcome is AdoptionOutcome.REJECTED
        assert not source.exists()
        assert await job_store.list_unprinted() == []

    @pytest.mark.asyncio
    async def test_unreadable_pdf_is_left_in_place(self, service, job_store, tmp_path):
        source = tmp_path / "broken.pdf"
        source.write_bytes(b"%PDF-1.4 truncated")

        outcome = await service.adopt(source)

        assert outcome is AdoptionOutcome.UNREADABLE
        assert source.exists()
        assert await job_store.list_unprinted() == []

    @pytest.mark.asyncio
    async def test_missing_file(self, service, tmp_path):
        assert await service.adopt(tmp_path / "gone.pdf") is AdoptionOutcome.MISSING

    @pytest.mark.asyncio
    async def test_named_after_live_job_is_already_adopted(self, service, job_store, tmp_path, make_pdf):
        job_id = new_job_id()
        path = make_pdf(tmp_path / f"{job_id}.pdf")
        await job_store.insert(Job(id=job_id, file_name="a.pdf", pages=1, path=str(path)))

        outcome = await service.adopt(path)

        assert outcome is AdoptionOutcome.ALREADY_ADOPTED
        assert path.exists()
        assert len(await job_store.list_unprinted()) == 1

    @pytest.mark.asyncio
    async def test_failed_copy_rolls_back_job(self, service, job_store, tmp_path, make_pdf, monkeypatch):
        source = make_pdf(tmp_path / "invoice.pdf")

        async def _failing_copy(src, dst):
            raise TransientIOError("disk full", step="copy")

        monkeypatch.setattr(ingestion, "copy_verified", _failing_copy)

        outcome = await service.adopt(source)

        assert outcome is AdoptionOutcome.FAILED
        assert source.exists()
        assert await job_store.list_unprinted() == []


class TestWatcherEvents:
    @pytest.mark.asyncio
    async def test_debounced_event_adopts_once(self, service, job_store, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "scan.pdf", pages=2)

        for _ in range(3):
            service.on_file_appeared(str(source))
        assert service.pending_count == 1
        await service.wait_idle()

        jobs = await job_store.list_unprinted()
        assert len(jobs) == 1
        assert jobs[0].pages == 2

    @pytest.mark.asyncio
    async def test_pending_path_is_busy_for_sweep(self, service, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "scan.pdf")

        service.on_file_appeared(str(source))

        assert await service.adopt(source) is AdoptionOutcome.BUSY
        await service.wait_idle(flush=True)

    @pytest.mark.asyncio
    async def test_watcher_then_tree_pass_is_idempotent(self, service, job_store, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "scan.pdf")
        service.on_file_appeared(str(source))
        await service.wait_idle()

        report = await service.reconcile_tree()

        assert report.count(AdoptionOutcome.ALREADY_ADOPTED) == 1
        assert report.count(AdoptionOutcome.ADOPTED) == 0
        assert len(await job_store.list_unprinted()) == 1

    @pytest.mark.asyncio
    async def test_removed_file_soft_deletes_unprinted_job(self, service, job_store, tmp_path, make_pdf):
        await service.adopt(make_pdf(tmp_path / "scan.pdf"))
        job = (await job_store.list_unprinted())[0]
        os.unlink(job.path)

        service.on_file_removed(job.path)
        await service.wait_idle()

        assert await job_store.get(job.id) is None

    @pytest.mark.asyncio
    async def test_removed_file_keeps_printed_job(self, service, job_store, tmp_path, make_pdf):
        await service.adopt(make_pdf(tmp_path / "scan.pdf"))
        job = (await job_store.list_unprinted())[0]
        await job_store.mark_printed(job.id, "printer-1")
        os.unlink(job.path)

        service.on_file_removed(job.path)
        await service.wait_idle()

        stored = await job_store.get(job.id)
        assert stored is not None
        assert stored.printed

    @pytest.mark.asyncio
    async def test_removal_cancels_pending_adoption(self, service, job_store, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "scan.pdf")
        service.on_file_appeared(str(source))

        service.on_file_removed(str(source))
        await service.wait_idle()

        assert await job_store.list_unprinted() == []
        assert source.exists()


class TestSweeps:
    @pytest.mark.asyncio
    async def test_orphaned_identifier_file_keeps_its_name(self, service, job_store, tmp_path, make_pdf):
        orphan_id = new_job_id()
        make_pdf(tmp_path / f"{orphan_id}.pdf")

        report = await service.reconcile_tree()

        assert report.count(AdoptionOutcome.ADOPTED) == 1
        job = (await job_store.list_unprinted())[0]
        assert job.id != orphan_id
        assert job.file_name == f"{orphan_id}.pdf"

    @pytest.mark.asyncio
    async def test_file_of_deleted_job_gets_its_old_name_back(self, service, job_store, tmp_path, make_pdf):
        old_id = new_job_id()
        path = make_pdf(tmp_path / f"{old_id}.pdf")
        await job_store.insert(Job(id=old_id, file_name="quarterly.pdf", pages=1, path=str(path)))
        await job_store.soft_delete(old_id)

        report = await service.reconcile_tree()

        assert report.count(AdoptionOutcome.ADOPTED) == 1
        job = (await job_store.list_unprinted())[0]
        assert job.file_name == "quarterly.pdf"

    @pytest.mark.asyncio
    async def test_tree_pass_adopts_missed_files(self, service, job_store, tmp_path, make_pdf):
        make_pdf(tmp_path / "a.pdf")
        make_pdf(tmp_path / "nested" / "b.pdf")
        (tmp_path / "readme.txt").write_text("skip me")
        make_pdf(tmp_path / ".hidden" / "c.pdf")

        report = await service.reconcile_tree()

        assert report.count(AdoptionOutcome.ADOPTED) == 2
        assert report.ignored == 1
        assert (tmp_path / "readme.txt").exists()
        assert len(await job_store.list_unprinted()) == 2

    @pytest.mark.asyncio
    async def test_tree_pass_defers_fresh_files(self, job_store, tmp_path, make_pdf):
        service = IngestionService(job_store, tmp_path, debounce_seconds=30, cooldown_seconds=0)
        make_pdf(tmp_path / "fresh.pdf")

        report = await service.reconcile_tree()

        assert report.deferred == 1
        assert await job_store.list_unprinted() == []

    @pytest.mark.asyncio
    async def test_concurrent_tree_pass_is_refused(self, service, tmp_path, make_pdf):
        make_pdf(tmp_path / "a.pdf")

        first, second = await asyncio.gather(
            service.reconcile_tree(), service.reconcile_tree(), return_exceptions=True
        )

        assert first.count(AdoptionOutcome.ADOPTED) == 1
        assert isinstance(second, SweepAlreadyRunning)

    @pytest.mark.asyncio
    async def test_purge_removes_old_files_and_soft_deletes_jobs(self, job_store, tmp_path, make_pdf):
        adopter = IngestionService(job_store, tmp_path, cooldown_seconds=0, wall_clock=_later)
        await adopter.adopt(make_pdf(tmp_path / "old.pdf"))
        job = (await job_store.list_unprinted())[0]
        stray = make_pdf(tmp_path / "stray.pdf")
        fresh = make_pdf(tmp_path / "fresh.pdf")
        two_days_ago = time.time() - 2 * 86400
        os.utime(job.path, (two_days_ago, two_days_ago))
        os.utime(stray, (two_days_ago, two_days_ago))

        service = IngestionService(job_store, tmp_path, cooldown_seconds=0)
        report = await service.purge_stale(max_age_days=1)

        assert report.removed == 2
        assert report.soft_deleted == 1
        assert not os.path.exists(job.path)
        assert not stray.exists()
        assert fresh.exists()
        assert await job_store.get(job.id) is None

    @pytest.mark.asyncio
    async def test_purge_skips_claimed_paths(self, service, tmp_path, make_pdf):
        source = make_pdf(tmp_path / "busy.pdf")
        two_days_ago = time.time() - 2 * 86400
        os.utime(source, (two_days_ago, two_days_ago))
        service.on_file_appeared(str(source))

        report = await service.purge_stale(max_age_days=1)

        assert report.skipped == 1
        assert source.exists()
        await service.wait_idle(flush=True)
