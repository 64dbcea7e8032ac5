import pytest

from spool_agent.core.models import Job
from spool_agent.errors import TransientIOError
from spool_agent.sync import JobAcknowledger


class _StubCentral:
    def __init__(self, answers=None) -> None:
        self.answers = answers or {}
        self.reported = []

    async def report_printed(self, job: Job) -> bool:
        self.reported.append(job.id)
        answer = self.answers.get(job.id, True)
        if isinstance(answer, Exception):
            raise answer
        return answer


async def _printed(job_store, job_id: str) -> None:
    await job_store.insert(Job(id=job_id, file_name=f"{job_id}.pdf", pages=1, path=f"/srv/{job_id}.pdf"))
    await job_store.mark_printed(job_id, "printer-1")


@pytest.mark.asyncio
async def test_acknowledged_jobs_are_marked_synced(job_store):
    await _printed(job_store, "a")
    await _printed(job_store, "b")
    await job_store.insert(Job(id="c", file_name="c.pdf", pages=1, path="/srv/c.pdf"))
    central = _StubCentral()

    acknowledged = await JobAcknowledger(job_store, central).run_once()

    assert acknowledged == 2
    assert sorted(central.reported) == ["a", "b"]
    assert await job_store.list_unsynced() == []


@pytest.mark.asyncio
async def test_rejected_and_failed_jobs_stay_unsynced(job_store):
    await _printed(job_store, "a")
    await _printed(job_store, "b")
    await _printed(job_store, "c")
    central = _StubCentral(
        {"a": False, "b": TransientIOError("connection refused", step="report")}
    )

    acknowledged = await JobAcknowledger(job_store, central).run_once()

    assert acknowledged == 1
    remaining = sorted(job.id for job in await job_store.list_unsynced())
    assert remaining == ["a", "b"]
