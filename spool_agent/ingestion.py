"""Ingestion pipeline: turns documents dropped under the watch root into jobs.

Two producers feed the same guarded ``adopt`` path: the filesystem watcher
(debounced per path) and the periodic tree reconciliation that heals any
event the watcher dropped. A job's identifier doubles as the adopted file's
name, which is what makes a second sighting of the same file a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from . import constants
from .adapters.documents import copy_verified, read_page_count, remove_file
from .core.filenames import clean_file_name
from .core.guards import PathGuard, SweepFlag
from .core.models import Job
from .core.protocols import JobStore
from .core.utils import is_job_id, new_job_id
from .errors import AgentError, TransientIOError

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

_SECONDS_PER_DAY = 86400.0


class AdoptionOutcome(str, Enum):
    ADOPTED = "adopted"
    ALREADY_ADOPTED = "already_adopted"
    REJECTED = "rejected"
    UNREADABLE = "unreadable"
    BUSY = "busy"
    FAILED = "failed"
    MISSING = "missing"


@dataclass(slots=True)
class ScanReport:
    """Summary of one tree reconciliation pass."""

    scanned: int = 0
    deferred: int = 0
    ignored: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def record(self, outcome: AdoptionOutcome) -> None:
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1

    def count(self, outcome: AdoptionOutcome) -> int:
        return self.outcomes.get(outcome.value, 0)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scanned": self.scanned,
            "deferred": self.deferred,
            "ignored": self.ignored,
            "outcomes": dict(self.outcomes),
        }


@dataclass(slots=True)
class PurgeReport:
    removed: int = 0
    soft_deleted: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "removed": self.removed,
            "softDeleted": self.soft_deleted,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def _is_hidden(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(part.startswith(".") for part in parts)


def _walk(root: Path) -> List[Tuple[Path, float]]:
    """List regular files under ``root`` with their modification times."""
    if not root.is_dir():
        return []
    entries: List[Tuple[Path, float]] = []
    for path in root.rglob("*"):
        if _is_hidden(path, root):
            continue
        try:
            if not path.is_file():
                continue
            entries.append((path, path.stat().st_mtime))
        except OSError:
            # Removed between listing and stat.
            continue
    entries.sort()
    return entries


class IngestionService:
    """Adopts documents under ``root`` exactly once.

    Args:
        jobs: Job store receiving one row per adopted file.
        root: Watched directory tree.
        debounce_seconds: Quiet period after the last event for a path before
            it is processed; also the minimum age of files the sweep touches.
        cooldown_seconds: How long a path stays claimed after processing.
        max_age_days: Default threshold for ``purge_stale``.
        guard: Shared path guard (one is created when omitted).
        wall_clock: Source of the current epoch time for file-age checks.
    """

    def __init__(
        self,
        jobs: JobStore,
        root: PathLike,
        *,
        debounce_seconds: float = 3.0,
        cooldown_seconds: float = 6.0,
        max_age_days: float = 1.0,
        guard: Optional[PathGuard] = None,
        wall_clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._jobs = jobs
        self.root = Path(root)
        self._debounce = debounce_seconds
        self._max_age_days = max_age_days
        self._guard = guard or PathGuard(cooldown_seconds)
        self._wall_clock = wall_clock or time.time
        self._pending: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._scan_flag = SweepFlag("tree-reconcile")
        self._purge_flag = SweepFlag("stale-purge")

    @property
    def pending_count(self) -> int:
        return len(self._pending) + len(self._tasks)

    # ------------------------------------------------------------------
    # Watcher entry points (called on the event loop thread)
    # ------------------------------------------------------------------

    def on_file_appeared(self, path: PathLike) -> None:
        """Schedule processing of ``path`` once its events go quiet."""
        key = str(path)
        handle = self._pending.pop(key, None)
        if handle is not None:
            handle.cancel()
        elif not self._guard.claim(key):
            LOGGER.debug("Ignoring event for %s: already being processed", key)
            return

        loop = asyncio.get_running_loop()
        self._pending[key] = loop.call_later(self._debounce, self._launch, key)

    def on_file_removed(self, path: PathLike) -> None:
        """Soft-delete the job behind an externally removed, unprinted file."""
        key = str(path)
        handle = self._pending.pop(key, None)
        if handle is not None:
            handle.cancel()
            self._guard.release(key)
        self._track(asyncio.create_task(self._handle_removed(Path(key))))

    def _launch(self, key: str) -> None:
        self._pending.pop(key, None)
        self._track(asyncio.create_task(self._adopt_claimed(key)))

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self, *, flush: bool = False) -> None:
        """Wait until no debounced or running work remains.

        With ``flush`` the pending debounce timers fire immediately instead of
        waiting out their quiet period (used on shutdown).
        """
        while self._pending or self._tasks:
            if flush:
                for key, handle in list(self._pending.items()):
                    handle.cancel()
                    self._launch(key)
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0.05)

    # ------------------------------------------------------------------
    # Adoption
    # ------------------------------------------------------------------

    async def adopt(self, path: PathLike) -> AdoptionOutcome:
        """Adopt ``path`` unless another producer already holds it."""
        key = str(path)
        if key in self._pending or not self._guard.claim(key):
            return AdoptionOutcome.BUSY
        return await self._adopt_claimed(key)

    async def _adopt_claimed(self, key: str) -> AdoptionOutcome:
        try:
            outcome = await self._process(Path(key))
        except AgentError as exc:
            LOGGER.warning("Adoption of %s failed at %s: %s", key, exc.step, exc.message)
            outcome = AdoptionOutcome.FAILED
        except OSError as exc:
            LOGGER.warning("Adoption of %s failed: %s", key, exc)
            outcome = AdoptionOutcome.FAILED
        finally:
            self._guard.release(key)
        LOGGER.debug("Adoption of %s: %s", key, outcome.value)
        return outcome

    async def _process(self, path: Path) -> AdoptionOutcome:
        if not path.is_file():
            return AdoptionOutcome.MISSING

        if path.suffix.lower() != constants.PDF_EXTENSION:
            LOGGER.info("Removing non-PDF file %s", path)
            await remove_file(path)
            return AdoptionOutcome.REJECTED

        display_name = clean_file_name(path.name)
        if is_job_id(path.stem):
            existing = await self._jobs.get(path.stem, include_deleted=True)
            if existing is not None and not existing.deleted:
                return AdoptionOutcome.ALREADY_ADOPTED
            LOGGER.info("Re-adopting %s: no live job carries its identifier", path)
            # Identifier names carry no driver decoration to clean.
            display_name = existing.file_name if existing is not None else path.name

        pages = await read_page_count(path)
        if pages is None:
            return AdoptionOutcome.UNREADABLE

        job_id = new_job_id()
        destination = path.with_name(f"{job_id}{constants.PDF_EXTENSION}")
        job = Job(
            id=job_id,
            file_name=display_name,
            pages=pages,
            path=str(destination),
        )
        await self._jobs.insert(job)

        try:
            await copy_verified(path, destination)
        except TransientIOError as exc:
            LOGGER.warning(
                "Copy of %s failed (%s); keeping original for retry", path, exc.message
            )
            await self._rollback(job_id)
            return AdoptionOutcome.FAILED

        try:
            await remove_file(path)
        except OSError as exc:
            LOGGER.error("Adopted %s as %s but could not remove original: %s", path, job_id, exc)
        LOGGER.info(
            "Adopted %s as %s (%s, %d pages)", path.name, job_id, job.file_name, pages
        )
        return AdoptionOutcome.ADOPTED

    async def _rollback(self, job_id: str) -> None:
        try:
            await self._jobs.soft_delete(job_id)
        except TransientIOError as exc:
            LOGGER.error("Rollback of job %s failed: %s", job_id, exc.message)

    async def _handle_removed(self, path: Path) -> None:
        if not is_job_id(path.stem):
            return
        try:
            job = await self._jobs.get(path.stem)
            if job is None or job.printed:
                return
            if await self._jobs.soft_delete(job.id):
                LOGGER.info("Job %s soft-deleted: its file was removed", job.id)
        except TransientIOError as exc:
            LOGGER.warning("Could not process removal of %s: %s", path, exc.message)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def reconcile_tree(self, root: Optional[PathLike] = None) -> ScanReport:
        """Walk the tree and adopt every PDF the watcher has not handled.

        Raises:
            SweepAlreadyRunning: If a reconciliation is already in progress.
        """
        target = Path(root) if root is not None else self.root
        async with self._scan_flag.hold():
            report = ScanReport()
            now = self._wall_clock()
            for path, mtime in await asyncio.to_thread(_walk, target):
                report.scanned += 1
                if path.suffix.lower() != constants.PDF_EXTENSION:
                    report.ignored += 1
                    continue
                if now - mtime < self._debounce:
                    report.deferred += 1
                    continue
                report.record(await self.adopt(path))

        if report.count(AdoptionOutcome.ADOPTED):
            LOGGER.info("Tree reconciliation adopted %d file(s)", report.count(AdoptionOutcome.ADOPTED))
        return report

    async def purge_stale(
        self,
        root: Optional[PathLike] = None,
        max_age_days: Optional[float] = None,
    ) -> PurgeReport:
        """Delete files older than the threshold and soft-delete their jobs.

        Raises:
            SweepAlreadyRunning: If a purge is already in progress.
        """
        target = Path(root) if root is not None else self.root
        days = self._max_age_days if max_age_days is None else max_age_days
        async with self._purge_flag.hold():
            report = PurgeReport()
            cutoff = self._wall_clock() - days * _SECONDS_PER_DAY
            for path, mtime in await asyncio.to_thread(_walk, target):
                if mtime >= cutoff:
                    continue
                key = str(path)
                if key in self._pending or self._guard.is_claimed(key):
                    report.skipped += 1
                    continue
                try:
                    if not await remove_file(path):
                        continue
                except OSError as exc:
                    LOGGER.warning("Could not purge %s: %s", path, exc)
                    report.failed += 1
                    continue
                report.removed += 1

                if not is_job_id(path.stem):
                    continue
                try:
                    if await self._jobs.soft_delete(path.stem):
                        report.soft_deleted += 1
                except TransientIOError as exc:
                    LOGGER.warning("Could not soft-delete job %s: %s", path.stem, exc.message)
                    report.failed += 1

        if report.removed:
            LOGGER.info(
                "Purged %d stale file(s), soft-deleted %d job(s)",
                report.removed,
                report.soft_deleted,
            )
        return report
