"""In-process guards that serialise work on paths and sweeps.

``PathGuard`` is the dedupe set shared by the filesystem watcher and the
periodic tree scan: a path is claimed from the first sighting until a
cooldown after its processing completes, so a write-then-rename sequence or
a scan racing the watcher cannot adopt the same file twice.

``SweepFlag`` is a busy flag for periodic sweeps. A second caller gets an
explicit ``SweepAlreadyRunning`` instead of queueing behind the first.
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import AsyncIterator, Callable, Dict, Optional, Set

from ..errors import SweepAlreadyRunning

LOGGER = logging.getLogger(__name__)


class PathGuard:
    """Path-keyed claim set with a cooldown TTL after release.

    Usage:
        guard = PathGuard(cooldown_seconds=6)

        if not guard.claim(path):
            return  # already being processed or cooling down
        try:
            await process(path)
        finally:
            guard.release(path)
    """

    def __init__(
        self,
        cooldown_seconds: float = 6.0,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._cooldown = cooldown_seconds
        self._clock = clock or time.monotonic
        self._active: Set[str] = set()
        self._cooling: Dict[str, float] = {}

    def claim(self, path: str) -> bool:
        """Claim ``path`` for processing.

        Returns False when the path is already claimed or still inside its
        cooldown window.
        """
        self._expire()
        if path in self._active or path in self._cooling:
            return False
        self._active.add(path)
        return True

    def release(self, path: str) -> None:
        """Finish processing ``path`` and start its cooldown window."""
        self._active.discard(path)
        if self._cooldown > 0:
            self._cooling[path] = self._clock() + self._cooldown
        else:
            self._cooling.pop(path, None)

    def is_claimed(self, path: str) -> bool:
        self._expire()
        return path in self._active or path in self._cooling

    @property
    def active_count(self) -> int:
        return len(self._active)

    def _expire(self) -> None:
        now = self._clock()
        expired = [path for path, until in self._cooling.items() if until <= now]
        for path in expired:
            del self._cooling[path]


class SweepFlag:
    """Busy flag for one kind of periodic sweep."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @contextlib.asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self._running:
            raise SweepAlreadyRunning(f"{self.name} already running", step=self.name)
        self._running = True
        try:
            yield
        finally:
            self._running = False
            LOGGER.debug("%s finished", self.name)
