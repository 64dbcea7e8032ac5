"""Bridge from watchdog's observer thread to the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

LOGGER = logging.getLogger(__name__)

PathCallback = Callable[[str], None]


def _is_hidden(path: str) -> bool:
    return Path(path).name.startswith(".")


class _LoopForwarder(FileSystemEventHandler):
    """Runs on the observer thread; forwards file events to the loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_appeared: PathCallback,
        on_removed: PathCallback,
    ) -> None:
        super().__init__()
        self._loop = loop
        self._on_appeared = on_appeared
        self._on_removed = on_removed

    def _forward(self, callback: PathCallback, path: str) -> None:
        if _is_hidden(path):
            return
        self._loop.call_soon_threadsafe(callback, path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(self._on_appeared, str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(self._on_appeared, str(event.src_path))

    def on_closed(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(self._on_appeared, str(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(self._on_removed, str(event.src_path))

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        if event.is_directory:
            return
        self._forward(self._on_removed, str(event.src_path))
        self._forward(self._on_appeared, str(event.dest_path))


class FileWatcher:
    """Recursive watch of the drop root feeding the ingestion callbacks.

    Callbacks always run on the event loop thread, so they may touch the
    ingestion service's state without locking.
    """

    def __init__(
        self,
        root: Path,
        on_appeared: PathCallback,
        on_removed: PathCallback,
    ) -> None:
        self.root = root
        self._on_appeared = on_appeared
        self._on_removed = on_removed
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        if self._observer is not None:
            return
        loop = asyncio.get_running_loop()
        self.root.mkdir(parents=True, exist_ok=True)
        handler = _LoopForwarder(loop, self._on_appeared, self._on_removed)
        observer = Observer()
        observer.schedule(handler, str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        LOGGER.info("Watching %s for new documents", self.root)

    async def stop(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        await asyncio.to_thread(observer.join, 5.0)
        LOGGER.info("Stopped watching %s", self.root)
