"""Filesystem operations on adopted documents."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..errors import IntegrityError, TransientIOError

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _count_pages(path: Path) -> int:
    reader = PdfReader(path)
    return len(reader.pages)


async def read_page_count(path: PathLike) -> Optional[int]:
    """Open the document and count its pages.

    Returns ``None`` when the file cannot be parsed; callers leave such files
    in place for a later attempt.
    """
    target = Path(path)
    try:
        return await asyncio.to_thread(_count_pages, target)
    except (PyPdfError, OSError, ValueError, KeyError) as exc:
        LOGGER.warning("Could not read page count from %s: %s", target, exc)
        return None


def _copy(source: Path, destination: Path) -> None:
    shutil.copyfile(source, destination)
    expected = source.stat().st_size
    actual = destination.stat().st_size
    if expected != actual:
        raise IntegrityError(
            f"Copy of {source} has {actual} bytes, expected {expected}",
            step="verify",
        )


async def copy_verified(source: PathLike, destination: PathLike) -> None:
    """Copy ``source`` to ``destination`` and compare byte sizes.

    Raises:
        IntegrityError: If the sizes differ (the partial copy is removed).
        TransientIOError: If the copy itself fails.
    """
    src, dst = Path(source), Path(destination)
    try:
        await asyncio.to_thread(_copy, src, dst)
    except IntegrityError:
        await remove_file(dst)
        raise
    except OSError as exc:
        await remove_file(dst)
        raise TransientIOError(f"Copy of {src} failed: {exc}", step="copy") from exc


async def remove_file(path: PathLike) -> bool:
    """Delete ``path``; returns False when it was already gone."""
    target = Path(path)
    try:
        await asyncio.to_thread(target.unlink)
    except FileNotFoundError:
        return False
    return True
