"""Job persistence over the ``files`` table."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.models import Job, utcnow
from ..errors import NotFoundError, ValidationError
from .engine import as_aware, store_errors
from .tables import files

LOGGER = logging.getLogger(__name__)


def _row_to_job(row: Mapping[str, Any]) -> Job:
    return Job(
        id=row["id"],
        asset_id=row["assetid"],
        file_name=row["filename"],
        pages=row["pages"],
        path=row["path"],
        created_at=as_aware(row["createdat"]),
        printed=bool(row["printed"]),
        synced=bool(row["synced"]),
        deleted_at=as_aware(row["deletedat"]),
    )


class SqlJobStore:
    """JobStore backed by SQLAlchemy Core. Rows are only ever soft-deleted."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, job_id: str, *, include_deleted: bool = False) -> Optional[Job]:
        query = sa.select(files).where(files.c.id == job_id)
        if not include_deleted:
            query = query.where(files.c.deletedat.is_(None))
        with store_errors("job-get"):
            async with self._engine.connect() as connection:
                row = (await connection.execute(query)).mappings().first()
        return _row_to_job(row) if row is not None else None

    async def insert(self, job: Job) -> None:
        values = {
            "id": job.id,
            "assetid": job.asset_id,
            "filename": job.file_name,
            "pages": job.pages,
            "path": job.path,
            "createdat": job.created_at,
            "printed": job.printed,
            "synced": job.synced,
            "deletedat": job.deleted_at,
        }
        with store_errors("job-insert"):
            async with self._engine.begin() as connection:
                await connection.execute(sa.insert(files).values(**values))

    async def mark_printed(self, job_id: str, asset_id: str) -> None:
        """Claim an unprinted job for ``asset_id``.

        The update only matches rows that are still unprinted, so of two
        concurrent dispatches of the same job exactly one succeeds.

        Raises:
            NotFoundError: If no live job has this id.
            ValidationError: If the job is already printed.
        """
        claimed = await self._update_live(
            job_id,
            "mark-printed",
            files.c.printed.is_(False),
            printed=True,
            assetid=asset_id,
        )
        if claimed:
            return
        if await self.get(job_id) is None:
            raise NotFoundError(f"Job {job_id} not found", step="mark-printed")
        raise ValidationError(f"Job {job_id} was already printed", step="mark-printed")

    async def clear_printed(self, job_id: str) -> None:
        await self._update_live(job_id, "clear-printed", printed=False, assetid=None)

    async def mark_synced(self, job_id: str) -> bool:
        return await self._update_live(job_id, "mark-synced", synced=True)

    async def soft_delete(self, job_id: str) -> bool:
        return await self._update_live(job_id, "soft-delete", deletedat=utcnow())

    async def list_unprinted(self) -> List[Job]:
        query = (
            sa.select(files)
            .where(files.c.printed.is_(False), files.c.deletedat.is_(None))
            .order_by(files.c.createdat)
        )
        return await self._list(query, "list-unprinted")

    async def list_unsynced(self) -> List[Job]:
        query = (
            sa.select(files)
            .where(
                files.c.printed.is_(True),
                files.c.synced.is_(False),
                files.c.deletedat.is_(None),
            )
            .order_by(files.c.createdat)
        )
        return await self._list(query, "list-unsynced")

    async def _list(self, query: sa.Select, step: str) -> List[Job]:
        with store_errors(step):
            async with self._engine.connect() as connection:
                rows = (await connection.execute(query)).mappings().all()
        return [_row_to_job(row) for row in rows]

    async def _update_live(
        self, job_id: str, step: str, *conditions: Any, **values: Any
    ) -> bool:
        statement = (
            sa.update(files)
            .where(files.c.id == job_id, files.c.deletedat.is_(None), *conditions)
            .values(**values)
        )
        with store_errors(step):
            async with self._engine.begin() as connection:
                result = await connection.execute(statement)
        if result.rowcount == 0:
            LOGGER.debug("%s matched no live job %s", step, job_id)
            return False
        return True
