"""Engine construction for the store façade."""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig
from ..errors import TransientIOError
from .tables import metadata

LOGGER = logging.getLogger(__name__)


def create_store_engine(config: DatabaseConfig, **engine_kwargs: Any) -> AsyncEngine:
    """Create the async engine for ``config.url``.

    The connection pool is the store's own concern; ``pool_pre_ping`` drops
    connections the server closed while the agent idled between sweeps. When
    ``config.schema`` is set, the unqualified tables are mapped onto it.
    """
    options: dict[str, Any] = {"echo": config.echo, "pool_pre_ping": True}
    if config.url.startswith("sqlite") and ":memory:" in config.url:
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    if config.schema:
        options["execution_options"] = {"schema_translate_map": {None: config.schema}}
    options.update(engine_kwargs)

    engine = create_async_engine(config.url, **options)
    LOGGER.debug("Store engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create the tables when missing (development and tests only)."""
    async with engine.begin() as connection:
        await connection.run_sync(metadata.create_all)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to timestamps read back from drivers that drop the offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@contextlib.contextmanager
def store_errors(step: str) -> Iterator[None]:
    """Translate driver failures into ``TransientIOError`` tagged with ``step``."""
    try:
        yield
    except SQLAlchemyError as exc:
        LOGGER.warning("Store operation %s failed: %s", step, exc)
        raise TransientIOError(f"Store operation {step} failed: {exc}", step=step) from exc
