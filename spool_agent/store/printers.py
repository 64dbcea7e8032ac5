"""Printer persistence over the ``printers`` table."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.models import Printer
from ..errors import NotFoundError
from .engine import as_aware, store_errors
from .tables import printers


def _row_to_printer(row: Mapping[str, Any]) -> Printer:
    return Printer(
        id=row["id"],
        name=row["name"],
        status=row["status"],
        protocol=row["protocol"],
        driver=row["driver"],
        uri=row["uri"],
        ip_address=row["ip_address"],
        port=row["port"],
        description=row["description"],
        location=row["location"],
        mac_address=row["mac_address"],
        created_at=as_aware(row["createdat"]),
        updated_at=as_aware(row["updatedat"]),
    )


def _printer_values(printer: Printer) -> Dict[str, Any]:
    return {
        "name": printer.name,
        "status": printer.status,
        "protocol": printer.protocol,
        "mac_address": printer.mac_address,
        "driver": printer.driver,
        "uri": printer.uri,
        "description": printer.description,
        "location": printer.location,
        "ip_address": printer.ip_address,
        "port": printer.port,
        "updatedat": printer.updated_at,
    }


class SqlPrinterStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, printer_id: str) -> Optional[Printer]:
        query = sa.select(printers).where(printers.c.id == printer_id)
        with store_errors("printer-get"):
            async with self._engine.connect() as connection:
                row = (await connection.execute(query)).mappings().first()
        return _row_to_printer(row) if row is not None else None

    async def list_all(self) -> List[Printer]:
        query = sa.select(printers).order_by(printers.c.name)
        with store_errors("printer-list"):
            async with self._engine.connect() as connection:
                rows = (await connection.execute(query)).mappings().all()
        return [_row_to_printer(row) for row in rows]

    async def insert(self, printer: Printer) -> None:
        values = _printer_values(printer)
        values["id"] = printer.id
        values["createdat"] = printer.created_at
        with store_errors("store-insert"):
            async with self._engine.begin() as connection:
                await connection.execute(sa.insert(printers).values(**values))

    async def update(self, printer: Printer) -> None:
        statement = (
            sa.update(printers)
            .where(printers.c.id == printer.id)
            .values(**_printer_values(printer))
        )
        with store_errors("store-update"):
            async with self._engine.begin() as connection:
                result = await connection.execute(statement)
        if result.rowcount == 0:
            raise NotFoundError(f"Printer {printer.id} not found", step="store-update")
