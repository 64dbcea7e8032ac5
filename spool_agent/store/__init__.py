"""Store façade over the relational print-management database."""

from .engine import create_store_engine, ensure_schema
from .jobs import SqlJobStore
from .printers import SqlPrinterStore

__all__ = [
    "SqlJobStore",
    "SqlPrinterStore",
    "create_store_engine",
    "ensure_schema",
]
