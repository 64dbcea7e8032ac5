"""Constants used across the spool-agent package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "spool-agent"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".spool-agent" / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / ".spool-agent" / "logs" / f"{APP_NAME}.log"

DEFAULT_WATCH_ROOT = Path("/srv/print_server")
DEFAULT_DATABASE_URL = "postgresql+asyncpg://localhost:5432/print_management"

DEFAULT_DRIVER = "generic"
RAW_DRIVER = "raw"

PDF_EXTENSION = ".pdf"
