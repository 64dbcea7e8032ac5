"""Core primitives for spool-agent."""

from .filenames import clean_file_name
from .guards import PathGuard, SweepFlag
from .protocols import JobStore, NetworkProbe, PrinterStore, SpoolerGateway
from .saga import Saga
from .utils import build_printer_uri, is_job_id, new_job_id

__all__ = [
    "JobStore",
    "NetworkProbe",
    "PathGuard",
    "PrinterStore",
    "Saga",
    "SpoolerGateway",
    "SweepFlag",
    "build_printer_uri",
    "clean_file_name",
    "is_job_id",
    "new_job_id",
]
