"""Adapter modules for the spooler, the network, the filesystem and the central service."""

from .central import CentralClient
from .cups import CupsGateway
from .network import NetworkProber
from .process import CommandResult, CommandRunner
from .watcher import FileWatcher

__all__ = [
    "CentralClient",
    "CommandResult",
    "CommandRunner",
    "CupsGateway",
    "FileWatcher",
    "NetworkProber",
]
