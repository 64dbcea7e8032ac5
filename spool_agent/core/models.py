"""Domain records shared by the ingestion, reconciliation and dispatch paths."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import AgentError


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class PrinterProtocol(str, Enum):
    SOCKET = "socket"
    IPP = "ipp"
    IPPS = "ipps"
    LPD = "lpd"
    SMB = "smb"
    DNSSD = "dnssd"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PrinterProtocol":
        if not value:
            return cls.SOCKET
        return cls(value.strip().lower())


@dataclass(slots=True)
class Job:
    """A document adopted from the watched tree."""

    id: str
    file_name: str
    pages: int
    path: str
    created_at: datetime = field(default_factory=utcnow)
    asset_id: Optional[str] = None
    printed: bool = False
    synced: bool = False
    deleted_at: Optional[datetime] = None

    @property
    def deleted(self) -> bool:
        return self.deleted_at is not None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assetId": self.asset_id,
            "fileName": self.file_name,
            "pages": self.pages,
            "path": self.path,
            "createdAt": self.created_at.isoformat(),
            "printed": self.printed,
            "synced": self.synced,
            "deletedAt": self.deleted_at.isoformat() if self.deleted_at else None,
        }


@dataclass(slots=True, frozen=True)
class PrinterSpec:
    """Fields the spooler needs to provision a queue."""

    name: str
    protocol: str = PrinterProtocol.SOCKET.value
    driver: Optional[str] = None
    uri: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = None


@dataclass(slots=True)
class Printer:
    id: str
    name: str
    status: str
    protocol: str
    driver: str
    uri: str
    ip_address: str
    port: Optional[int] = None
    description: Optional[str] = None
    location: Optional[str] = None
    mac_address: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_spec(self) -> PrinterSpec:
        return PrinterSpec(
            name=self.name,
            protocol=self.protocol,
            driver=self.driver,
            uri=self.uri,
            description=self.description,
            location=self.location,
            ip_address=self.ip_address,
            port=self.port,
        )

    def with_changes(self, **changes: Any) -> "Printer":
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "protocol": self.protocol,
            "driver": self.driver,
            "uri": self.uri,
            "description": self.description,
            "location": self.location,
            "ip_address": self.ip_address,
            "port": self.port,
            "mac_address": self.mac_address,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class SpoolerResult:
    success: bool
    message: str


@dataclass(slots=True, frozen=True)
class DiscoveredDevice:
    type: str
    uri: str


@dataclass(slots=True, frozen=True)
class PingResult:
    success: bool
    output: str


class DeviceState(str, Enum):
    RUNNING = "running"
    WARNING = "warning"
    DOWN = "down"
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class DeviceStatus:
    online: bool
    status: DeviceState
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"online": self.online, "status": self.status.value}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class ConnectivityReport:
    """Aggregate of the ping, port and status probes for one device."""

    ping: bool = False
    port_open: bool = False
    status: Optional[DeviceStatus] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def overall(self) -> bool:
        return self.ping or self.port_open

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ping": self.ping,
            "port": self.port_open,
            "status": self.status.as_dict() if self.status else None,
            "overall": self.overall,
            "details": dict(self.details),
        }


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class SyncItem:
    """Outcome of reconciling one desired-state entry."""

    id: str
    name: Optional[str]
    outcome: SyncOutcome
    ip_address: Optional[str] = None
    message: Optional[str] = None
    changes: List[str] = field(default_factory=list)
    connectivity: Optional[ConnectivityReport] = None
    error: Optional[AgentError] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.ip_address:
            payload["ip"] = self.ip_address
        if self.message:
            key = "error" if self.outcome is SyncOutcome.ERROR else "message"
            payload[key] = self.message
        if self.error is not None and self.error.step:
            payload["step"] = self.error.step
        if self.changes:
            payload["changes"] = list(self.changes)
        if self.connectivity is not None:
            payload["connectivity"] = self.connectivity.as_dict()
        return payload


_SUMMARY_KEYS = {
    SyncOutcome.CREATED: "created",
    SyncOutcome.UPDATED: "updated",
    SyncOutcome.UNCHANGED: "unchanged",
    SyncOutcome.WARNING: "warnings",
    SyncOutcome.ERROR: "errors",
}


@dataclass(slots=True)
class SyncResult:
    items: List[SyncItem] = field(default_factory=list)

    def add(self, item: SyncItem) -> None:
        self.items.append(item)

    def by_outcome(self, outcome: SyncOutcome) -> List[SyncItem]:
        return [item for item in self.items if item.outcome is outcome]

    def summary(self) -> Dict[str, int]:
        counts = {"total": len(self.items)}
        for outcome, key in _SUMMARY_KEYS.items():
            counts[key] = len(self.by_outcome(outcome))
        return counts

    def as_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "details": {
                key: [item.as_dict() for item in self.by_outcome(outcome)]
                for outcome, key in _SUMMARY_KEYS.items()
            },
        }
