"""Core utility functions shared across modules."""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional

from ..errors import ValidationError

_DEFAULT_PORTS = {
    "ipp": 631,
    "ipps": 631,
    "lpd": 515,
}

_NON_HEX = re.compile(r"[^a-f0-9]")


def default_port(protocol: Optional[str]) -> int:
    """Return the conventional print port for ``protocol`` (9100 for raw socket)."""
    return _DEFAULT_PORTS.get((protocol or "").lower(), 9100)


def build_printer_uri(protocol: Optional[str], ip: Optional[str], port: Any = None) -> str:
    """Derive the spooler device URI for a network printer.

    Args:
        protocol: One of ``socket``, ``ipp``, ``ipps``, ``lpd``, ``smb`` or
            ``dnssd``. Anything else is treated as ``socket``.
        ip: Management address of the device.
        port: Optional port; a falsy value selects the protocol default.

    Raises:
        ValidationError: If no IP address is supplied.

    Examples:
        >>> build_printer_uri("ipp", "10.0.0.5", None)
        'ipp://10.0.0.5:631/ipp/print'
        >>> build_printer_uri("socket", "10.0.0.5", 9101)
        'socket://10.0.0.5:9101'
    """
    if not ip:
        raise ValidationError("IP address is required to build the printer URI", step="uri")

    scheme = (protocol or "").lower()
    if scheme == "ipp":
        return f"ipp://{ip}:{port or 631}/ipp/print"
    if scheme == "ipps":
        return f"ipps://{ip}:{port or 631}/ipp/print"
    if scheme == "lpd":
        return f"lpd://{ip}:{port or 515}/queue"
    if scheme == "smb":
        return f"smb://{ip}/printer"
    if scheme == "dnssd":
        return f"dnssd://{ip}/"
    return f"socket://{ip}:{port or 9100}"


def coerce_port(value: Any) -> Optional[int]:
    """Convert a port from a JSON payload or database row into an int."""
    if value is None or value == "":
        return None
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid port: {value!r}", step="validate") from exc
    if not 0 < port < 65536:
        raise ValidationError(f"Port out of range: {port}", step="validate")
    return port


def normalize_mac(mac: Optional[str]) -> str:
    """Normalise a MAC address to lower-case ``xx:xx:xx:xx:xx:xx``.

    Addresses that do not contain exactly twelve hex digits are returned as
    the bare hex digits so callers can still compare them.
    """
    if not mac:
        return ""
    hex_only = _NON_HEX.sub("", mac.lower())
    if len(hex_only) != 12:
        return hex_only
    return ":".join(hex_only[index : index + 2] for index in range(0, 12, 2))


def new_job_id() -> str:
    return str(uuid.uuid4())


def is_job_id(value: str) -> bool:
    """Return True when ``value`` is an identifier in canonical UUID form."""
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return str(parsed) == value.lower()
