"""Reachability and status probes for network printers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from typing import Optional, Sequence

import aiohttp

from ..core.models import ConnectivityReport, DeviceState, DeviceStatus, PingResult
from ..core.utils import default_port
from ..errors import ExternalToolError
from .process import CommandRunner

LOGGER = logging.getLogger(__name__)

# HOST-RESOURCES-MIB::hrDeviceStatus for the first device.
HR_DEVICE_STATUS_OID = ".1.3.6.1.2.1.25.3.2.1.5.1"

IPP_COMMON_PATHS: Sequence[str] = (
    "/ipp/print",
    "/ipp",
    "/printer",
    "/printers/printer",
    "",
    "/IPP/Print",
    "/print",
)

_SNMP_STATE = re.compile(r"\b(running|warning|down)\(\d+\)")


class NetworkProber:
    """NetworkProbe implementation built on ``ping``, ``snmpget`` and TCP."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        *,
        ping_timeout: int = 2,
        port_timeout: float = 5.0,
        snmp_community: str = "public",
        snmp_timeout: float = 5.0,
        ipp_timeout: float = 3.0,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._ping_timeout = ping_timeout
        self._port_timeout = port_timeout
        self._snmp_community = snmp_community
        self._snmp_timeout = snmp_timeout
        self._ipp_timeout = ipp_timeout

    async def ping(self, ip: str) -> PingResult:
        try:
            result = await self._runner.run(
                "ping",
                "-c",
                "1",
                "-W",
                str(self._ping_timeout),
                ip,
                timeout=self._ping_timeout + 3,
            )
        except ExternalToolError as exc:
            return PingResult(success=False, output=exc.message)
        if result.ok:
            return PingResult(success=True, output=result.stdout)
        return PingResult(success=False, output=result.describe())

    async def port_open(
        self, ip: str, port: int, timeout: Optional[float] = None
    ) -> bool:
        """Attempt a TCP connect; never raises."""
        limit = self._port_timeout if timeout is None else timeout
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip, port), timeout=limit
            )
        except asyncio.TimeoutError:
            LOGGER.debug("Timeout connecting to %s:%s", ip, port)
            return False
        except OSError as exc:
            LOGGER.debug("Error connecting to %s:%s: %s", ip, port, exc)
            return False

        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def device_status(self, ip: str) -> DeviceStatus:
        """Query hrDeviceStatus over SNMP, falling back to the raw print port."""
        try:
            result = await self._runner.run(
                "snmpget",
                "-v",
                "1",
                "-c",
                self._snmp_community,
                ip,
                HR_DEVICE_STATUS_OID,
                timeout=self._snmp_timeout,
                check=True,
            )
        except ExternalToolError as exc:
            online = await self.port_open(ip, 9100)
            return DeviceStatus(
                online=online,
                status=DeviceState.ONLINE if online else DeviceState.OFFLINE,
                error=exc.message,
            )

        match = _SNMP_STATE.search(result.stdout)
        if match is None:
            return DeviceStatus(online=True, status=DeviceState.UNKNOWN)
        state = DeviceState(match.group(1))
        return DeviceStatus(online=state is not DeviceState.DOWN, status=state)

    async def connectivity(
        self, ip: str, port: Optional[int], protocol: Optional[str] = None
    ) -> ConnectivityReport:
        """Run the ping, port and status probes for one device.

        The device counts as reachable when either the ping or the port probe
        succeeds; the status query only adds diagnostics.
        """
        target_port = port or default_port(protocol)
        ping, port_ok, status = await asyncio.gather(
            self.ping(ip),
            self.port_open(ip, target_port),
            self.device_status(ip),
        )
        report = ConnectivityReport(
            ping=ping.success,
            port_open=port_ok,
            status=status,
            details={"ip": ip, "port": target_port},
        )
        if not ping.success:
            report.details["ping_output"] = ping.output.strip()

        scheme = (protocol or "").lower()
        if scheme in ("ipp", "ipps") and port_ok:
            endpoint = await self.detect_ipp_endpoint(scheme, ip, target_port)
            if endpoint is not None:
                report.details["ipp"] = endpoint
        return report

    async def detect_ipp_endpoint(
        self, protocol: str, ip: str, port: Optional[int] = None
    ) -> Optional[str]:
        """Return the first common IPP path that answers below HTTP 500."""
        scheme = "https" if protocol == "ipps" else "http"
        target_port = port or 631
        timeout = aiohttp.ClientTimeout(total=self._ipp_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for path in IPP_COMMON_PATHS:
                url = f"{scheme}://{ip}:{target_port}{path}"
                try:
                    async with session.get(url, ssl=False) as response:
                        if response.status < 500:
                            LOGGER.debug("IPP endpoint %s answered %s", url, response.status)
                            return path or "/"
                except (aiohttp.ClientError, asyncio.TimeoutError):
                    continue
        return None
