"""CUPS spooler gateway built on the ``lpadmin`` family of tools."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from .. import constants
from ..core.models import DiscoveredDevice, PrinterSpec, SpoolerResult
from ..core.utils import build_printer_uri
from ..errors import ExternalToolError, ValidationError
from .process import CommandRunner

LOGGER = logging.getLogger(__name__)

_REQUEST_ID = re.compile(r"request id is (\S+)")
_DEVICE_LINE = re.compile(r"^(\S+)\s+(\S+)")
_ABSENT_MARKERS = ("does not exist", "not found", "unknown printer", "no such")
_NO_DESTINATIONS = "no destinations added"


class CupsGateway:
    """SpoolerGateway implementation for CUPS.

    Provisioning always recreates the queue: an existing queue with the same
    name is removed first, then added with the derived URI and driver, marked
    shared, enabled and set to accept jobs.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        *,
        default_driver: str = constants.DEFAULT_DRIVER,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._default_driver = default_driver

    async def provision(self, spec: PrinterSpec) -> SpoolerResult:
        name = spec.name
        try:
            if not name:
                raise ValidationError("Queue name is required", step="provision")
            uri = spec.uri or build_printer_uri(spec.protocol, spec.ip_address, spec.port)

            removal = await self._runner.run("lpadmin", "-x", name)
            if removal.ok:
                LOGGER.info("Removed queue %s for reconfiguration", name)
            else:
                LOGGER.debug("Queue %s did not exist previously", name)

            model = await self._resolve_driver(spec.driver or self._default_driver)
            command = ["lpadmin", "-p", name, "-E", "-v", uri, "-m", model]
            if spec.description:
                command += ["-D", spec.description]
            if spec.location:
                command += ["-L", spec.location]
            command += ["-o", "printer-is-shared=true"]

            LOGGER.info("Provisioning queue %s -> %s (model %s)", name, uri, model)
            await self._runner.run(*command, check=True)
            await self._runner.run("cupsenable", name, check=True)
            await self._runner.run("cupsaccept", name, check=True)
        except (ExternalToolError, ValidationError) as exc:
            LOGGER.error("Failed to provision queue %s: %s", name, exc.message)
            return SpoolerResult(
                success=False,
                message=f"Failed to configure printer in CUPS: {exc.message}",
            )

        return SpoolerResult(success=True, message="Printer configured in CUPS")

    async def remove(self, name: str) -> SpoolerResult:
        try:
            result = await self._runner.run("lpadmin", "-x", name)
        except ExternalToolError as exc:
            LOGGER.error("Failed to remove queue %s: %s", name, exc.message)
            return SpoolerResult(
                success=False,
                message=f"Failed to remove printer from CUPS: {exc.message}",
            )

        if result.ok:
            return SpoolerResult(success=True, message="Printer removed from CUPS")

        reason = result.describe()
        if any(marker in reason.lower() for marker in _ABSENT_MARKERS):
            LOGGER.debug("Queue %s already absent", name)
            return SpoolerResult(success=True, message="Printer already absent from CUPS")

        LOGGER.error("Failed to remove queue %s: %s", name, reason)
        return SpoolerResult(
            success=False, message=f"Failed to remove printer from CUPS: {reason}"
        )

    async def list_drivers(self) -> List[str]:
        try:
            result = await self._runner.run("lpinfo", "-m", check=True)
        except ExternalToolError as exc:
            LOGGER.error("Failed to list CUPS drivers: %s", exc.message)
            return []
        drivers = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if parts:
                drivers.append(parts[0])
        return drivers

    async def discover(self) -> List[DiscoveredDevice]:
        try:
            result = await self._runner.run("lpinfo", "-v", check=True)
        except ExternalToolError as exc:
            LOGGER.error("Printer discovery failed: %s", exc.message)
            return []
        devices = []
        for line in result.stdout.splitlines():
            match = _DEVICE_LINE.match(line.strip())
            if match:
                devices.append(DiscoveredDevice(type=match.group(1), uri=match.group(2)))
        return devices

    async def list_queues(self) -> Optional[List[str]]:
        """Names of the configured queues, or None when CUPS cannot be asked."""
        try:
            result = await self._runner.run("lpstat", "-a")
        except ExternalToolError as exc:
            LOGGER.error("Failed to list CUPS queues: %s", exc.message)
            return None
        if not result.ok:
            # lpstat also exits non-zero when no destinations exist.
            if _NO_DESTINATIONS in result.describe().lower():
                return []
            LOGGER.error("Failed to list CUPS queues: %s", result.describe())
            return None
        return [line.split()[0] for line in result.stdout.splitlines() if line.strip()]

    async def submit(self, queue: str, path: Union[str, Path]) -> str:
        result = await self._runner.run("lp", "-d", queue, str(path))
        if not result.ok:
            raise ExternalToolError(
                f"lp rejected {path} for {queue}: {result.describe()}",
                step="submit",
                command=result.args,
                returncode=result.returncode,
            )
        match = _REQUEST_ID.search(result.stdout)
        request_id = match.group(1) if match else result.stdout.strip()
        LOGGER.info("Submitted %s to %s (%s)", path, queue, request_id)
        return request_id

    async def _resolve_driver(self, driver: Optional[str]) -> str:
        """Map a driver hint to a CUPS model, falling back to raw."""
        if not driver or driver.lower() == constants.DEFAULT_DRIVER:
            return constants.RAW_DRIVER

        try:
            result = await self._runner.run("lpinfo", "-m")
        except ExternalToolError as exc:
            LOGGER.warning("Driver lookup failed, using raw: %s", exc.message)
            return constants.RAW_DRIVER

        if result.ok:
            needle = driver.lower()
            for line in result.stdout.splitlines():
                parts = line.split()
                if parts and needle in line.lower():
                    return parts[0]

        LOGGER.info("No CUPS model matches driver %r; using raw", driver)
        return constants.RAW_DRIVER
