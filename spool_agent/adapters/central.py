"""HTTP client for the central print-management service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.models import Job
from ..errors import TransientIOError

LOGGER = logging.getLogger(__name__)

# Rejection text the service returns when a job was reported before.
ALREADY_RECORDED_MARKERS = ("já está no banco de dados", "already in the database")


class CentralClient:
    """Fetches desired printer state and acknowledges printed jobs."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        *,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Central client not started. Call start() first.")
        return self._session

    async def fetch_printers(self) -> List[Dict[str, Any]]:
        """Return the desired printer list.

        Raises:
            TransientIOError: If the service is unreachable or answers with an
                error status.
        """
        session = self._require_session()
        url = f"{self.base_url}/desktop/printers"
        LOGGER.debug("Fetching desired printers from %s", url)
        try:
            async with session.get(url, headers=self._headers()) as response:
                if response.status != 200:
                    text = await response.text()
                    raise TransientIOError(
                        f"Printer list request failed with status {response.status}: {text}",
                        step="fetch-printers",
                    )
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientIOError(
                f"Printer list request failed: {exc}", step="fetch-printers"
            ) from exc

        data = payload.get("data") if isinstance(payload, dict) else payload
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    async def report_printed(self, job: Job) -> bool:
        """Report a printed job; True when the service holds the record.

        Raises:
            TransientIOError: On transport failure.
        """
        session = self._require_session()
        url = f"{self.base_url}/desktop/printedByUser"
        payload = {
            "fileId": job.id,
            "date": job.created_at.isoformat(),
            "assetId": job.asset_id,
            "pages": job.pages,
        }
        try:
            async with session.post(url, json=payload, headers=self._headers()) as response:
                if response.status == 200:
                    return True
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise TransientIOError(
                f"Print report for {job.id} failed: {exc}", step="report"
            ) from exc

        if _already_recorded(body):
            LOGGER.debug("Job %s was already recorded centrally", job.id)
            return True
        LOGGER.warning("Central service rejected job %s: %s", job.id, body)
        return False


def _already_recorded(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    for error in body.get("errors") or []:
        if not isinstance(error, dict):
            continue
        message = str(error.get("file", "")).lower()
        if any(marker in message for marker in ALREADY_RECORDED_MARKERS):
            return True
    return False
