"""Webhook action — sends event JSON to an HTTP endpoint.

Body: ``{"path": ..., "event": ..., "time": <RFC3339>}``
"""

from __future__ import annotations

import asyncio
import json
import logging

import aiohttp

from ..config import DEFAULT_WEBHOOK_TIMEOUT
from ..exceptions import TransportError
from ..template import rfc3339_now
from ..watcher.events import Event
from .base import Action

logger = logging.getLogger("watchrun")


class WebhookAction(Action):
    """Send one HTTP request per event.

    Any response counts as delivered; HTTP error statuses are logged but not
    raised. Only failures to get a response at all raise TransportError.
    """

    kind = "webhook"

    def __init__(
        self,
        url: str,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_WEBHOOK_TIMEOUT,
        *,
        dry_run: bool = False,
    ):
        super().__init__(dry_run=dry_run)
        self._url = url
        self._method = method.upper() or "POST"
        self._headers = dict(headers or {})
        self._timeout = timeout or DEFAULT_WEBHOOK_TIMEOUT
        self._session: aiohttp.ClientSession | None = None

    @property
    def url(self) -> str:
        return self._url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _build_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if not any(key.lower() == "content-type" for key in headers):
            headers["Content-Type"] = "application/json"
        return headers

    @staticmethod
    def build_payload(event: Event) -> dict:
        return {
            "path": event.path,
            "event": str(event.type),
            "time": rfc3339_now(),
        }

    async def execute(self, event: Event) -> None:
        payload = self.build_payload(event)
        if self._dry_run:
            logger.info(f"Dry run, not sending {self._method} {self._url}")
            return

        session = self._get_session()
        try:
            async with session.request(
                self._method,
                self._url,
                data=json.dumps(payload),
                headers=self._build_headers(),
            ) as resp:
                status = resp.status
                await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            reason = str(e) or type(e).__name__
            raise TransportError(f"{self._method} {self._url} failed: {reason}") from e

        if status >= 400:
            logger.warning(f"Webhook answered HTTP {status}: {self._method} {self._url}")
        else:
            logger.info(f"Webhook sent: {event.type} {event.path} → {self._url}")

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
