"""
Access to the store through the stateless HTTP relay.

The relay appends the ``.json`` suffix itself, so paths are sent bare.
It has no push channel: subscriptions poll the path at a fixed interval
and deliver every successful read as a full snapshot.
"""
import asyncio
import logging
from typing import Any, AsyncGenerator

import httpx

from blogdata.errors import ProbeError, TransportError
from blogdata.transport.http import HttpTransport, normalise_path
from blogdata.transport.subscription import Subscription

logger = logging.getLogger(__name__)


class ProxyTransport(HttpTransport):
    def __init__(self, client: httpx.AsyncClient, base_url: str, poll_interval: float = 30.0) -> None:
        super().__init__(client, base_url)
        self._poll_interval = poll_interval

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def health(self) -> dict:
        """Query the relay's health endpoint; any failure raises ``ProbeError``."""
        try:
            response = await self._client.get(f"{self.base_url}/health")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ProbeError(f"Relay health check failed: {exc}") from exc
        if not response.is_success:
            raise ProbeError(f"Relay health check returned HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise ProbeError("Relay health check returned invalid JSON") from exc
        if not isinstance(body, dict) or body.get("status") != "ok":
            raise ProbeError(f"Relay reported unhealthy status: {body!r}")
        return body

    def subscribe(self, path: str) -> Subscription:
        path = normalise_path(path)
        return Subscription(self._poll(path), path)

    async def _poll(self, path: str) -> AsyncGenerator[Any, None]:
        logger.info("Subscribed to /%s (polling every %ss)", path, self._poll_interval)
        while True:
            try:
                snapshot = await self.get(path)
            except TransportError as exc:
                logger.warning("Polling /%s failed: %s", path, exc)
            else:
                yield snapshot
            await asyncio.sleep(self._poll_interval)
