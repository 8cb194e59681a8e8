"""
Transport selection and routing.

Decision order for ``determine_mode``:

1. Proxying disabled  -> Direct, no network traffic.
2. Proxying forced    -> Proxy, the store is never probed.
3. Otherwise          -> probe the store; reachable means Direct, anything
   else means Proxy.

The decision is made once and cached for the life of the selector.  When
Proxy is chosen, a relay health check runs afterwards purely for the
logs; its outcome never changes the decision.  There is no re-probe
mid-session, only the explicit ``force_proxy()`` override.
"""
import asyncio
import logging
from typing import Any

import httpx

from blogdata.config import Settings, settings as default_settings
from blogdata.errors import ProbeError
from blogdata.schemas import TransportMode
from blogdata.transport.direct import DirectTransport
from blogdata.transport.http import HttpTransport
from blogdata.transport.probe import ConnectivityProbe
from blogdata.transport.proxy import ProxyTransport
from blogdata.transport.subscription import Subscription

logger = logging.getLogger(__name__)


class TransportSelector:
    def __init__(
        self,
        direct: DirectTransport,
        proxy: ProxyTransport,
        probe: ConnectivityProbe,
        proxy_enabled: bool = True,
        proxy_forced: bool = False,
    ) -> None:
        self._direct = direct
        self._proxy = proxy
        self._probe = probe
        self._proxy_enabled = proxy_enabled
        self._proxy_forced = proxy_forced
        self._mode: TransportMode | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        client: httpx.AsyncClient,
        settings: Settings = default_settings,
        proxy_client: httpx.AsyncClient | None = None,
    ) -> "TransportSelector":
        """Wire both transports and the probe from *settings*."""
        direct = DirectTransport(client, settings.STORE_URL, settings.STORE_AUTH, settings.REQUEST_TIMEOUT_S)
        proxy = ProxyTransport(proxy_client or client, settings.PROXY_URL, settings.POLL_INTERVAL_S)
        probe = ConnectivityProbe(client, settings.STORE_URL, settings.PROBE_TIMEOUT_MS, settings.STORE_AUTH)
        return cls(direct, proxy, probe, settings.PROXY_ENABLED, settings.PROXY_FORCED)

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    @property
    def mode(self) -> TransportMode | None:
        return self._mode

    @property
    def is_using_proxy(self) -> bool:
        return self._mode is TransportMode.PROXY

    async def determine_mode(self) -> TransportMode:
        if self._mode is not None:
            return self._mode

        async with self._lock:
            if self._mode is not None:
                return self._mode

            if not self._proxy_enabled:
                mode = TransportMode.DIRECT
            elif self._proxy_forced:
                mode = TransportMode.PROXY
            elif await self._probe.check():
                mode = TransportMode.DIRECT
            else:
                mode = TransportMode.PROXY

            self._mode = mode
            logger.info("Transport mode: %s", mode.value)

        if mode is TransportMode.PROXY:
            await self._diagnose_proxy()
        return mode

    def force_proxy(self) -> None:
        """Route every later operation through the relay."""
        self._mode = TransportMode.PROXY
        logger.info("Transport mode forced to proxy")

    async def _diagnose_proxy(self) -> None:
        try:
            await self._proxy.health()
        except ProbeError as exc:
            logger.warning("Proxy diagnostics: %s", exc)
        else:
            logger.info("Proxy diagnostics: relay is healthy")

    async def _transport(self) -> HttpTransport:
        mode = await self.determine_mode()
        return self._proxy if mode is TransportMode.PROXY else self._direct

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """One-shot read of the current value at *path*."""
        return await (await self._transport()).get(path, params)

    async def set(self, path: str, value: Any) -> None:
        await (await self._transport()).set(path, value)

    async def push(self, path: str, value: Any) -> str:
        """Append under a store-generated key; returns the key."""
        return await (await self._transport()).push(path, value)

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        await (await self._transport()).update(path, partial)

    async def delete(self, path: str) -> None:
        await (await self._transport()).delete(path)

    async def subscribe(self, path: str) -> Subscription:
        """Full-snapshot subscription: event stream when direct, polling through the relay."""
        transport = await self._transport()
        return transport.subscribe(path)
