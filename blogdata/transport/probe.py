import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """
    One-shot reachability test against the direct store endpoint.

    A shallow read of the store root is issued under an explicit timeout.
    The store counts as reachable only when it answers with a 2xx status
    and a body that parses as JSON before the timeout; anything else
    (timeout, network error, non-2xx, garbage body) counts as unreachable.
    The first result is cached for the lifetime of the probe.
    """

    def __init__(self, client: httpx.AsyncClient, store_url: str, timeout_ms: int, auth: str = "") -> None:
        self._client = client
        self._store_url = store_url.rstrip("/")
        self._timeout_ms = timeout_ms
        self._auth = auth
        self._result: bool | None = None

    @property
    def result(self) -> bool | None:
        """Cached outcome, or None before the first ``check()``."""
        return self._result

    async def check(self) -> bool:
        if self._result is None:
            self._result = await self._probe()
        return self._result

    async def _probe(self) -> bool:
        url = f"{self._store_url}/.json"
        params = {"shallow": "true"}
        if self._auth:
            params["auth"] = self._auth

        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params),
                timeout=self._timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning("Store probe timed out after %d ms", self._timeout_ms)
            return False
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Store probe failed: %s", exc)
            return False

        if not response.is_success:
            logger.warning("Store probe returned HTTP %d", response.status_code)
            return False
        try:
            response.json()
        except ValueError:
            logger.warning("Store probe returned a non-JSON body")
            return False
        return True
