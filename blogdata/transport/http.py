"""
Shared request shaping for both transports.

Both the direct store and the relay speak the same verb mapping
(GET read, PUT overwrite, POST push, PATCH partial update, DELETE remove);
they differ only in how a store path becomes a URL and in how
subscriptions are delivered.  Every httpx failure, non-2xx status and
unparseable body is translated into a single ``TransportError``.
"""
import logging
from typing import Any

import httpx

from blogdata.errors import TransportError

logger = logging.getLogger(__name__)

_NO_BODY = object()


def normalise_path(path: str) -> str:
    """Strip surrounding slashes so ``/comments/`` and ``comments`` match."""
    return path.strip("/")


class HttpTransport:
    """Base class; subclasses define ``url_for`` and ``subscribe``."""

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        raise NotImplementedError

    def default_params(self) -> dict[str, str]:
        return {}

    async def request(
        self,
        method: str,
        path: str,
        body: Any = _NO_BODY,
        params: dict[str, str] | None = None,
    ) -> Any:
        path = normalise_path(path)
        url = self.url_for(path)
        query = {**self.default_params(), **(params or {})}
        kwargs: dict[str, Any] = {"headers": {"Content-Type": "application/json"}}
        if query:
            kwargs["params"] = query
        if body is not _NO_BODY:
            kwargs["json"] = body

        try:
            response = await self._client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{method} /{path} failed: {exc}", path=path) from exc

        if not response.is_success:
            logger.error("%s %s returned HTTP %d", method, url, response.status_code)
            raise TransportError(
                f"{method} /{path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                path=path,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} /{path} returned invalid JSON", path=path) from exc

    # ------------------------------------------------------------------
    # Verb mapping
    # ------------------------------------------------------------------

    async def get(self, path: str, params: dict[str, str] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def set(self, path: str, value: Any) -> None:
        await self.request("PUT", path, body=value)

    async def push(self, path: str, value: Any) -> str:
        """Append *value* under a store-generated key and return that key."""
        result = await self.request("POST", path, body=value)
        if not isinstance(result, dict) or "name" not in result:
            raise TransportError(f"POST /{normalise_path(path)} did not return a key", path=path)
        return result["name"]

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        await self.request("PATCH", path, body=partial)

    async def delete(self, path: str) -> None:
        await self.request("DELETE", path)
