"""
Direct access to the backing store's REST interface.

Reads and writes are plain requests against ``<store>/<path>.json``.
Subscriptions use the store's event-stream protocol: the server sends
``put`` and ``patch`` events whose data is ``{"path": ..., "data": ...}``
relative to the subscribed location.  Events are folded into a local
snapshot and the whole snapshot is handed to the consumer after each one.
"""
import copy
import json
import logging
from typing import Any, AsyncGenerator

import httpx

from blogdata.errors import TransportError
from blogdata.transport.http import HttpTransport, normalise_path
from blogdata.transport.subscription import Subscription

logger = logging.getLogger(__name__)


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def apply_put(snapshot: Any, path: str, data: Any) -> Any:
    """Return *snapshot* with the value at *path* replaced by *data* (None removes it)."""
    parts = _segments(path)
    if not parts:
        return data

    root = snapshot if isinstance(snapshot, dict) else {}
    node = root
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child

    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = data
    return root


def apply_patch(snapshot: Any, path: str, data: dict[str, Any] | None) -> Any:
    """Merge each child of *data* into *snapshot* under *path*."""
    base = path.rstrip("/")
    for key, value in (data or {}).items():
        snapshot = apply_put(snapshot, f"{base}/{key}", value)
    return snapshot


class DirectTransport(HttpTransport):
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        auth: str = "",
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client, base_url)
        self._auth = auth
        self._timeout = timeout

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}.json"

    def default_params(self) -> dict[str, str]:
        return {"auth": self._auth} if self._auth else {}

    def subscribe(self, path: str) -> Subscription:
        path = normalise_path(path)
        return Subscription(self._stream(path), path)

    async def _stream(self, path: str) -> AsyncGenerator[Any, None]:
        url = self.url_for(path)
        snapshot: Any = None
        event: str | None = None
        data_lines: list[str] = []

        try:
            async with self._client.stream(
                "GET",
                url,
                params=self.default_params() or None,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        f"Subscription to /{path} returned HTTP {response.status_code}",
                        status_code=response.status_code,
                        path=path,
                    )
                logger.info("Subscribed to /%s (direct)", path)

                async for line in response.aiter_lines():
                    if line:
                        if line.startswith(":"):
                            continue
                        field, _, value = line.partition(":")
                        if value.startswith(" "):
                            value = value[1:]
                        if field == "event":
                            event = value
                        elif field == "data":
                            data_lines.append(value)
                        continue

                    # A blank line dispatches the pending event.
                    if event is not None:
                        snapshot, changed = self._apply(path, event, "\n".join(data_lines), snapshot)
                        if changed:
                            yield copy.deepcopy(snapshot)
                    event, data_lines = None, []

                if event is not None:
                    snapshot, changed = self._apply(path, event, "\n".join(data_lines), snapshot)
                    if changed:
                        yield copy.deepcopy(snapshot)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Subscription to /%s failed: %s", path, exc)
            raise TransportError(f"Subscription to /{path} failed: {exc}", path=path) from exc

        logger.info("Subscription to /%s closed by the store", path)

    def _apply(self, path: str, event: str, raw: str, snapshot: Any) -> tuple[Any, bool]:
        if event in ("cancel", "auth_revoked"):
            raise TransportError(f"Subscription to /{path} ended by the store: {event}", path=path)
        if event not in ("put", "patch"):
            # keep-alive and unknown events carry no state.
            return snapshot, False

        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise TransportError(f"Malformed {event} event on /{path}", path=path) from exc
        if not isinstance(payload, dict) or "path" not in payload:
            raise TransportError(f"Malformed {event} event on /{path}", path=path)

        if event == "put":
            return apply_put(snapshot, payload["path"], payload.get("data")), True
        return apply_patch(snapshot, payload["path"], payload.get("data")), True
