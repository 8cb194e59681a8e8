import json
import logging

import redis.asyncio as redis

from blogdata.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "relay:"


class RelayCache:
    """
    Short-lived read cache for the relay, backed by Redis.

    All public methods are safe to call even when Redis is unavailable:
    reads return None and writes are skipped, so the relay falls back to
    plain forwarding without raising to the request handler.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at relay startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Ping to surface mis-configuration early (non-fatal).
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, relay cache disabled: %s", exc)

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    @staticmethod
    def key_for(path: str, query: str) -> str:
        return f"{KEY_PREFIX}{path.strip('/')}?{query}"

    async def get(self, key: str) -> dict | None:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            return json.loads(data) if data is not None else None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: dict, ttl: int | None = None) -> None:
        """Failures are logged but never propagated; a cache write must not break a relay call."""
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def invalidate_all(self) -> None:
        """
        Drop every cached relay read.  Called after any successful write,
        since a write at one path changes reads at all of its ancestors.
        Uses SCAN rather than KEYS to avoid blocking Redis.
        """
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=f"{KEY_PREFIX}*"):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d relay key(s)", len(keys))
        except Exception as exc:
            logger.debug("Cache invalidation error: %s", exc)


# Module-level instance shared by all relay handlers.
cache = RelayCache()
