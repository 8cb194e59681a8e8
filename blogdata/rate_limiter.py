"""
Sliding-window rate limiter with block escalation.

Each named action keeps a list of request timestamps (epoch milliseconds)
and an optional ``blocked_until`` in the local state database under the
key ``rate_limit_<name>``.  Once an action exceeds ``max_requests`` within
``window_ms`` it is blocked for ``block_duration`` milliseconds.

This is an advisory, client-side speed bump rather than a security
boundary.  ``try_acquire`` holds a per-name ``asyncio.Lock`` across the
check and the record so two concurrent callers can never both be admitted
as the last allowed request.
"""
import asyncio
import functools
import logging
import math
import time
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blogdata.config import settings
from blogdata.database import async_session
from blogdata.errors import RateLimitError
from blogdata.models import RateLimitRecord
from blogdata.schemas import CheckResult, RateLimitRule, RateLimitState

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "rate_limit_"


def now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(
        self,
        name: str,
        rule: RateLimitRule,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        clock: Callable[[], int] = now_ms,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.name = name
        self.rule = rule
        self._session_factory = session_factory
        self._clock = clock
        self._lock = lock or asyncio.Lock()

    @property
    def storage_key(self) -> str:
        return STORAGE_PREFIX + self.name

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def get_state(self) -> RateLimitState:
        """Return the persisted state, or an empty one when nothing is stored."""
        async with self._session_factory() as session:
            record = await session.get(RateLimitRecord, self.storage_key)
            if record is None:
                return RateLimitState()
            return RateLimitState(requests=list(record.requests or []), blocked_until=record.blocked_until)

    async def _save_state(self, state: RateLimitState) -> None:
        async with self._session_factory() as session:
            record = await session.get(RateLimitRecord, self.storage_key)
            if record is None:
                record = RateLimitRecord(key=self.storage_key)
                session.add(record)
            # Assign a fresh list so the JSON column is flagged dirty.
            record.requests = list(state.requests)
            record.blocked_until = state.blocked_until
            await session.commit()

    def _purge(self, requests: list[int], now: int) -> list[int]:
        window_start = now - self.rule.window_ms
        return [ts for ts in requests if ts >= window_start]

    # ------------------------------------------------------------------
    # Unlocked primitives
    # ------------------------------------------------------------------

    def _blocked(self, retry_after: int) -> CheckResult:
        return CheckResult(
            allowed=False,
            retry_after=retry_after,
            message=f"Too many requests, retry in {retry_after} seconds",
        )

    async def _check(self) -> CheckResult:
        now = self._clock()
        state = await self.get_state()

        if state.blocked_until is not None and now < state.blocked_until:
            return self._blocked(math.ceil((state.blocked_until - now) / 1000))

        requests = self._purge(state.requests, now)

        if len(requests) >= self.rule.max_requests:
            blocked_until = now + self.rule.block_duration
            await self._save_state(RateLimitState(requests=requests, blocked_until=blocked_until))
            logger.warning(
                "Rate limit exceeded for %r: %d requests in %d ms, blocked for %d ms",
                self.name, len(requests), self.rule.window_ms, self.rule.block_duration,
            )
            return self._blocked(math.ceil(self.rule.block_duration / 1000))

        # An expired block is cleared along with the purge.
        await self._save_state(RateLimitState(requests=requests, blocked_until=None))
        return CheckResult(allowed=True)

    async def _record(self) -> None:
        now = self._clock()
        state = await self.get_state()
        requests = self._purge(state.requests, now)
        requests.append(now)
        blocked_until = state.blocked_until
        if blocked_until is not None and blocked_until <= now:
            blocked_until = None
        await self._save_state(RateLimitState(requests=requests, blocked_until=blocked_until))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check(self) -> CheckResult:
        """Report whether the action may run now without recording it."""
        async with self._lock:
            return await self._check()

    async def record(self) -> None:
        """Record one occurrence of the action at the current time."""
        async with self._lock:
            await self._record()

    async def try_acquire(self) -> CheckResult:
        """Check and, when allowed, record, as a single step for this name."""
        async with self._lock:
            result = await self._check()
            if result.allowed:
                await self._record()
            return result

    async def acquire(self) -> None:
        """Like ``try_acquire`` but raises ``RateLimitError`` when blocked."""
        result = await self.try_acquire()
        if not result.allowed:
            raise RateLimitError(self.name, result.retry_after or 0)

    async def reset(self) -> None:
        async with self._lock:
            await self._save_state(RateLimitState())

    async def is_blocked(self) -> bool:
        state = await self.get_state()
        return state.blocked_until is not None and self._clock() < state.blocked_until

    async def blocked_time_remaining(self) -> int:
        """Seconds until the current block expires, or 0 when not blocked."""
        state = await self.get_state()
        if state.blocked_until is None:
            return 0
        return max(0, math.ceil((state.blocked_until - self._clock()) / 1000))


class RateLimiterRegistry:
    """
    One ``RateLimiter`` per action name, created lazily.

    Limiters handed out for the same name share one instance (and so one
    lock).  Names without a configured rule use ``default_rule``.
    """

    def __init__(
        self,
        rules: dict[str, RateLimitRule] | None = None,
        default_rule: RateLimitRule | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._rules = dict(settings.RATE_LIMITS if rules is None else rules)
        self._default_rule = default_rule or settings.DEFAULT_RATE_LIMIT
        self._session_factory = session_factory
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}

    def rule_for(self, name: str) -> RateLimitRule:
        return self._rules.get(name, self._default_rule)

    def get(self, name: str) -> RateLimiter:
        limiter = self._limiters.get(name)
        if limiter is None:
            limiter = RateLimiter(name, self.rule_for(name), self._session_factory, self._clock)
            self._limiters[name] = limiter
        return limiter

    def create(self, name: str, rule: RateLimitRule) -> RateLimiter:
        """Register (or replace) the limiter for *name* with a custom rule."""
        self._rules[name] = rule
        previous = self._limiters.get(name)
        limiter = RateLimiter(
            name, rule, self._session_factory, self._clock,
            lock=previous._lock if previous else None,
        )
        self._limiters[name] = limiter
        return limiter


def with_rate_limit(limiter: RateLimiter, on_blocked: Callable[[CheckResult], None] | None = None):
    """
    Decorate an async callable so each call first passes ``limiter``.

    A blocked call invokes *on_blocked* (when given) and raises
    ``RateLimitError`` without running the wrapped function.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            result = await limiter.try_acquire()
            if not result.allowed:
                if on_blocked is not None:
                    on_blocked(result)
                raise RateLimitError(limiter.name, result.retry_after or 0)
            return await fn(*args, **kwargs)

        return wrapper

    return decorator
