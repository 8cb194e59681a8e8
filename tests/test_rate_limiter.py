"""
Rate limiter tests: sliding window, block escalation, persistence and
the per-name critical section around check-then-record.
"""
import asyncio

import pytest
from sqlalchemy import select

from blogdata.errors import RateLimitError
from blogdata.models import RateLimitRecord
from blogdata.rate_limiter import RateLimiter, RateLimiterRegistry, with_rate_limit
from blogdata.schemas import RateLimitRule
from tests.conftest import FakeClock, async_session_test

COMMENT_RULE = RateLimitRule(max_requests=3, window_ms=60_000, block_duration=300_000)


def _limiter(clock: FakeClock, rule: RateLimitRule = COMMENT_RULE, name: str = "comment") -> RateLimiter:
    return RateLimiter(name, rule, session_factory=async_session_test, clock=clock)


# ---------------------------------------------------------------------------
# Window and block
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fourth_comment_in_a_minute_is_blocked(clock: FakeClock):
    """Calls 1-3 succeed; call 4 is refused with retry_after = 300."""
    limiter = _limiter(clock)

    for _ in range(3):
        result = await limiter.try_acquire()
        assert result.allowed is True
        clock.advance(1_000)

    result = await limiter.try_acquire()
    assert result.allowed is False
    assert result.retry_after == 300
    assert "300" in result.message


@pytest.mark.asyncio
async def test_blocked_check_reports_remaining_time(clock: FakeClock):
    limiter = _limiter(clock)
    for _ in range(4):
        await limiter.try_acquire()

    clock.advance(100_500)
    result = await limiter.check()
    assert result.allowed is False
    # ceil((300000 - 100500) / 1000)
    assert result.retry_after == 200
    assert await limiter.is_blocked() is True
    assert await limiter.blocked_time_remaining() == 200


@pytest.mark.asyncio
async def test_allowed_again_after_block_expires(clock: FakeClock):
    limiter = _limiter(clock)
    for _ in range(4):
        await limiter.try_acquire()

    clock.advance(300_000)
    result = await limiter.check()
    assert result.allowed is True

    state = await limiter.get_state()
    assert state.requests == []
    assert state.blocked_until is None
    assert await limiter.is_blocked() is False


@pytest.mark.asyncio
async def test_window_slides(clock: FakeClock):
    """Old requests fall out of the window and free up capacity."""
    limiter = _limiter(clock)
    first = clock.now
    await limiter.try_acquire()
    clock.advance(30_000)
    await limiter.try_acquire()
    await limiter.try_acquire()

    # First request is now 60001 ms old and no longer counts.
    clock.advance(30_001)
    result = await limiter.try_acquire()
    assert result.allowed is True

    state = await limiter.get_state()
    assert len(state.requests) == 3
    assert all(ts >= clock.now - COMMENT_RULE.window_ms for ts in state.requests)
    assert first not in state.requests


@pytest.mark.asyncio
async def test_check_does_not_record(clock: FakeClock):
    limiter = _limiter(clock)
    for _ in range(10):
        assert (await limiter.check()).allowed is True
    assert (await limiter.get_state()).requests == []


@pytest.mark.asyncio
async def test_reset_clears_block(clock: FakeClock):
    limiter = _limiter(clock)
    for _ in range(4):
        await limiter.try_acquire()

    await limiter.reset()

    state = await limiter.get_state()
    assert state.requests == []
    assert state.blocked_until is None
    assert (await limiter.try_acquire()).allowed is True


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_state_is_persisted_under_prefixed_key(clock: FakeClock):
    limiter = _limiter(clock)
    await limiter.try_acquire()

    async with async_session_test() as session:
        rows = (await session.execute(select(RateLimitRecord))).scalars().all()
    assert [row.key for row in rows] == ["rate_limit_comment"]
    assert rows[0].requests == [clock.now]
    assert rows[0].blocked_until is None


@pytest.mark.asyncio
async def test_state_survives_a_new_limiter_instance(clock: FakeClock):
    for _ in range(4):
        await _limiter(clock).try_acquire()

    fresh = _limiter(clock)
    result = await fresh.check()
    assert result.allowed is False
    assert result.retry_after == 300


@pytest.mark.asyncio
async def test_actions_are_independent(clock: FakeClock):
    comment = _limiter(clock)
    login = _limiter(clock, name="login")
    for _ in range(4):
        await comment.try_acquire()

    assert (await login.try_acquire()).allowed is True


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_try_acquire_admits_exactly_max(limiters: RateLimiterRegistry):
    limiter = limiters.get("comment")
    results = await asyncio.gather(*(limiter.try_acquire() for _ in range(10)))
    assert sum(r.allowed for r in results) == 3


@pytest.mark.asyncio
async def test_registry_shares_one_limiter_per_name(limiters: RateLimiterRegistry):
    assert limiters.get("comment") is limiters.get("comment")
    a, b = limiters.get("comment"), limiters.get("comment")
    results = await asyncio.gather(*(x.try_acquire() for x in (a, b) * 3))
    assert sum(r.allowed for r in results) == 3


# ---------------------------------------------------------------------------
# Registry defaults
# ---------------------------------------------------------------------------

def test_registry_default_rules(limiters: RateLimiterRegistry):
    assert limiters.rule_for("comment") == RateLimitRule(max_requests=3, window_ms=60_000, block_duration=300_000)
    assert limiters.rule_for("login") == RateLimitRule(max_requests=5, window_ms=60_000, block_duration=600_000)
    assert limiters.rule_for("articlePublish") == RateLimitRule(
        max_requests=10, window_ms=3_600_000, block_duration=1_800_000
    )
    assert limiters.rule_for("upload") == RateLimitRule(max_requests=20, window_ms=60_000, block_duration=300_000)
    assert limiters.rule_for("unknown") == RateLimitRule(max_requests=5, window_ms=60_000, block_duration=300_000)


@pytest.mark.asyncio
async def test_registry_create_custom_rule(limiters: RateLimiterRegistry):
    limiter = limiters.create("vote", RateLimitRule(max_requests=1, window_ms=1_000, block_duration=2_000))
    assert limiters.get("vote") is limiter
    assert (await limiter.try_acquire()).allowed is True
    result = await limiter.try_acquire()
    assert result.allowed is False
    assert result.retry_after == 2


# ---------------------------------------------------------------------------
# Decorator / acquire
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_with_rate_limit_blocks_wrapped_call(limiters: RateLimiterRegistry):
    calls = []
    blocked = []

    @with_rate_limit(limiters.get("login"), on_blocked=blocked.append)
    async def login(email: str) -> str:
        calls.append(email)
        return "token"

    for _ in range(5):
        assert await login("a@example.com") == "token"

    with pytest.raises(RateLimitError) as exc_info:
        await login("a@example.com")

    assert exc_info.value.action == "login"
    assert exc_info.value.retry_after == 600
    assert len(calls) == 5
    assert len(blocked) == 1 and blocked[0].allowed is False


@pytest.mark.asyncio
async def test_acquire_raises_when_blocked(clock: FakeClock):
    limiter = _limiter(clock)
    for _ in range(3):
        await limiter.acquire()
    with pytest.raises(RateLimitError, match="retry in 300 seconds"):
        await limiter.acquire()
