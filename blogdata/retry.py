"""
Opt-in helpers for callers that want bounded waits or repeated attempts.

The transports never retry on their own; wrapping an operation is always
the caller's decision.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from blogdata.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (TransportError,),
) -> T:
    """
    Await ``fn()`` up to *attempts* times, sleeping *delay* seconds between
    failures.  The last error is re-raised once every attempt has failed;
    errors outside *retry_on* propagate immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    def log_failure(state: RetryCallState) -> None:
        logger.warning(
            "Attempt %d/%d failed: %s", state.attempt_number, attempts, state.outcome.exception()
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=log_failure,
        reraise=True,
    )
    return await retrying(fn)


async def with_timeout(awaitable: Awaitable[T], seconds: float, message: str = "Operation timed out") -> T:
    """Bound *awaitable* by *seconds*; expiry is reported as a TransportError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise TransportError(message) from exc
