import asyncio
from typing import Any, AsyncGenerator

# Marks exhaustion of the source inside a pending fetch task.
_END = object()


class Subscription:
    """
    Cancellable handle over a stream of full snapshots of one store path.

    Every item is the complete current value at ``path``, never a delta, so
    consumers re-render from the latest item.  Iteration ends when the
    underlying stream closes or after ``cancel()``::

        async with await selector.subscribe("comments") as sub:
            async for snapshot in sub:
                ...

    Each fetch from the source runs as its own task, so ``cancel()`` may be
    called from another task while a consumer is waiting: the pending fetch
    is cancelled (closing the source and its connection) and the waiting
    consumer sees the end of iteration.
    """

    def __init__(self, source: AsyncGenerator[Any, None], path: str) -> None:
        self.path = path
        self._source = source
        self._cancelled = False
        self._pending: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __aiter__(self) -> "Subscription":
        return self

    async def _fetch(self) -> Any:
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            return _END

    async def __anext__(self) -> Any:
        if self._cancelled:
            raise StopAsyncIteration

        self._pending = asyncio.create_task(self._fetch())
        try:
            item = await self._pending
        except asyncio.CancelledError:
            if self._cancelled:
                raise StopAsyncIteration
            raise
        finally:
            self._pending = None

        if self._cancelled or item is _END:
            raise StopAsyncIteration
        return item

    async def cancel(self) -> None:
        """Stop delivery and release the underlying connection."""
        if self._cancelled:
            return
        self._cancelled = True

        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            # asyncio.wait never raises the task's outcome into this caller.
            await asyncio.wait({pending})
        await self._source.aclose()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()
