"""Shared concurrency primitives for the embedding pipeline.

**throttled_gather** is a drop-in replacement for ``asyncio.gather`` that
wraps each awaitable in a semaphore acquire/release.  The embedding pipeline
uses it to run one batch of ``burst_size`` provider calls at a time.

**CancelToken** is the cooperative cancellation handle that callers pass into
long-running operations; the pipeline checks it at every batch boundary.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with optional semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore bounding how many awaitables run at once.  When
        ``None`` every awaitable is started immediately.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        return await asyncio.gather(*coros, return_exceptions=return_exceptions)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a pipeline run.

    Backed by an :class:`asyncio.Event` so callers can also ``await``
    :meth:`wait` to react when another task cancels.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request cancellation.  Idempotent; the first reason is kept."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    async def wait(self) -> None:
        """Block until :meth:`cancel` is called."""
        await self._event.wait()
