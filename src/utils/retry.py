"""Reusable retry policy with exponential backoff.

One :class:`RetryPolicy` object describes *how many* retries are allowed,
*how long* to wait before each one, and *which* errors are worth retrying.
The embedding pipeline consults it per chunk; the ingestion service wraps
vector-store writes with :meth:`RetryPolicy.run`.

Attempt numbering is zero-based: the first retry waits ``backoff(0)``,
the second ``backoff(1)`` and so on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from src.utils.errors import RateLimitError
from src.utils.logging import get_logger

_T = TypeVar("_T")

SleepFn = Callable[[float], Awaitable[None]]

_logger: structlog.BoundLogger = get_logger(__name__)


def exponential_backoff(initial_ms: float, multiplier: float) -> Callable[[int], float]:
    """Return a backoff function yielding ``initial_ms * multiplier**attempt`` in seconds."""

    def _backoff(attempt: int) -> float:
        return (initial_ms * (multiplier**attempt)) / 1000.0

    return _backoff


def is_rate_limited(exc: BaseException) -> bool:
    """Default retryable-error predicate: only provider throttling is retried."""
    return isinstance(exc, RateLimitError)


@dataclass(frozen=True)
class RetryPolicy:
    """Max retries, a backoff function and a retryable-error predicate.

    Parameters
    ----------
    max_retries:
        Number of retries allowed after the initial call.
    backoff:
        Maps a zero-based retry number to a delay in seconds.
    is_retryable:
        Returns ``True`` for exceptions that should be retried.  Anything
        else propagates on the first failure.
    """

    max_retries: int = 3
    backoff: Callable[[int], float] = field(default=exponential_backoff(2000, 2))
    is_retryable: Callable[[BaseException], bool] = field(default=is_rate_limited)

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """Return ``True`` if *exc* on retry number *attempt* may be retried."""
        return attempt < self.max_retries and self.is_retryable(exc)

    def delay_for(self, attempt: int) -> float:
        """Return the delay in seconds before retry number *attempt*."""
        return max(0.0, self.backoff(attempt))

    async def run(
        self,
        operation: Callable[[], Awaitable[_T]],
        *,
        sleep: SleepFn = asyncio.sleep,
        context: str = "operation",
    ) -> _T:
        """Await *operation* and retry it according to this policy.

        Non-retryable errors, and the last retryable one, are re-raised
        unchanged.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if not self.should_retry(exc, attempt):
                    raise
                delay = self.delay_for(attempt)
                _logger.info(
                    "retry_scheduled",
                    context=context,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay_s=round(delay, 3),
                    error=str(exc),
                )
                await sleep(delay)
                attempt += 1
