"""Shared concurrency primitives for the ingestion pipeline.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a semaphore acquire/release.  Used to embed chunk batches without
   flooding the embedding provider.

2. **TokenBucket** -- a start-rate limiter.  The job queue acquires one
   token before starting each job so that no more than ``capacity`` jobs
   start within any ``period`` seconds window.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

import structlog

from bookmind.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables execute at once.
    return_exceptions:
        Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class TokenBucket:
    """Token-bucket limiter refilled continuously at ``capacity / period``.

    The bucket starts full, so the first ``capacity`` acquisitions return
    immediately; after that callers wait for the next token to accrue.
    """

    def __init__(
        self,
        capacity: int,
        period: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0 or period <= 0:
            raise ValueError("capacity and period must be positive")
        self._capacity = float(capacity)
        self._rate = capacity / period
        self._tokens = float(capacity)
        self._clock = clock
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return int(self._capacity)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated_at = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> None:
        """Wait until a token is available, then take it."""
        async with self._lock:
            while not self.try_acquire():
                wait_for = (1.0 - self._tokens) / self._rate
                _logger.debug("rate_limit_wait", seconds=round(wait_for, 3))
                await asyncio.sleep(wait_for)
