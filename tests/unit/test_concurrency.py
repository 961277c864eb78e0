"""Unit tests for throttled_gather and TokenBucket."""

from __future__ import annotations

import asyncio

import pytest

from bookmind.utils.concurrency import TokenBucket, throttled_gather


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestThrottledGather:
    @pytest.mark.asyncio
    async def test_preserves_order(self) -> None:
        async def _value(v: int) -> int:
            await asyncio.sleep(0.001 * (5 - v))
            return v

        results = await throttled_gather([_value(i) for i in range(5)], asyncio.Semaphore(2))
        assert results == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_bounds_concurrency(self) -> None:
        running = 0
        peak = 0

        async def _work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.005)
            running -= 1

        await throttled_gather([_work() for _ in range(8)], asyncio.Semaphore(3))
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_return_exceptions(self) -> None:
        async def _fail() -> None:
            raise ValueError("bad")

        async def _ok() -> str:
            return "ok"

        results = await throttled_gather(
            [_ok(), _fail()], asyncio.Semaphore(1), return_exceptions=True
        )
        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)


class TestTokenBucket:
    def test_rejects_non_positive_arguments(self) -> None:
        with pytest.raises(ValueError):
            TokenBucket(0, 60.0)
        with pytest.raises(ValueError):
            TokenBucket(10, 0)

    def test_starts_full(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(3, 60.0, clock=clock)
        assert [bucket.try_acquire() for _ in range(4)] == [True, True, True, False]

    def test_refills_over_time(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(10, 60.0, clock=clock)
        for _ in range(10):
            assert bucket.try_acquire()
        assert bucket.try_acquire() is False

        clock.now = 6.5  # one token per 6 seconds
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_never_exceeds_capacity(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(2, 10.0, clock=clock)
        clock.now = 1000.0
        assert [bucket.try_acquire() for _ in range(3)] == [True, True, False]

    @pytest.mark.asyncio
    async def test_acquire_waits_for_refill(self) -> None:
        bucket = TokenBucket(1, 0.05)
        await bucket.acquire()
        loop = asyncio.get_running_loop()
        started = loop.time()
        await bucket.acquire()
        assert loop.time() - started >= 0.03
