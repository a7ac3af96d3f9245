"""Tests for the token bucket rate limiter."""

from unittest.mock import AsyncMock

import pytest

from petal.infrastructure.rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
    get_spotify_limiter,
    reset_spotify_limiter,
)


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    @pytest.fixture
    def clock(self) -> FakeMonotonic:
        return FakeMonotonic()

    @pytest.fixture
    def sleep(self, mocker) -> AsyncMock:
        return mocker.patch(
            "petal.infrastructure.rate_limiter.asyncio.sleep", new_callable=AsyncMock
        )

    async def test_burst_then_wait(self, clock, sleep):
        limiter = RateLimiter(
            config=RateLimiterConfig(max_tokens=2, refill_rate=1.0), clock=clock
        )

        await limiter.acquire()
        await limiter.acquire()
        sleep.assert_not_awaited()

        # Bucket empty: the sleep "advances time" so the next loop finds a token
        async def advance(seconds: float) -> None:
            clock.now += seconds

        sleep.side_effect = advance
        await limiter.acquire()

        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == pytest.approx(1.0)

    async def test_refill_capped_at_max_tokens(self, clock):
        limiter = RateLimiter(config=RateLimiterConfig(max_tokens=3, refill_rate=10.0), clock=clock)
        clock.now += 60
        assert limiter.available_tokens == 3

    async def test_retry_after_honoured(self, clock, sleep):
        limiter = RateLimiter(clock=clock)

        waited = await limiter.handle_rate_limit_response(retry_after=7)

        assert waited == 7
        sleep.assert_awaited_once_with(7.0)
        assert limiter.available_tokens == 0

    async def test_retry_after_capped(self, clock, sleep):
        limiter = RateLimiter(
            config=RateLimiterConfig(max_backoff_seconds=30.0), clock=clock
        )

        waited = await limiter.handle_rate_limit_response(retry_after=3600)

        assert waited == 30.0

    async def test_exponential_backoff_without_retry_after(self, clock, sleep):
        limiter = RateLimiter(clock=clock)

        first = await limiter.handle_rate_limit_response()
        second = await limiter.handle_rate_limit_response()

        assert (first, second) == (1.0, 2.0)
        assert limiter.current_backoff == 4.0

    async def test_reset_backoff(self, clock, sleep):
        limiter = RateLimiter(clock=clock)
        await limiter.handle_rate_limit_response()
        await limiter.handle_rate_limit_response()

        limiter.reset_backoff()

        assert limiter.current_backoff == 1.0

    async def test_leaving_block_keeps_backoff(self, clock, sleep):
        # A 429 response leaves the block without an exception, so exiting must not
        # reset the backoff the next handle_rate_limit_response() is about to read.
        limiter = RateLimiter(clock=clock)
        await limiter.handle_rate_limit_response()
        clock.now += 10

        async with limiter:
            pass

        assert limiter.current_backoff == 2.0


def test_spotify_limiter_is_shared():
    first = get_spotify_limiter()
    assert get_spotify_limiter() is first
    assert first.name == "spotify"

    reset_spotify_limiter()
    assert get_spotify_limiter() is not first
