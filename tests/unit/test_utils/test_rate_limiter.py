"""Unit tests for the token-bucket rate limiter"""

import pytest

from pretackler.models.config import RateLimitConfig
from pretackler.utils.rate_limiter import RateLimiter, TokenBucket


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestTokenBucket:
    def test_starts_full(self):
        bucket = TokenBucket(rate=2.0, capacity=2.0, clock=FakeClock())
        assert bucket.try_take(1) == 0.0
        assert bucket.try_take(1) == 0.0

    def test_returns_wait_when_empty(self):
        bucket = TokenBucket(rate=2.0, capacity=2.0, clock=FakeClock())
        bucket.try_take(2)
        assert bucket.try_take(1) == pytest.approx(0.5)

    def test_refills_with_elapsed_time(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=2.0, capacity=2.0, clock=clock)
        bucket.try_take(2)
        clock.advance(0.5)
        assert bucket.try_take(1) == 0.0

    def test_refill_capped_at_capacity(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=10.0, capacity=5.0, clock=clock)
        clock.advance(100)
        bucket._refill()
        assert bucket.tokens == 5.0

    def test_oversized_cost_admitted_when_full(self):
        """A request larger than the burst is admitted once, leaving a debt."""
        clock = FakeClock()
        bucket = TokenBucket(rate=100.0, capacity=100.0, clock=clock)
        assert bucket.try_take(250) == 0.0
        assert bucket.tokens == -150.0
        assert bucket.try_take(1) == pytest.approx(1.51)


class TestRateLimiter:
    def test_disabled_without_limits(self):
        limiter = RateLimiter.from_config(RateLimitConfig())
        assert not limiter.enabled

    @pytest.mark.asyncio
    async def test_disabled_acquire_is_free(self):
        limiter = RateLimiter()
        assert await limiter.acquire(10_000) == 0.0

    def test_from_config(self):
        limiter = RateLimiter.from_config(
            RateLimitConfig(requests_per_second=4, bytes_per_second=1000)
        )
        assert limiter.enabled
        assert limiter.request_bucket.rate == 4
        assert limiter.byte_bucket.capacity == 1000

    @pytest.mark.asyncio
    async def test_request_rate_enforced(self):
        clock = FakeClock()
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            clock.advance(seconds)

        limiter = RateLimiter(requests_per_second=1, clock=clock, sleep=fake_sleep)

        assert await limiter.acquire() == 0.0
        waited = await limiter.acquire()

        assert waited == pytest.approx(1.0)
        assert sleeps == [pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_byte_budget_enforced(self):
        clock = FakeClock()

        async def fake_sleep(seconds):
            clock.advance(seconds)

        limiter = RateLimiter(bytes_per_second=100, clock=clock, sleep=fake_sleep)

        assert await limiter.acquire(100) == 0.0
        assert await limiter.acquire(50) == pytest.approx(0.5)
