import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

from pretackler.models.config import RateLimitConfig

logger = structlog.get_logger()


class TokenBucket:
    """Token bucket refilled proportionally to elapsed time.

    A cost larger than the capacity is admitted once the bucket is full;
    the bucket then runs into debt so oversized requests cannot deadlock.
    """

    def __init__(
        self,
        rate: float,
        capacity: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate = float(rate)
        self.capacity = float(capacity)
        self.tokens = float(capacity)
        self._clock = clock
        self.last_update = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_update)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_update = now

    def try_take(self, cost: float) -> float:
        """Take cost tokens if available; otherwise return seconds to wait."""
        self._refill()
        needed = min(cost, self.capacity)
        if self.tokens >= needed:
            self.tokens -= cost
            return 0.0
        return (needed - self.tokens) / self.rate


class RateLimiter:
    """Request-rate and byte-rate admission control for workers.

    Both buckets are optional. Token bookkeeping happens under a short
    lock that is released before any sleep.
    """

    def __init__(
        self,
        requests_per_second: Optional[float] = None,
        bytes_per_second: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sleep = sleep
        self.request_bucket = (
            TokenBucket(requests_per_second, max(1.0, requests_per_second), clock)
            if requests_per_second
            else None
        )
        self.byte_bucket = (
            TokenBucket(bytes_per_second, bytes_per_second, clock)
            if bytes_per_second
            else None
        )
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimiter":
        return cls(
            requests_per_second=config.requests_per_second,
            bytes_per_second=config.bytes_per_second,
        )

    @property
    def enabled(self) -> bool:
        return self.request_bucket is not None or self.byte_bucket is not None

    async def acquire(self, nbytes: int = 0, requester_id: str = "worker") -> float:
        """Wait until one request token and nbytes byte tokens are granted.

        Returns:
            Total seconds spent waiting
        """
        if not self.enabled:
            return 0.0

        waited = 0.0
        request_granted = self.request_bucket is None
        bytes_granted = self.byte_bucket is None

        while True:
            async with self._lock:
                wait = 0.0
                if not request_granted:
                    wait = self.request_bucket.try_take(1)
                    request_granted = wait == 0.0
                if request_granted and not bytes_granted:
                    wait = self.byte_bucket.try_take(nbytes)
                    bytes_granted = wait == 0.0

            if request_granted and bytes_granted:
                break

            await self._sleep(wait)
            waited += wait

        if waited > 0:
            logger.debug(
                "rate_limit_wait",
                requester_id=requester_id,
                wait_seconds=round(waited, 3),
                nbytes=nbytes,
            )
        return waited
