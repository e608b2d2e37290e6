"""
Token-bucket rate limiting keyed by user.

Each key owns a bucket of ``capacity`` tokens that refills ``refill_rate``
tokens every ``interval`` seconds, continuously. A request takes
``requested`` tokens or is denied with the time at which enough tokens will
be back. Fully refilled buckets are swept out, at most once per
``interval``, so idle keys do not accumulate.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from welth.core.config import settings
from welth.core.exceptions import RateLimitedError


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds when the bucket can serve the request

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset_at - now))


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class TokenBucketRateLimiter:
    def __init__(
        self,
        capacity: int = 5,
        refill_rate: int = 5,
        interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        if capacity <= 0 or refill_rate <= 0 or interval <= 0:
            raise ValueError("capacity, refill_rate and interval must be positive")
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.interval = interval
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._last_sweep: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def _tokens_per_second(self) -> float:
        return self.refill_rate / self.interval

    def _refill(self, bucket: _Bucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self._tokens_per_second)
        bucket.updated_at = now

    def _sweep(self, now: float) -> None:
        # A refilled bucket behaves exactly like a missing one
        if self._last_sweep is not None and now - self._last_sweep < self.interval:
            return
        self._last_sweep = now
        for key in [
            key for key, bucket in self._buckets.items()
            if bucket.tokens + (now - bucket.updated_at) * self._tokens_per_second >= self.capacity
        ]:
            del self._buckets[key]

    async def protect(self, key: str, requested: int = 1) -> RateLimitDecision:
        if requested <= 0 or requested > self.capacity:
            raise ValueError(f"requested must be between 1 and {self.capacity}, got {requested}")

        async with self._lock:
            now = self._clock()
            self._sweep(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(tokens=self.capacity, updated_at=now)
            else:
                self._refill(bucket, now)

            if bucket.tokens >= requested:
                bucket.tokens -= requested
                return RateLimitDecision(
                    allowed=True,
                    remaining=int(bucket.tokens),
                    reset_at=now,
                )

            missing = requested - bucket.tokens
            return RateLimitDecision(
                allowed=False,
                remaining=int(bucket.tokens),
                reset_at=now + missing / self._tokens_per_second,
            )

    async def enforce(self, key: str, requested: int = 1) -> RateLimitDecision:
        """Like ``protect`` but raises RateLimitedError on denial."""
        decision = await self.protect(key, requested)
        if not decision.allowed:
            raise RateLimitedError(retry_after=decision.retry_after(self._clock()))
        return decision


transaction_rate_limiter = TokenBucketRateLimiter(
    capacity=settings.RATE_LIMIT_CAPACITY,
    refill_rate=settings.RATE_LIMIT_REFILL_RATE,
    interval=settings.RATE_LIMIT_INTERVAL_SECONDS,
)
