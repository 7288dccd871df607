"""
Token bucket rate limiter, one bucket per client.
"""

import time
from dataclasses import dataclass
from typing import Callable

CLEANUP_INTERVAL = 300.0


@dataclass
class TokenBucket:
    tokens: float
    last_update: float


class RateLimiter:
    def __init__(
        self,
        capacity: int = 100,
        refill_rate: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._capacity = float(capacity)
        self._refill_rate = refill_rate  # tokens per second
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._last_cleanup = clock()

    def _bucket(self, key: str, now: float) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = TokenBucket(tokens=self._capacity, last_update=now)
            return bucket
        elapsed = now - bucket.last_update
        bucket.tokens = min(self._capacity, bucket.tokens + elapsed * self._refill_rate)
        bucket.last_update = now
        return bucket

    def check(self, key: str, cost: float = 1.0) -> tuple[bool, dict[str, str]]:
        """Take `cost` tokens for `key`. Returns (allowed, X-RateLimit headers)."""
        now = self._clock()
        if now - self._last_cleanup > CLEANUP_INTERVAL:
            self._cleanup(now)

        bucket = self._bucket(key, now)
        allowed = bucket.tokens >= cost
        if allowed:
            bucket.tokens -= cost

        reset_seconds = int((self._capacity - bucket.tokens) / self._refill_rate)
        headers = {
            "X-RateLimit-Limit": str(int(self._capacity)),
            "X-RateLimit-Remaining": str(max(0, int(bucket.tokens))),
            "X-RateLimit-Reset": str(reset_seconds),
        }
        if not allowed:
            headers["Retry-After"] = str(int((cost - bucket.tokens) / self._refill_rate) + 1)
        return allowed, headers

    def _cleanup(self, now: float) -> None:
        # A bucket idle long enough to refill completely is indistinguishable from a new one
        full_after = self._capacity / self._refill_rate
        stale = [k for k, b in self._buckets.items() if now - b.last_update > full_after]
        for key in stale:
            del self._buckets[key]
        self._last_cleanup = now
