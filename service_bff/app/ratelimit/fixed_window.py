"""
Session-scoped fixed-window rate limiter for upstream calls.
"""

from __future__ import annotations

import asyncio
import math
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from shared.logging import fingerprint, get_logger

from service_bff.app.models import RateBucket, RateDecision


class RateStore(ABC):
    """Storage backend for rate buckets."""

    @abstractmethod
    def lock(self, key: str) -> asyncio.Lock:
        """Lock serializing updates of one bucket."""

    @abstractmethod
    async def get(self, key: str) -> Optional[RateBucket]:
        """Return the bucket stored under ``key``."""

    @abstractmethod
    async def put(self, key: str, bucket: RateBucket) -> None:
        """Store ``bucket`` under ``key``."""

    @abstractmethod
    async def purge(self, predicate: Callable[[RateBucket], bool]) -> int:
        """Remove all buckets matching ``predicate``; return the count."""


class InMemoryRateStore(RateStore):
    """Dict-backed bucket store with one asyncio lock per key."""

    def __init__(self):
        self._buckets: Dict[str, RateBucket] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get(self, key: str) -> Optional[RateBucket]:
        return self._buckets.get(key)

    async def put(self, key: str, bucket: RateBucket) -> None:
        self._buckets[key] = bucket

    async def purge(self, predicate: Callable[[RateBucket], bool]) -> int:
        doomed = [key for key, bucket in self._buckets.items() if predicate(bucket)]
        for key in doomed:
            del self._buckets[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._buckets)


class FixedWindowRateLimiter:
    """Counts upstream-bound requests per (session, domain) in fixed windows."""

    def __init__(
        self,
        store: RateStore,
        *,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.logger = get_logger("bff.rate_limiter")
        self._clock = clock

    def _make_key(self, session_token: str, domain: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{fingerprint(session_token)}:{domain}"

    async def consume(self, session_token: str, domain: str) -> RateDecision:
        """Spend one request of the caller's budget for ``domain``.

        Once the window's budget is spent the call is refused and the count
        is left untouched until the window elapses.
        """
        key = self._make_key(session_token, domain)

        async with self.store.lock(key):
            now = self._clock()
            bucket = await self.store.get(key)
            if bucket is None or bucket.window_elapsed(now, self.window_seconds):
                bucket = RateBucket(session_token=session_token, domain=domain, window_start=now, count=0)

            reset_in = self._reset_in(bucket, now)
            if bucket.count >= self.max_requests:
                await self.store.put(key, bucket)
                self.logger.warning(
                    "Rate limit exceeded",
                    domain=domain,
                    current_count=bucket.count,
                    limit=self.max_requests,
                )
                return RateDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_in_seconds=reset_in,
                )

            bucket.count += 1
            await self.store.put(key, bucket)
            return RateDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - bucket.count,
                reset_in_seconds=reset_in,
            )

    async def purge_expired(self) -> int:
        """Drop buckets whose window has elapsed."""
        now = self._clock()
        return await self.store.purge(lambda bucket: bucket.window_elapsed(now, self.window_seconds))

    def _reset_in(self, bucket: RateBucket, now: float) -> int:
        return max(0, math.ceil(bucket.window_start + self.window_seconds - now))
