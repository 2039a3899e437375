"""
In-memory TTL cache shared by all requests of the process.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, Mapping, Optional

from shared.logging import get_logger

from service_bff.app.models import CacheEntry


class CacheStore(ABC):
    """Storage backend for cache entries."""

    @abstractmethod
    async def read(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry, expired or not, and mark it recently used."""

    @abstractmethod
    async def write(self, entry: CacheEntry) -> None:
        """Insert or overwrite an entry."""

    @abstractmethod
    async def delete(self, key: str, only_if: Optional[CacheEntry] = None) -> bool:
        """Remove an entry; True when something was removed.

        With ``only_if`` the entry is removed only while it is still the
        stored one, so a concurrent overwrite survives.
        """

    @abstractmethod
    async def purge(self, predicate: Callable[[CacheEntry], bool]) -> int:
        """Remove all entries matching ``predicate``; return the count."""

    @abstractmethod
    async def size(self) -> int:
        """Number of stored entries."""


class InMemoryCacheStore(CacheStore):
    """OrderedDict-backed store with optional LRU bound."""

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self.evictions = 0
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def read(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    async def write(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
                    self.evictions += 1

    async def delete(self, key: str, only_if: Optional[CacheEntry] = None) -> bool:
        async with self._lock:
            current = self._entries.get(key)
            if current is None or (only_if is not None and current is not only_if):
                return False
            del self._entries[key]
            return True

    async def purge(self, predicate: Callable[[CacheEntry], bool]) -> int:
        async with self._lock:
            doomed = [key for key, entry in self._entries.items() if predicate(entry)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def size(self) -> int:
        return len(self._entries)


def make_cache_key(domain: str, query: Mapping[str, Any]) -> str:
    """Deterministic key for a (domain, query) pair.

    Parameters are sorted by name and empty values dropped so equivalent
    requests collide into one entry.
    """
    parts = [
        f"{name}={value}"
        for name, value in sorted(query.items())
        if value is not None and str(value) != ""
    ]
    return f"bff:{domain}:" + "&".join(parts)


class TTLCache:
    """TTL cache with lazy expiry on access."""

    def __init__(self, store: CacheStore, *, clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.logger = get_logger("bff.cache")
        self._clock = clock
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` or None on a miss."""
        entry = await self.store.read(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            await self.store.delete(key, only_if=entry)
            self._misses += 1
            self.logger.debug("Evicted expired cache entry", key=key)
            return None

        self._hits += 1
        return entry

    async def set(self, key: str, value: Any, ttl: float) -> CacheEntry:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        await self.store.write(entry)
        self.logger.debug("Cached value", key=key, ttl=ttl)
        return entry

    async def purge_expired(self) -> int:
        """Drop every expired entry. Used by the background sweeper."""
        now = self._clock()
        removed = await self.store.purge(lambda entry: entry.is_expired(now))
        if removed:
            self.logger.debug("Purged expired cache entries", count=removed)
        return removed

    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        return {
            "size": await self.store.size(),
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": round(self._hits / total, 4) if total else 0.0,
            "evictions": getattr(self.store, "evictions", 0),
        }
