"""
BFF caching package.

Holds the in-memory TTL cache that keeps upstream cost down. Entries are
keyed by domain and normalized query and expire lazily on access.
"""

from .ttl_cache import CacheStore, InMemoryCacheStore, TTLCache, make_cache_key

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "TTLCache",
    "make_cache_key",
]
