"""
Rate limiting package for the BFF.

Holds the fixed-window limiter that caps upstream calls per session and
domain. A denied caller still reads cached data.
"""

from .fixed_window import FixedWindowRateLimiter, InMemoryRateStore, RateStore

__all__ = ["FixedWindowRateLimiter", "InMemoryRateStore", "RateStore"]
