"""
Adapters package for the BFF.

Contains HTTP clients for the three upstream providers. Each adapter
encapsulates:

- Base URLs, API keys and request shapes
- Query canonicalization for cache keys
- Mapping of provider payloads into the dashboard shape
- Error classification into UpstreamError subtypes

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .base import UpstreamClient
from .coingecko_client import CoinGeckoClient
from .mars_weather_client import MarsWeatherClient
from .techtransfer_client import TechTransferClient

__all__ = [
    "CoinGeckoClient",
    "MarsWeatherClient",
    "TechTransferClient",
    "UpstreamClient",
]
