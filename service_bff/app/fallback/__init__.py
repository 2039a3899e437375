"""
Fallback package: predefined data served when live data is unavailable.
"""

from .repository import FallbackRepository
from .resolver import FallbackResolver

__all__ = ["FallbackRepository", "FallbackResolver"]
