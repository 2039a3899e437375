"""
Core data types for the dashboard gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel


class Domain(str, Enum):
    """Upstream domains served by the BFF."""

    CRYPTO = "crypto"
    MARS = "mars"
    TECH = "tech"


class Origin(str, Enum):
    """Where a response payload came from."""

    FRESH = "fresh"
    FALLBACK = "fallback"


class CacheStatus(str, Enum):
    """Value of the X-Cache response header."""

    HIT = "HIT"
    MISS = "MISS"
    BYPASS = "BYPASS"


@dataclass(frozen=True)
class Session:
    """Short-lived access grant issued after captcha verification."""

    token: str
    issued_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def expires_at_iso(self) -> str:
        """Wall-clock expiry in ISO-8601, for clients."""
        dt = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        return dt.isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class CacheEntry:
    """A cached normalized payload."""

    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl

    def age(self, now: float) -> float:
        return max(0.0, now - self.stored_at)


@dataclass
class RateBucket:
    """Fixed-window request counter for one (session, domain) pair."""

    session_token: str
    domain: str
    window_start: float
    count: int = 0

    def window_elapsed(self, now: float, window_seconds: float) -> bool:
        return now >= self.window_start + window_seconds


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a rate limiter consume call."""

    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: int

    @property
    def rate_limited(self) -> bool:
        return not self.allowed


@dataclass(frozen=True)
class FallbackRecord:
    """Predefined payload served when live data is unavailable."""

    domain: Domain
    payload: Any
    query: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return not self.query


@dataclass(frozen=True)
class NormalizedResponse:
    """Common envelope returned by upstream clients and the fallback resolver."""

    data: Any
    origin: Origin = Origin.FRESH

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "origin": self.origin.value}


@dataclass(frozen=True)
class GatewayResult:
    """Response plus the metadata the HTTP layer exposes as headers."""

    response: NormalizedResponse
    cache_status: CacheStatus
    rate: Optional[RateDecision] = None


class DomainEnvelope(BaseModel):
    """Response body of every domain endpoint."""

    data: Any
    origin: Origin


class CaptchaVerifyRequest(BaseModel):
    """Body of POST /api/session/verify-captcha."""

    token: str


class SessionIssuedResponse(BaseModel):
    """Body returned when a session cookie has been issued."""

    status: str = "ok"
    expires_at: str
