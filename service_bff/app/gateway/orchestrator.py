"""
Gateway orchestrator: rate check, cache, upstream and fallback for one
authenticated request.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from shared.errors import UpstreamError, UpstreamTimeout
from shared.logging import get_logger

from service_bff.app.adapters.base import UpstreamClient
from service_bff.app.caching.ttl_cache import TTLCache, make_cache_key
from service_bff.app.fallback.resolver import FallbackResolver
from service_bff.app.models import (
    CacheStatus,
    Domain,
    GatewayResult,
    NormalizedResponse,
    Origin,
    RateDecision,
    Session,
)
from service_bff.app.ratelimit.fixed_window import FixedWindowRateLimiter

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class GatewayOrchestrator:
    """Serves domain data with caching, rate limiting and graceful degradation.

    Flow for an authenticated request::

        RATE_CHECK -> denied  -> CACHE_ONLY   -> hit: fresh (cached) | miss: FALLBACK
                   -> allowed -> CACHE_LOOKUP -> hit: fresh (cached) | miss: UPSTREAM
        UPSTREAM   -> ok: CACHE_STORE, fresh | error: FALLBACK

    Upstream errors never escape; they turn into fallback responses.
    """

    def __init__(
        self,
        clients: Mapping[Domain, UpstreamClient],
        cache: TTLCache,
        rate_limiter: FixedWindowRateLimiter,
        fallback: FallbackResolver,
        *,
        cache_ttls: Mapping[str, float],
        upstream_timeout: float = 5.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        missing = [domain.value for domain in Domain if domain not in clients]
        if missing:
            raise ValueError(f"missing upstream clients for: {', '.join(missing)}")
        self.clients: Dict[Domain, UpstreamClient] = dict(clients)
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.fallback = fallback
        self.cache_ttls = dict(cache_ttls)
        self.upstream_timeout = upstream_timeout
        self.metrics = metrics
        self.logger = get_logger("bff.gateway")

    def normalize_query(self, domain: Domain, raw: Mapping[str, Any]) -> Dict[str, str]:
        """Canonical query for ``domain``; raises ValidationError."""
        return self.clients[domain].normalize_query(raw)

    async def handle(self, session: Session, domain: Domain, query: Mapping[str, str]) -> GatewayResult:
        """Resolve data for an authenticated caller."""
        key = make_cache_key(domain.value, query)
        rate = await self.rate_limiter.consume(session.token, domain.value)

        entry = await self.cache.get(key)
        if entry is not None:
            self._count("cache_hits_total", domain=domain.value)
            self.logger.debug("Serving from cache", domain=domain.value, key=key, rate_limited=rate.rate_limited)
            return self._result(domain, NormalizedResponse(data=entry.value, origin=Origin.FRESH), CacheStatus.HIT, rate)

        self._count("cache_misses_total", domain=domain.value)

        if rate.rate_limited:
            self._count("rate_limit_hits_total", domain=domain.value)
            return self._result(domain, self.fallback.resolve(domain, query), CacheStatus.BYPASS, rate)

        try:
            response = await self._fetch_upstream(domain, query)
        except UpstreamError as exc:
            self._count("upstream_errors_total", domain=domain.value, error_type=exc.error_type)
            self.logger.warning(
                "Upstream fetch failed, falling back",
                domain=domain.value,
                error_type=exc.error_type,
                error=exc.message,
            )
            return self._result(domain, self.fallback.resolve(domain, query), CacheStatus.MISS, rate)

        await self.cache.set(key, response.data, self.cache_ttls[domain.value])
        return self._result(domain, response, CacheStatus.MISS, rate)

    async def _fetch_upstream(self, domain: Domain, query: Mapping[str, str]) -> NormalizedResponse:
        """Call the domain client under a fixed deadline."""
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(self.clients[domain].fetch(query), timeout=self.upstream_timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeout(domain.value, f"no answer within {self.upstream_timeout}s") from exc
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "upstream_request_duration_seconds",
                    time.perf_counter() - start,
                    domain=domain.value,
                )

    def _result(
        self,
        domain: Domain,
        response: NormalizedResponse,
        cache_status: CacheStatus,
        rate: RateDecision,
    ) -> GatewayResult:
        self._count("domain_responses_total", domain=domain.value, origin=response.origin.value)
        return GatewayResult(response=response, cache_status=cache_status, rate=rate)

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
