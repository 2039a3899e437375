"""
Unit tests for the gateway orchestrator.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.errors import MalformedResponse, UpstreamRateLimited, UpstreamUnavailable
from shared.metrics import MetricsCollector
from service_bff.app.caching import InMemoryCacheStore, TTLCache
from service_bff.app.fallback import FallbackRepository, FallbackResolver
from service_bff.app.gateway import GatewayOrchestrator
from service_bff.app.models import CacheStatus, Domain, NormalizedResponse, Origin, Session
from service_bff.app.ratelimit import FixedWindowRateLimiter, InMemoryRateStore

CACHE_TTLS = {"crypto": 60, "mars": 1800, "tech": 3600}
CRYPTO_QUERY = {"vs_currency": "usd", "per_page": "10", "page": "1"}
LIVE_COINS = {"vs_currency": "usd", "coins": [{"id": "live-coin"}]}


def make_client(domain):
    client = MagicMock()
    client.domain = domain
    client.fetch = AsyncMock(return_value=NormalizedResponse(data={"domain": domain.value}, origin=Origin.FRESH))
    return client


def metric_value(metrics, name, **labels):
    return metrics.registry.get_sample_value(name, labels) or 0.0


class TestGatewayOrchestrator:
    """Test cases for GatewayOrchestrator."""

    @pytest.fixture
    def session(self, clock):
        return Session(token="s" * 43, issued_at=clock(), expires_at=clock() + 900)

    @pytest.fixture
    def clients(self):
        clients = {domain: make_client(domain) for domain in Domain}
        clients[Domain.CRYPTO].fetch.return_value = NormalizedResponse(data=LIVE_COINS, origin=Origin.FRESH)
        return clients

    @pytest.fixture
    def repository(self):
        return FallbackRepository.from_file()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("bff-test")

    @pytest.fixture
    def make_orchestrator(self, clients, repository, metrics, clock):
        """Factory building an orchestrator with a configurable rate budget."""
        def factory(max_requests=30, upstream_timeout=5.0):
            return GatewayOrchestrator(
                clients,
                TTLCache(InMemoryCacheStore(), clock=clock),
                FixedWindowRateLimiter(InMemoryRateStore(), max_requests=max_requests, window_seconds=60, clock=clock),
                FallbackResolver(repository),
                cache_ttls=CACHE_TTLS,
                upstream_timeout=upstream_timeout,
                metrics=metrics,
            )
        return factory

    @pytest.fixture
    def orchestrator(self, make_orchestrator):
        return make_orchestrator()

    def test_requires_client_for_every_domain(self, clients, repository, clock):
        """Construction fails when a domain has no client."""
        del clients[Domain.TECH]
        with pytest.raises(ValueError):
            GatewayOrchestrator(
                clients,
                TTLCache(InMemoryCacheStore(), clock=clock),
                FixedWindowRateLimiter(InMemoryRateStore(), clock=clock),
                FallbackResolver(repository),
                cache_ttls=CACHE_TTLS,
            )

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, orchestrator, clients, session, metrics):
        """Fresh upstream data is cached and reused within its TTL."""
        first = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)
        second = await orchestrator.handle(session, Domain.CRYPTO, dict(reversed(list(CRYPTO_QUERY.items()))))

        assert first.response.origin == Origin.FRESH
        assert first.cache_status == CacheStatus.MISS
        assert first.response.data == LIVE_COINS
        assert second.response.origin == Origin.FRESH
        assert second.cache_status == CacheStatus.HIT
        assert second.response.data == LIVE_COINS
        assert clients[Domain.CRYPTO].fetch.await_count == 1
        assert metric_value(metrics, "cache_hits_total", domain="crypto") == 1
        assert metric_value(metrics, "cache_misses_total", domain="crypto") == 1

    @pytest.mark.asyncio
    async def test_expired_entry_refetches(self, orchestrator, clients, session, clock):
        """After the domain TTL the upstream is called again."""
        await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)
        clock.advance(61)

        result = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        assert result.cache_status == CacheStatus.MISS
        assert clients[Domain.CRYPTO].fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_upstream_timeout_falls_back(self, make_orchestrator, clients, repository, session, metrics):
        """A slow upstream yields the predefined record for the domain."""
        async def never_answers(query):
            await asyncio.sleep(10)

        clients[Domain.MARS].fetch = AsyncMock(side_effect=never_answers)
        orchestrator = make_orchestrator(upstream_timeout=0.05)

        result = await orchestrator.handle(session, Domain.MARS, {})

        assert result.response.origin == Origin.FALLBACK
        assert result.response.data == repository.get(Domain.MARS, {}).payload
        assert result.cache_status == CacheStatus.MISS
        assert metric_value(metrics, "upstream_errors_total", domain="mars", error_type="timeout") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        UpstreamUnavailable("tech", "unexpected status 503"),
        UpstreamRateLimited("tech", "provider rate limit reached"),
        MalformedResponse("tech", "missing results"),
    ])
    async def test_upstream_errors_fall_back(self, orchestrator, clients, session, error):
        """Every upstream failure class is absorbed into a fallback response."""
        clients[Domain.TECH].fetch.side_effect = error

        result = await orchestrator.handle(session, Domain.TECH, {"q": "engine", "category": "patent", "page": "1"})

        assert result.response.origin == Origin.FALLBACK
        assert result.response.data["items"]

    @pytest.mark.asyncio
    async def test_fallback_is_not_cached(self, orchestrator, clients, session):
        """Once upstream recovers, fresh data replaces the fallback."""
        clients[Domain.CRYPTO].fetch.side_effect = UpstreamUnavailable("crypto", "down")
        degraded = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        clients[Domain.CRYPTO].fetch.side_effect = None
        recovered = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        assert degraded.response.origin == Origin.FALLBACK
        assert recovered.response.origin == Origin.FRESH
        assert recovered.cache_status == CacheStatus.MISS
        assert recovered.response.data == LIVE_COINS

    @pytest.mark.asyncio
    async def test_rate_limited_cache_hit(self, make_orchestrator, clients, session):
        """Over budget with a cached value: served from cache, no upstream call."""
        orchestrator = make_orchestrator(max_requests=1)
        await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        result = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        assert result.rate.rate_limited is True
        assert result.response.origin == Origin.FRESH
        assert result.cache_status == CacheStatus.HIT
        assert result.response.data == LIVE_COINS
        assert clients[Domain.CRYPTO].fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limited_cache_miss(self, make_orchestrator, clients, session, metrics):
        """Over budget without a cached value: fallback, no upstream call."""
        orchestrator = make_orchestrator(max_requests=1)
        await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        result = await orchestrator.handle(session, Domain.CRYPTO, {**CRYPTO_QUERY, "page": "2"})

        assert result.rate.rate_limited is True
        assert result.response.origin == Origin.FALLBACK
        assert result.cache_status == CacheStatus.BYPASS
        assert clients[Domain.CRYPTO].fetch.await_count == 1
        assert metric_value(metrics, "rate_limit_hits_total", domain="crypto") == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_domain(self, make_orchestrator, clients, session):
        """Spending the crypto budget leaves Mars untouched."""
        orchestrator = make_orchestrator(max_requests=1)
        await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)

        result = await orchestrator.handle(session, Domain.MARS, {})

        assert result.response.origin == Origin.FRESH
        clients[Domain.MARS].fetch.assert_awaited_once_with({})

    @pytest.mark.asyncio
    async def test_rate_headers_data(self, orchestrator, session):
        """The rate decision travels with the result."""
        result = await orchestrator.handle(session, Domain.TECH, {"q": "engine", "category": "patent", "page": "1"})

        assert result.rate.limit == 30
        assert result.rate.remaining == 29

    @pytest.mark.asyncio
    async def test_concurrent_misses_keep_cache_consistent(self, orchestrator, clients, session):
        """Concurrent misses may each fetch, but leave one valid entry."""
        async def slow_fetch(query):
            await asyncio.sleep(0.01)
            return NormalizedResponse(data=LIVE_COINS, origin=Origin.FRESH)

        clients[Domain.CRYPTO].fetch = AsyncMock(side_effect=slow_fetch)

        results = await asyncio.gather(*(orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY) for _ in range(5)))

        assert all(result.response.origin == Origin.FRESH for result in results)
        assert await orchestrator.cache.store.size() == 1
        follow_up = await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)
        assert follow_up.cache_status == CacheStatus.HIT

    @pytest.mark.asyncio
    async def test_domain_responses_metric(self, orchestrator, clients, session, metrics):
        """Responses are counted by origin."""
        clients[Domain.MARS].fetch.side_effect = UpstreamUnavailable("mars", "down")

        await orchestrator.handle(session, Domain.CRYPTO, CRYPTO_QUERY)
        await orchestrator.handle(session, Domain.MARS, {})

        assert metric_value(metrics, "domain_responses_total", domain="crypto", origin="fresh") == 1
        assert metric_value(metrics, "domain_responses_total", domain="mars", origin="fallback") == 1
