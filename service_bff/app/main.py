"""
Dashboard BFF service.
"""

import asyncio
import contextlib
from typing import Any, Dict, Optional

from fastapi import Depends, Query, Request, Response

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreakerManager
from shared.config import ServiceConfig
from shared.errors import AuthError, CaptchaError
from shared.logging import set_session_context

from service_bff.app.adapters import CoinGeckoClient, MarsWeatherClient, TechTransferClient
from service_bff.app.caching import InMemoryCacheStore, TTLCache
from service_bff.app.fallback import FallbackRepository, FallbackResolver
from service_bff.app.gateway import GatewayOrchestrator
from service_bff.app.models import (
    CaptchaVerifyRequest,
    Domain,
    DomainEnvelope,
    GatewayResult,
    Session,
    SessionIssuedResponse,
)
from service_bff.app.ratelimit import FixedWindowRateLimiter, InMemoryRateStore
from service_bff.app.session import CaptchaVerifier, InMemorySessionStore, SessionGate


class BffService(BaseService):
    """Backend-for-frontend serving the dashboard's three data domains."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("bff", config=config)
        cfg = self.config

        self.circuit_breakers = CircuitBreakerManager()
        client_options: Dict[str, Any] = {"timeout": cfg.upstream_timeout_seconds}
        clients = {
            Domain.CRYPTO: CoinGeckoClient(
                cfg.coingecko_base_url,
                api_key=cfg.coingecko_api_key,
                circuit_breaker=self._breaker(Domain.CRYPTO),
                **client_options,
            ),
            Domain.MARS: MarsWeatherClient(
                cfg.nasa_base_url,
                api_key=cfg.nasa_api_key,
                circuit_breaker=self._breaker(Domain.MARS),
                **client_options,
            ),
            Domain.TECH: TechTransferClient(
                cfg.nasa_base_url,
                api_key=cfg.nasa_api_key,
                circuit_breaker=self._breaker(Domain.TECH),
                **client_options,
            ),
        }

        self.session_gate = SessionGate(
            InMemorySessionStore(),
            CaptchaVerifier(
                cfg.captcha_verify_url,
                cfg.captcha_secret,
                timeout=cfg.captcha_timeout_seconds,
            ),
            ttl_seconds=cfg.session_ttl_seconds,
        )
        self.cache = TTLCache(InMemoryCacheStore(max_entries=cfg.cache_max_entries))
        self.rate_limiter = FixedWindowRateLimiter(
            InMemoryRateStore(),
            max_requests=cfg.rate_limit_max_requests,
            window_seconds=cfg.rate_limit_window_seconds,
        )
        self.fallback_repository = FallbackRepository.from_file(cfg.fallback_data_path)
        self.orchestrator = GatewayOrchestrator(
            clients,
            self.cache,
            self.rate_limiter,
            FallbackResolver(self.fallback_repository),
            cache_ttls=cfg.cache_ttls(),
            upstream_timeout=cfg.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self._sweeper: Optional[asyncio.Task] = None

        @self.app.on_event("startup")
        async def _startup():
            self._sweeper = asyncio.create_task(self._sweep_forever())

        @self.app.on_event("shutdown")
        async def _shutdown():
            if self._sweeper:
                self._sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._sweeper
                self._sweeper = None

        self._setup_session_routes()
        self._setup_domain_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.bff_service = self

    def _breaker(self, domain: Domain):
        return self.circuit_breakers.get_circuit_breaker(
            domain.value,
            failure_threshold=self.config.circuit_failure_threshold,
            recovery_timeout=self.config.circuit_recovery_seconds,
        )

    async def require_session(self, request: Request) -> Session:
        """Resolve the session cookie or reject the request with 401."""
        token = request.cookies.get(self.config.session_cookie_name)
        try:
            session = await self.session_gate.validate(token)
        except AuthError:
            self.metrics.increment_counter("auth_failures_total")
            raise
        set_session_context(session.token)
        return session

    def _setup_session_routes(self):
        """Captcha verification and session issuance."""

        @self.app.post("/api/session/verify-captcha", response_model=SessionIssuedResponse)
        async def verify_captcha(body: CaptchaVerifyRequest, request: Request, response: Response):
            """Exchange a solved captcha for a session cookie."""
            try:
                session = await self.session_gate.issue(body.token, remote_ip=self._get_client_ip(request))
            except CaptchaError as exc:
                self.metrics.increment_counter("captcha_failures_total", reason=exc.details.get("reason", "unknown"))
                raise

            self.metrics.increment_counter("sessions_issued_total")
            response.set_cookie(
                key=self.config.session_cookie_name,
                value=session.token,
                max_age=self.session_gate.ttl_seconds,
                path="/",
                httponly=True,
                secure=True,
                samesite="none",
            )
            return SessionIssuedResponse(expires_at=session.expires_at_iso())

    def _setup_domain_routes(self):
        """Domain endpoints consumed by the dashboard."""

        @self.app.get("/api/coins", response_model=DomainEnvelope)
        async def get_coins(
            response: Response,
            session: Session = Depends(self.require_session),
            vs_currency: str = Query("usd", min_length=2, max_length=10),
            ids: Optional[str] = Query(None, max_length=1024),
            per_page: int = Query(10, ge=1, le=250),
            page: int = Query(1, ge=1),
        ):
            """Crypto market overview."""
            raw = {"vs_currency": vs_currency, "ids": ids, "per_page": per_page, "page": page}
            return await self._serve(Domain.CRYPTO, raw, session, response)

        @self.app.get("/api/mars-weather", response_model=DomainEnvelope)
        async def get_mars_weather(
            response: Response,
            session: Session = Depends(self.require_session),
            sol: Optional[int] = Query(None, ge=0),
        ):
            """Latest Mars surface weather by sol."""
            return await self._serve(Domain.MARS, {"sol": sol}, session, response)

        @self.app.get("/api/nasa-tech", response_model=DomainEnvelope)
        async def get_nasa_tech(
            response: Response,
            session: Session = Depends(self.require_session),
            q: str = Query("engine", min_length=1, max_length=64),
            category: str = Query("patent", pattern="^(patent|software|spinoff)$"),
            page: int = Query(1, ge=1),
        ):
            """NASA technology-transfer search."""
            raw = {"q": q, "category": category, "page": page}
            return await self._serve(Domain.TECH, raw, session, response)

    async def _serve(self, domain: Domain, raw: Dict[str, Any], session: Session, response: Response) -> Dict[str, Any]:
        query = self.orchestrator.normalize_query(domain, raw)
        result = await self.orchestrator.handle(session, domain, query)
        self._set_gateway_headers(response, result)
        return result.response.to_dict()

    def _set_gateway_headers(self, response: Response, result: GatewayResult) -> None:
        """Propagate cache, origin and rate limiting metadata via headers."""
        response.headers["X-Cache"] = result.cache_status.value
        response.headers["X-Data-Origin"] = result.response.origin.value
        if result.rate is not None:
            response.headers["X-RateLimit-Limit"] = str(result.rate.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.rate.remaining)
            response.headers["X-RateLimit-Reset"] = str(result.rate.reset_in_seconds)

    def _get_client_ip(self, request: Request) -> Optional[str]:
        """Extract the caller IP from standard headers."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        if request.client:
            return request.client.host
        return None

    async def sweep_expired(self) -> Dict[str, int]:
        """Purge expired cache entries, rate buckets and sessions once."""
        summary = {
            "cache_entries": await self.cache.purge_expired(),
            "rate_buckets": await self.rate_limiter.purge_expired(),
            "sessions": await self.session_gate.purge_expired(),
        }
        if any(summary.values()):
            self.logger.debug("Swept expired state", **summary)
        return summary

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_seconds)
            try:
                await self.sweep_expired()
            except Exception as exc:
                self.logger.error("State sweep failed", error=str(exc), exc_info=True)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report upstream health as seen through the circuit breakers."""
        return {
            name: "degraded" if state["state"] == "open" else "ok"
            for name, state in self.circuit_breakers.get_all_states().items()
        }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = BffService(config)
    return service.app


def run():
    BffService().run()


if __name__ == "__main__":
    run()
