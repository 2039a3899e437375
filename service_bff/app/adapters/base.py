"""
Base class for upstream provider clients.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import (
    MalformedResponse,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
    ValidationError,
)
from shared.logging import get_logger

from service_bff.app.models import Domain, NormalizedResponse, Origin

UpstreamRequest = Tuple[str, Optional[Dict[str, Any]], Dict[str, str]]


class UpstreamClient(ABC):
    """Fetches one domain from its provider and maps it to the common envelope.

    Subclasses translate domain query parameters into a provider request and
    map the provider payload into the dashboard shape. Every failure surfaces
    as an UpstreamError subtype.
    """

    domain: Domain

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=self.domain.value)
        self.logger = get_logger(f"bff.upstream.{self.domain.value}")
        self._transport = transport

    @abstractmethod
    def normalize_query(self, raw: Mapping[str, Any]) -> Dict[str, str]:
        """Canonicalize raw query parameters; raise ValidationError on bad input."""

    @abstractmethod
    def build_request(self, query: Mapping[str, str]) -> UpstreamRequest:
        """Return (url, params, headers) for the provider call."""

    @abstractmethod
    def normalize(self, payload: Any, query: Mapping[str, str]) -> Any:
        """Map the provider payload to the dashboard shape; raise MalformedResponse."""

    async def fetch(self, query: Mapping[str, str]) -> NormalizedResponse:
        """Fetch fresh data for an already normalized query."""
        try:
            data = await self.circuit_breaker.call(self._fetch, query)
        except CircuitBreakerOpenException as exc:
            raise UpstreamUnavailable(self.domain.value, "circuit open") from exc
        return NormalizedResponse(data=data, origin=Origin.FRESH)

    async def _fetch(self, query: Mapping[str, str]) -> Any:
        url, params, headers = self.build_request(query)
        payload = await self._get_json(url, params, headers)
        try:
            return self.normalize(payload, query)
        except UpstreamError:
            raise
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            raise MalformedResponse(self.domain.value, f"unexpected payload: {exc}") from exc

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]], headers: Dict[str, str]) -> Any:
        """Execute the GET and classify failures."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(self.domain.value, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(self.domain.value, str(exc) or type(exc).__name__) from exc

        if response.status_code == 429:
            raise UpstreamRateLimited(
                self.domain.value,
                "provider rate limit reached",
                details={"retry_after": response.headers.get("Retry-After")},
            )
        if response.status_code != 200:
            self.logger.error(
                "Upstream request failed",
                url=url,
                status_code=response.status_code,
            )
            raise UpstreamUnavailable(
                self.domain.value,
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse(self.domain.value, "response is not JSON") from exc

    @staticmethod
    def _positive_int(raw: Mapping[str, Any], name: str, default: int, *, maximum: Optional[int] = None) -> int:
        value = raw.get(name)
        if value is None or value == "":
            return default
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer", details={"param": name})
        if number < 1 or (maximum is not None and number > maximum):
            bound = f"1..{maximum}" if maximum is not None else ">= 1"
            raise ValidationError(f"{name} must be in {bound}", details={"param": name})
        return number
