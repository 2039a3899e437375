"""
CoinGecko client for the crypto market domain.
"""

import re
from typing import Any, Dict, List, Mapping

from shared.errors import MalformedResponse, ValidationError

from service_bff.app.adapters.base import UpstreamClient, UpstreamRequest
from service_bff.app.models import Domain

_CURRENCY_PATTERN = re.compile(r"^[a-z]{2,10}$")
_COIN_ID_PATTERN = re.compile(r"^[a-z0-9-]{1,64}$")

MARKET_FIELDS = (
    "id",
    "symbol",
    "name",
    "image",
    "current_price",
    "market_cap",
    "market_cap_rank",
    "total_volume",
    "price_change_percentage_24h",
    "last_updated",
)


class CoinGeckoClient(UpstreamClient):
    """Client for the CoinGecko ``/coins/markets`` endpoint."""

    domain = Domain.CRYPTO

    def normalize_query(self, raw: Mapping[str, Any]) -> Dict[str, str]:
        vs_currency = str(raw.get("vs_currency") or "usd").strip().lower()
        if not _CURRENCY_PATTERN.match(vs_currency):
            raise ValidationError("vs_currency must be a currency code", details={"param": "vs_currency"})

        query = {
            "vs_currency": vs_currency,
            "per_page": str(self._positive_int(raw, "per_page", 10, maximum=250)),
            "page": str(self._positive_int(raw, "page", 1)),
        }

        ids = raw.get("ids")
        if ids:
            coin_ids = sorted({part.strip().lower() for part in str(ids).split(",") if part.strip()})
            invalid = [coin for coin in coin_ids if not _COIN_ID_PATTERN.match(coin)]
            if invalid:
                raise ValidationError("ids contains invalid coin ids", details={"invalid": invalid})
            if coin_ids:
                query["ids"] = ",".join(coin_ids)
        return query

    def build_request(self, query: Mapping[str, str]) -> UpstreamRequest:
        params: Dict[str, Any] = {
            "vs_currency": query["vs_currency"],
            "order": "market_cap_desc",
            "per_page": query["per_page"],
            "page": query["page"],
            "sparkline": "false",
        }
        if query.get("ids"):
            params["ids"] = query["ids"]

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return f"{self.base_url}/coins/markets", params, headers

    def normalize(self, payload: Any, query: Mapping[str, str]) -> Dict[str, Any]:
        if not isinstance(payload, list):
            raise MalformedResponse(self.domain.value, "expected a list of markets")

        coins: List[Dict[str, Any]] = []
        for row in payload:
            if not isinstance(row, dict) or not row.get("id"):
                raise MalformedResponse(self.domain.value, "market row without id")
            coins.append({name: row.get(name) for name in MARKET_FIELDS})

        return {"vs_currency": query["vs_currency"], "coins": coins}
