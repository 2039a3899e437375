"""
NASA TechTransfer client for the technology-transfer search domain.
"""

import re
from typing import Any, Dict, List, Mapping
from urllib.parse import quote, urlencode

from shared.errors import MalformedResponse, ValidationError

from service_bff.app.adapters.base import UpstreamClient, UpstreamRequest
from service_bff.app.models import Domain

CATEGORIES = ("patent", "software", "spinoff")

_TAG_PATTERN = re.compile(r"<[^>]+>")
_QUERY_PATTERN = re.compile(r"^[\w .-]{1,64}$")

# Positions inside a TechTransfer result row.
_ID, _CASE_NUMBER, _TITLE, _DESCRIPTION = 0, 1, 2, 3
_CATEGORY, _CENTER, _IMAGE = 5, 9, 10


class TechTransferClient(UpstreamClient):
    """Client for ``/techtransfer/{category}/``."""

    domain = Domain.TECH

    def normalize_query(self, raw: Mapping[str, Any]) -> Dict[str, str]:
        term = str(raw.get("q") or "engine").strip().lower()
        if not _QUERY_PATTERN.match(term):
            raise ValidationError("q must be 1-64 word characters", details={"param": "q"})

        category = str(raw.get("category") or "patent").strip().lower()
        if category not in CATEGORIES:
            raise ValidationError(
                "category must be one of: " + ", ".join(CATEGORIES),
                details={"param": "category"},
            )

        return {
            "q": term,
            "category": category,
            "page": str(self._positive_int(raw, "page", 1)),
        }

    def build_request(self, query: Mapping[str, str]) -> UpstreamRequest:
        # The search term is a bare key ("?engine&api_key=..."), which httpx
        # params would rewrite as "engine=", so the query string is built here.
        extra = urlencode({"api_key": self.api_key or "DEMO_KEY", "page": query["page"]})
        url = f"{self.base_url}/techtransfer/{query['category']}/?{quote(query['q'])}&{extra}"
        return url, None, {"Accept": "application/json"}

    def normalize(self, payload: Any, query: Mapping[str, str]) -> Dict[str, Any]:
        if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
            raise MalformedResponse(self.domain.value, "missing results")

        items: List[Dict[str, Any]] = []
        for row in payload["results"]:
            if not isinstance(row, list) or len(row) <= _DESCRIPTION:
                raise MalformedResponse(self.domain.value, "result row too short")
            items.append({
                "id": row[_ID],
                "case_number": row[_CASE_NUMBER],
                "title": self._strip_tags(row[_TITLE]),
                "description": self._strip_tags(row[_DESCRIPTION]),
                "category": self._at(row, _CATEGORY) or query["category"],
                "center": self._at(row, _CENTER),
                "image_url": self._at(row, _IMAGE),
            })

        return {
            "query": query["q"],
            "category": query["category"],
            "page": int(query["page"]),
            "total": int(payload.get("total", len(items))),
            "items": items,
        }

    @staticmethod
    def _strip_tags(value: Any) -> str:
        return _TAG_PATTERN.sub("", str(value or "")).strip()

    @staticmethod
    def _at(row: List[Any], index: int) -> Any:
        value = row[index] if len(row) > index else None
        return value or None
