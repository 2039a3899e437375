"""
Read-only repository of predefined fallback payloads.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from shared.errors import ConfigurationError
from shared.logging import get_logger

from service_bff.app.models import Domain, FallbackRecord

DEFAULT_DATA_PATH = Path(__file__).with_name("data") / "fallback_records.json"


class FallbackRepository:
    """Fallback records grouped by domain, loaded once at startup.

    The data file is a JSON object ``{"records": [{"domain", "query",
    "payload"}, ...]}``. Every domain needs a default record (empty
    ``query``) so a lookup can never come back empty.
    """

    def __init__(self, records: List[FallbackRecord]):
        self.logger = get_logger("bff.fallback_repository")
        self._records: Dict[Domain, List[FallbackRecord]] = {domain: [] for domain in Domain}
        for record in records:
            self._records[record.domain].append(record)

        missing = [
            domain.value
            for domain, domain_records in self._records.items()
            if not any(record.is_default for record in domain_records)
        ]
        if missing:
            raise ConfigurationError(
                "Fallback data lacks a default record",
                details={"domains": missing},
            )

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "FallbackRepository":
        """Load records from ``path`` (the bundled data file by default)."""
        data_path = Path(path) if path else DEFAULT_DATA_PATH
        try:
            raw = json.loads(data_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(
                "Unable to load fallback data",
                details={"path": str(data_path), "error": str(exc)},
            ) from exc

        repository = cls(cls._parse_records(raw, data_path))
        repository.logger.info("Loaded fallback records", path=str(data_path), count=len(repository))
        return repository

    @staticmethod
    def _parse_records(raw: Any, data_path: Path) -> List[FallbackRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("records"), list):
            raise ConfigurationError("Fallback data must contain a 'records' list", details={"path": str(data_path)})

        records: List[FallbackRecord] = []
        for index, item in enumerate(raw["records"]):
            try:
                domain = Domain(item["domain"])
                payload = item["payload"]
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigurationError(
                    "Invalid fallback record",
                    details={"path": str(data_path), "index": index, "error": str(exc)},
                ) from exc
            query = {str(key): str(value) for key, value in (item.get("query") or {}).items()}
            records.append(FallbackRecord(domain=domain, payload=payload, query=query))
        return records

    def get(self, domain: Domain, query: Mapping[str, str]) -> FallbackRecord:
        """Return the closest record for ``query``.

        A record qualifies when all of its query parameters equal the
        request's; among those the most specific one wins, and the domain
        default always qualifies.
        """
        best: Optional[FallbackRecord] = None
        for record in self._records[domain]:
            if any(query.get(name) != value for name, value in record.query.items()):
                continue
            if best is None or len(record.query) > len(best.query):
                best = record
        assert best is not None
        return best

    def domains(self) -> List[str]:
        return [domain.value for domain in self._records]

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())
