"""
Unit tests for fallback data.
"""

import json

import pytest

from shared.errors import ConfigurationError
from service_bff.app.fallback import FallbackRepository, FallbackResolver
from service_bff.app.models import Domain, FallbackRecord, Origin


def write_records(tmp_path, records):
    path = tmp_path / "fallback.json"
    path.write_text(json.dumps({"records": records}), encoding="utf-8")
    return path


class TestFallbackRepository:
    """Test cases for FallbackRepository."""

    def test_bundled_data_covers_every_domain(self):
        """The shipped data file has a default for each domain."""
        repository = FallbackRepository.from_file()

        assert sorted(repository.domains()) == ["crypto", "mars", "tech"]
        for domain in Domain:
            assert repository.get(domain, {}).is_default

    def test_missing_default_rejected(self):
        """A domain without a default record is a configuration error."""
        records = [
            FallbackRecord(Domain.CRYPTO, {"coins": []}),
            FallbackRecord(Domain.MARS, {"sols": []}),
            FallbackRecord(Domain.TECH, {"items": []}, query={"category": "software"}),
        ]

        with pytest.raises(ConfigurationError) as exc_info:
            FallbackRepository(records)

        assert exc_info.value.details["domains"] == ["tech"]

    def test_most_specific_record_wins(self):
        """Matching records with more parameters beat the default."""
        repository = FallbackRepository([
            FallbackRecord(Domain.CRYPTO, "default"),
            FallbackRecord(Domain.CRYPTO, "eur", query={"vs_currency": "eur"}),
            FallbackRecord(Domain.CRYPTO, "eur-page-2", query={"vs_currency": "eur", "page": "2"}),
            FallbackRecord(Domain.MARS, "mars"),
            FallbackRecord(Domain.TECH, "tech"),
        ])

        assert repository.get(Domain.CRYPTO, {"vs_currency": "usd", "page": "1"}).payload == "default"
        assert repository.get(Domain.CRYPTO, {"vs_currency": "eur", "page": "1"}).payload == "eur"
        assert repository.get(Domain.CRYPTO, {"vs_currency": "eur", "page": "2"}).payload == "eur-page-2"

    def test_from_file(self, tmp_path):
        """Records load from a custom file."""
        path = write_records(tmp_path, [
            {"domain": "crypto", "payload": {"coins": []}},
            {"domain": "mars", "query": {}, "payload": {"sols": []}},
            {"domain": "tech", "payload": {"items": []}},
            {"domain": "tech", "query": {"page": 2}, "payload": {"items": [1]}},
        ])

        repository = FallbackRepository.from_file(path)

        assert len(repository) == 4
        assert repository.get(Domain.TECH, {"page": "2"}).payload == {"items": [1]}

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            FallbackRepository.from_file(tmp_path / "absent.json")

    def test_from_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            FallbackRepository.from_file(path)

    def test_unknown_domain_rejected(self, tmp_path):
        """Records for unknown domains are configuration errors."""
        path = write_records(tmp_path, [{"domain": "weather", "payload": {}}])

        with pytest.raises(ConfigurationError) as exc_info:
            FallbackRepository.from_file(path)

        assert exc_info.value.details["index"] == 0


class TestFallbackResolver:
    """Test cases for FallbackResolver."""

    @pytest.fixture
    def resolver(self):
        return FallbackResolver(FallbackRepository.from_file())

    @pytest.mark.parametrize("domain", list(Domain))
    def test_resolve_never_fails(self, resolver, domain):
        """Every domain resolves to fallback-tagged data."""
        response = resolver.resolve(domain, {"anything": "goes"})

        assert response.origin == Origin.FALLBACK
        assert response.data

    def test_resolve_specific_record(self, resolver):
        """A narrower record is preferred when it matches."""
        response = resolver.resolve(Domain.CRYPTO, {"vs_currency": "eur", "per_page": "10", "page": "1"})
        assert response.data["vs_currency"] == "eur"

    def test_resolved_payload_is_a_copy(self, resolver):
        """Mutating a resolved payload leaves the record intact."""
        first = resolver.resolve(Domain.MARS, {})
        first.data["sols"].clear()

        second = resolver.resolve(Domain.MARS, {})

        assert second.data["sols"]
