"""
Fallback resolver: terminal step of the degradation chain.
"""

import copy
from typing import Mapping

from shared.logging import get_logger

from service_bff.app.fallback.repository import FallbackRepository
from service_bff.app.models import Domain, NormalizedResponse, Origin


class FallbackResolver:
    """Turns fallback records into responses tagged ``fallback``."""

    def __init__(self, repository: FallbackRepository):
        self.repository = repository
        self.logger = get_logger("bff.fallback")

    def resolve(self, domain: Domain, query: Mapping[str, str]) -> NormalizedResponse:
        """Return predefined data for ``domain``. Never fails."""
        record = self.repository.get(domain, query)
        self.logger.info(
            "Serving fallback data",
            domain=domain.value,
            matched_query=dict(record.query),
        )
        # Callers must not be able to mutate the shared record.
        return NormalizedResponse(data=copy.deepcopy(record.payload), origin=Origin.FALLBACK)
