"""
NASA InSight client for the Mars weather domain.
"""

from typing import Any, Dict, List, Mapping, Optional

from shared.errors import MalformedResponse, ValidationError

from service_bff.app.adapters.base import UpstreamClient, UpstreamRequest
from service_bff.app.models import Domain

# InSight sensor codes -> dashboard names
_SENSORS = {"AT": "temperature", "PRE": "pressure", "HWS": "wind_speed"}


class MarsWeatherClient(UpstreamClient):
    """Client for the NASA InSight ``/insight_weather/`` feed."""

    domain = Domain.MARS

    def normalize_query(self, raw: Mapping[str, Any]) -> Dict[str, str]:
        sol = raw.get("sol")
        if sol is None or sol == "":
            return {}
        try:
            sol_number = int(sol)
        except (TypeError, ValueError):
            raise ValidationError("sol must be an integer", details={"param": "sol"})
        if sol_number < 0:
            raise ValidationError("sol must be non-negative", details={"param": "sol"})
        return {"sol": str(sol_number)}

    def build_request(self, query: Mapping[str, str]) -> UpstreamRequest:
        params = {
            "api_key": self.api_key or "DEMO_KEY",
            "feedtype": "json",
            "ver": "1.0",
        }
        return f"{self.base_url}/insight_weather/", params, {"Accept": "application/json"}

    def normalize(self, payload: Any, query: Mapping[str, str]) -> Dict[str, Any]:
        if not isinstance(payload, dict) or not isinstance(payload.get("sol_keys"), list):
            raise MalformedResponse(self.domain.value, "missing sol_keys")

        wanted = query.get("sol")
        sols: List[Dict[str, Any]] = []
        for sol_key in payload["sol_keys"]:
            if wanted is not None and str(sol_key) != wanted:
                continue
            report = payload.get(str(sol_key))
            if not isinstance(report, dict):
                raise MalformedResponse(self.domain.value, f"sol {sol_key} listed but missing")
            sols.append(self._sol_summary(str(sol_key), report))

        return {"sols": sols}

    def _sol_summary(self, sol: str, report: Dict[str, Any]) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "sol": int(sol),
            "season": report.get("Season"),
            "first_utc": report.get("First_UTC"),
            "last_utc": report.get("Last_UTC"),
        }
        for code, name in _SENSORS.items():
            summary[name] = self._reading(report.get(code))
        return summary

    @staticmethod
    def _reading(sensor: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(sensor, dict):
            return None
        return {"av": sensor.get("av"), "mn": sensor.get("mn"), "mx": sensor.get("mx")}
