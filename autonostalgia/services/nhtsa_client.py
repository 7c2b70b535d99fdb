"""
NHTSA vPIC API client.
Vehicle makes, models and VIN decoding for the vehicle forms.
"""
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)

EARLIEST_YEAR = 1900


class NHTSAClient:
    """Client for the public vPIC API. Upstream failures yield empty results."""

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or settings.nhtsa_base_url).rstrip("/")
        self._transport = transport

    def _results(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        query = {"format": "json", **(params or {})}
        try:
            with httpx.Client(timeout=settings.http_timeout_seconds, transport=self._transport) as client:
                response = client.get(url, params=query)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("nhtsa_request_failed", endpoint=endpoint, error=str(exc))
            return []
        return data.get("Results") or []

    @staticmethod
    def _options(results: List[Dict[str, Any]], field: str) -> List[Dict[str, str]]:
        names = {(r.get(field) or "").strip() for r in results}
        return [{"value": n, "label": n} for n in sorted((n for n in names if n), key=str.lower)]

    def get_all_makes(self) -> List[Dict[str, str]]:
        return self._options(self._results("GetAllMakes"), "Make_Name")

    def get_models_for_make(self, make: str, year: Optional[int] = None) -> List[Dict[str, str]]:
        make = (make or "").strip()
        if not make:
            return []
        if year:
            endpoint = f"GetModelsForMakeYear/make/{quote(make)}/modelyear/{int(year)}"
        else:
            endpoint = f"GetModelsForMake/{quote(make)}"
        return self._options(self._results(endpoint), "Model_Name")

    def decode_vin(self, vin: str) -> Dict[str, str]:
        """Flat ``{Variable: Value}`` map of the non-empty decoded fields."""
        vin = (vin or "").strip()
        if not vin:
            return {}
        decoded = {}
        for row in self._results(f"DecodeVin/{quote(vin)}"):
            value = row.get("Value")
            if row.get("Variable") and value not in (None, "", "Not Applicable"):
                decoded[row["Variable"]] = value
        return decoded

    def validate_make(self, make: str) -> bool:
        wanted = (make or "").strip().lower()
        return any(m["value"].lower() == wanted for m in self.get_all_makes())

    def validate_model(self, make: str, model: str) -> bool:
        wanted = (model or "").strip().lower()
        return any(m["value"].lower() == wanted for m in self.get_models_for_make(make))


def vehicle_years() -> List[Dict[str, str]]:
    """Next model year down to 1900."""
    return [{"value": str(y), "label": str(y)} for y in range(date.today().year + 1, EARLIEST_YEAR - 1, -1)]
