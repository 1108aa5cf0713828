"""
OpenWeather client for the Environment Service.

Covers geocoding, air-pollution components and the UV index.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from ..aggregation.aggregator import LocationResolver, PollutionSource, UVIndexSource
from ..models import GeoLocation


class OpenWeatherClient(LocationResolver, PollutionSource, UVIndexSource):
    """Client for the OpenWeather geocoding and air APIs."""

    service_name = "openweather"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.transport_retries = transport_retries
        self.transport = transport
        self.logger = get_logger("environment.openweather_client")

    def _client(self) -> httpx.AsyncClient:
        transport = self.transport or httpx.AsyncHTTPTransport(retries=self.transport_retries)
        return httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.get(url, params={**params, "appid": self.api_key})
        except httpx.HTTPError as exc:
            self.logger.error("OpenWeather request failed", url=url, params=params, error=str(exc))
            raise ExternalServiceError(
                service=self.service_name,
                message=str(exc) or exc.__class__.__name__,
                details={"path": path}
            )

        if response.status_code != 200:
            self.logger.error(
                "OpenWeather request returned error status",
                url=url,
                params=params,
                status_code=response.status_code,
                response=response.text
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=f"Unexpected status {response.status_code}",
                details={"path": path, "status_code": response.status_code}
            )

        try:
            return response.json()
        except ValueError:
            raise ExternalServiceError(
                service=self.service_name,
                message="Invalid JSON response",
                details={"path": path}
            )

    async def geocode(self, city: str) -> Optional[GeoLocation]:
        """Resolve a city name to its first geocoding match."""
        matches = await self._get_json("/geo/1.0/direct", {"q": city, "limit": 1})
        if not isinstance(matches, list) or not matches:
            self.logger.info("City not resolvable", city=city)
            return None

        match = matches[0]
        if match.get("lat") is None or match.get("lon") is None:
            self.logger.warning("Geocoding match without coordinates", city=city)
            return None

        return GeoLocation(
            name=match.get("name") or city,
            country=match.get("country"),
            latitude=match["lat"],
            longitude=match["lon"]
        )

    async def get_pollutants(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """Current pollutant concentrations keyed by component name."""
        data = await self._get_json("/data/2.5/air_pollution", {"lat": latitude, "lon": longitude})
        readings = data.get("list") if isinstance(data, dict) else None
        if not readings:
            return {}
        return readings[0].get("components") or {}

    async def get_uv_index(self, latitude: float, longitude: float) -> Optional[float]:
        """Current UV index, or None when not reported."""
        data = await self._get_json("/data/2.5/uvi", {"lat": latitude, "lon": longitude})
        if not isinstance(data, dict):
            return None
        return data.get("value")
