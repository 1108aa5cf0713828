"""
Open-Meteo air-quality client for the Environment Service.
"""

from typing import Optional

import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from ..aggregation.aggregator import AirQualityIndexSource
from ..models import AqiSeries


class OpenMeteoClient(AirQualityIndexSource):
    """Client for the Open-Meteo hourly US AQI series."""

    service_name = "open_meteo"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport_retries = transport_retries
        self.transport = transport
        self.logger = get_logger("environment.open_meteo_client")

    async def get_aqi_series(self, latitude: float, longitude: float) -> AqiSeries:
        """Fetch the hourly ``us_aqi`` series (UTC timestamps)."""
        url = f"{self.base_url}/v1/air-quality"
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "hourly": "us_aqi",
            "timezone": "GMT"
        }
        transport = self.transport or httpx.AsyncHTTPTransport(retries=self.transport_retries)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=transport) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            self.logger.error("Open-Meteo request failed", url=url, params=params, error=str(exc))
            raise ExternalServiceError(service=self.service_name, message=str(exc) or exc.__class__.__name__)

        if response.status_code != 200:
            self.logger.error(
                "Open-Meteo request returned error status",
                url=url,
                params=params,
                status_code=response.status_code
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            hourly = response.json().get("hourly") or {}
        except (ValueError, AttributeError):
            raise ExternalServiceError(service=self.service_name, message="Invalid JSON response")

        values = hourly.get("us_aqi") or []
        times = hourly.get("time") or []
        if len(times) != len(values):
            times = [None] * len(values)
        return AqiSeries(times=list(times), values=list(values))
