"""
Multi-source aggregation for environmental measurements.

Geocoding is mandatory; every other source is best-effort and degrades its
fields to ``UNAVAILABLE`` instead of failing the whole record. Each field
has exactly one source: pollutants and UV index from the weather provider,
the composite US AQI from the air-quality provider.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import ExternalServiceError, NotFoundError
from ..models import (
    AggregatedRecord,
    AqiSeries,
    GeoLocation,
    Measurement,
    POLLUTANT_FIELDS,
    UNAVAILABLE,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class LocationResolver(ABC):
    @abstractmethod
    async def geocode(self, city: str) -> Optional[GeoLocation]:
        """Resolve a city; None when it does not exist."""


class PollutionSource(ABC):
    @abstractmethod
    async def get_pollutants(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """Pollutant concentrations keyed by component name."""


class UVIndexSource(ABC):
    @abstractmethod
    async def get_uv_index(self, latitude: float, longitude: float) -> Optional[float]:
        """Current UV index."""


class AirQualityIndexSource(ABC):
    @abstractmethod
    async def get_aqi_series(self, latitude: float, longitude: float) -> AqiSeries:
        """Time series of the composite air-quality index."""


def _parse_series_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def latest_value(series: AqiSeries, as_of: datetime) -> Optional[Measurement]:
    """Most recent non-null value at or before ``as_of``.

    Series without usable timestamps, or whose points all lie after
    ``as_of``, fall back to their last non-null value.
    """
    fallback = None
    for raw_time, value in zip(reversed(series.times), reversed(series.values)):
        if value is None:
            continue
        if fallback is None:
            fallback = value
        point_time = _parse_series_time(raw_time)
        if point_time is not None and point_time <= as_of:
            return value
    return fallback


class Aggregator:
    """Resolves a city and merges its measurements into one record."""

    def __init__(
        self,
        location_resolver: LocationResolver,
        pollution_source: PollutionSource,
        uv_source: UVIndexSource,
        aqi_source: AirQualityIndexSource,
        *,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.location_resolver = location_resolver
        self.pollution_source = pollution_source
        self.uv_source = uv_source
        self.aqi_source = aqi_source
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("environment.aggregator")

    async def resolve_and_merge(self, city: str) -> AggregatedRecord:
        """Geocode ``city`` and merge all best-effort sources.

        Raises:
            NotFoundError: the city does not geocode.
            ExternalServiceError: the geocoding source itself failed.
        """
        location = await self._geocode(city)
        fetched_at = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        lat, lon = location.latitude, location.longitude

        components, uv_index, aqi_series = await asyncio.gather(
            self._best_effort("pollution", self.pollution_source.get_pollutants(lat, lon), {}),
            self._best_effort("uv_index", self.uv_source.get_uv_index(lat, lon), None),
            self._best_effort("aqi", self.aqi_source.get_aqi_series(lat, lon), None),
        )

        aqi = latest_value(aqi_series, fetched_at) if aqi_series is not None else None
        if not isinstance(components, dict):
            components = {}
        pollutants = {name: _or_unavailable(components.get(name)) for name in POLLUTANT_FIELDS}

        record = AggregatedRecord(
            city=location.name,
            country=_or_unavailable(location.country),
            latitude=lat,
            longitude=lon,
            aqi=_or_unavailable(aqi),
            uv_index=_or_unavailable(uv_index),
            fetched_at=fetched_at.isoformat().replace("+00:00", "Z"),
            **pollutants
        )

        self.logger.info(
            "Aggregated environment record",
            city=city,
            resolved=location.name,
            country=location.country,
            unavailable=[k for k, v in record.to_payload().items() if v == UNAVAILABLE]
        )
        return record

    async def _geocode(self, city: str) -> GeoLocation:
        try:
            location = await self.location_resolver.geocode(city)
        except ExternalServiceError:
            raise
        except Exception as exc:
            self.logger.error("Geocoding failed", city=city, error=str(exc))
            raise ExternalServiceError(service="geocoding", message=str(exc))

        if location is None:
            raise NotFoundError("City not found", details={"city": city})
        return location

    async def _best_effort(self, source: str, call: Awaitable[Any], default: Any) -> Any:
        """Await an optional source, degrading to ``default`` on any failure."""
        try:
            return await call
        except Exception as exc:
            self.logger.warning("Upstream source degraded", source=source, error=str(exc))
            if self.metrics:
                self.metrics.increment_counter("upstream_degraded_total", source=source)
            return default


def _or_unavailable(value: Any) -> Measurement:
    if value is None or isinstance(value, (dict, list)):
        return UNAVAILABLE
    return value
