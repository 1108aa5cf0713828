"""
Data models for the Environment Service.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Marker for any measurement a source did not provide
UNAVAILABLE = "N/A"

POLLUTANT_FIELDS = ("pm2_5", "pm10", "co", "no2", "o3", "so2")

Measurement = Union[int, float, str]


@dataclass(frozen=True)
class GeoLocation:
    """Resolved location for a city name."""
    name: str
    country: Optional[str]
    latitude: float
    longitude: float


@dataclass(frozen=True)
class AqiSeries:
    """Hourly air-quality index series as returned upstream."""
    times: List[Optional[str]]
    values: List[Optional[Measurement]]


class AggregatedRecord(BaseModel):
    """Canonical merged measurement record for a city."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    city: str
    country: Measurement = UNAVAILABLE
    latitude: float
    longitude: float
    aqi: Measurement = UNAVAILABLE
    pm2_5: Measurement = UNAVAILABLE
    pm10: Measurement = UNAVAILABLE
    co: Measurement = UNAVAILABLE
    no2: Measurement = UNAVAILABLE
    o3: Measurement = UNAVAILABLE
    so2: Measurement = UNAVAILABLE
    uv_index: Measurement = UNAVAILABLE
    fetched_at: str = Field(alias="fetchedAt")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready payload as served and cached."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload plus its absolute expiry in epoch seconds."""
    city_key: str
    data: Dict[str, Any]
    ttl: int

    def is_fresh(self, now: float) -> bool:
        return self.ttl > now

    def to_item(self) -> Dict[str, Any]:
        return {"cityKey": self.city_key, "data": self.data, "ttl": self.ttl}

    @classmethod
    def from_item(cls, item: Optional[Dict[str, Any]]) -> Optional["CacheEntry"]:
        """Rebuild an entry; items without a numeric ttl or a payload are ignored."""
        if not item:
            return None
        ttl = item.get("ttl")
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            return None
        if not isinstance(item.get("data"), dict):
            return None
        return cls(city_key=item.get("cityKey", ""), data=item["data"], ttl=int(ttl))


@dataclass(frozen=True)
class CacheResult:
    """Environment payload and where it came from ("cache" or "live")."""
    data: Dict[str, Any]
    source: str
