"""
Cache-aside controller for environmental data.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import InvalidInputError, StoreUnavailableError
from shared.kv_store import KeyValueStore
from ..aggregation.aggregator import Aggregator
from ..models import CacheEntry, CacheResult
from .singleflight import SingleFlight, StoreLease

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 24 * 60 * 60
SOURCE_CACHE = "cache"
SOURCE_LIVE = "live"


class CacheAsideController:
    """Read-through cache in front of the aggregator.

    A fresh entry (``ttl > now``) is served without touching upstream. A
    miss or stale entry triggers one aggregation and one write-back with
    ``ttl = now + ttl_seconds``. Write-back failures never fail the read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        aggregator: Aggregator,
        table: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        singleflight: Optional[SingleFlight] = None,
        lease: Optional[StoreLease] = None,
        fill_wait_seconds: float = 3.0,
        fill_poll_interval: float = 0.2,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.store = store
        self.aggregator = aggregator
        self.table = table
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.singleflight = singleflight or SingleFlight()
        self.lease = lease
        self.fill_wait_seconds = fill_wait_seconds
        self.fill_poll_interval = fill_poll_interval
        self.metrics = metrics
        self.logger = get_logger("environment.cache")

    @staticmethod
    def normalize_key(city: str) -> str:
        """Case-insensitive cache identity for a city name."""
        return city.strip().lower()

    async def fetch_environment(self, city: Optional[str]) -> CacheResult:
        """Serve ``city`` from cache, or aggregate and repopulate.

        Raises:
            InvalidInputError: ``city`` is missing or blank.
            NotFoundError: the city does not geocode.
            ExternalServiceError: mandatory upstream failure.
        """
        city = (city or "").strip()
        if not city:
            raise InvalidInputError("Missing city name")

        city_key = self.normalize_key(city)
        cached = await self._read_fresh(city_key)
        if cached is not None:
            self._record_lookup("hit")
            self.logger.debug("Cache hit", city_key=city_key)
            return CacheResult(data=cached, source=SOURCE_CACHE)

        self._record_lookup("miss")
        return await self.singleflight.do(city_key, lambda: self._fill(city, city_key))

    async def _read_fresh(self, city_key: str) -> Optional[Dict[str, Any]]:
        try:
            item = await self.store.get_item(self.table, city_key)
        except StoreUnavailableError as exc:
            self.logger.warning("Cache read failed, serving live data", city_key=city_key, error=str(exc))
            return None

        entry = CacheEntry.from_item(item)
        if entry is None or not entry.is_fresh(self.clock()):
            return None
        return entry.data

    async def _fill(self, city: str, city_key: str) -> CacheResult:
        lease = await self.lease.acquire(city_key) if self.lease else None
        try:
            if lease is not None and lease.contended:
                cached = await self._wait_for_fill(city_key)
                if cached is not None:
                    self._record_lookup("coalesced")
                    return CacheResult(data=cached, source=SOURCE_CACHE)
                self.logger.info("Cache fill by lease holder not observed, aggregating", city_key=city_key)

            start = time.perf_counter()
            record = await self.aggregator.resolve_and_merge(city)
            if self.metrics:
                self.metrics.observe_histogram("aggregation_duration_seconds", time.perf_counter() - start)

            payload = record.to_payload()
            await self._write_back(city_key, payload)
            return CacheResult(data=payload, source=SOURCE_LIVE)
        finally:
            if lease is not None:
                await self.lease.release(lease)

    async def _wait_for_fill(self, city_key: str) -> Optional[Dict[str, Any]]:
        """Poll for the lease holder's write, bounded by ``fill_wait_seconds``."""
        deadline = time.monotonic() + self.fill_wait_seconds
        while time.monotonic() < deadline:
            await asyncio.sleep(self.fill_poll_interval)
            cached = await self._read_fresh(city_key)
            if cached is not None:
                return cached
        return None

    async def _write_back(self, city_key: str, payload: Dict[str, Any]) -> None:
        expires_at = int(self.clock()) + self.ttl_seconds
        entry = CacheEntry(city_key=city_key, data=payload, ttl=expires_at)
        try:
            await self.store.put_item(self.table, city_key, entry.to_item(), expires_at=expires_at)
            self.logger.info("Cache entry written", city_key=city_key, ttl=expires_at)
        except StoreUnavailableError as exc:
            self.logger.error("Cache write-back failed", city_key=city_key, error=str(exc))
            if self.metrics:
                self.metrics.record_error("CACHE_WRITE_FAILED")

    def _record_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", result=result)
