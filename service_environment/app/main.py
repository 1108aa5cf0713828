"""
Environment service for AirCare Access Services.
"""

from typing import Any, Dict, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AccessLayerException
from shared.kv_store import KeyValueStore, RedisKeyValueStore

from .adapters import OpenMeteoClient, OpenWeatherClient
from .aggregation.aggregator import Aggregator
from .caching.cache_aside import CacheAsideController
from .caching.singleflight import SingleFlight, StoreLease


class EnvironmentService(BaseService):
    """Environment data service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[KeyValueStore] = None,
        aggregator: Optional[Aggregator] = None
    ):
        super().__init__("environment", 8020, config)

        self.store = store or RedisKeyValueStore(self.config.redis_url)
        self.aggregator = aggregator or self._build_aggregator()
        self.cache = CacheAsideController(
            self.store,
            self.aggregator,
            self.config.cache_table,
            ttl_seconds=self.config.cache_ttl_seconds,
            singleflight=SingleFlight(),
            lease=StoreLease(
                self.store,
                f"{self.config.cache_table}Lease",
                lease_seconds=self.config.cache_fill_lease_seconds
            ),
            fill_wait_seconds=self.config.cache_fill_wait_seconds,
            metrics=self.metrics
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.stop()

        self._setup_environment_routes()

    def _build_aggregator(self) -> Aggregator:
        openweather = OpenWeatherClient(
            self.config.openweather_url,
            self.config.openweather_api_key.get_secret_value(),
            timeout=self.config.upstream_timeout_seconds,
            transport_retries=self.config.upstream_transport_retries
        )
        open_meteo = OpenMeteoClient(
            self.config.open_meteo_url,
            timeout=self.config.upstream_timeout_seconds,
            transport_retries=self.config.upstream_transport_retries
        )
        return Aggregator(openweather, openweather, openweather, open_meteo, metrics=self.metrics)

    def _setup_environment_routes(self):
        """Set up environment-specific routes."""

        @self.app.get("/environment")
        async def get_environment(city: Optional[str] = Query(None, description="City name")):
            """Aggregated environmental data for a city."""
            try:
                result = await self.cache.fetch_environment(city)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Environment lookup failed", city=city, error=str(e), exc_info=True)
                raise AccessLayerException("INTERNAL_ERROR", str(e) or "Internal error")

            return {"success": True, "data": result.data, "source": result.source}

        @self.app.options("/environment")
        async def environment_preflight():
            """CORS preflight."""
            return {"ok": True}

    def _error_body(self, exc: AccessLayerException) -> Dict[str, Any]:
        return {"success": False, "error": exc.message}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check environment service dependencies."""
        return {"redis": "ok" if await self.store.health_check() else "error"}


def create_app():
    """Create environment service application."""
    service = EnvironmentService()
    return service.app


if __name__ == "__main__":
    service = EnvironmentService()
    service.run()
