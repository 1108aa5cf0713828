"""
Symptom worker service for AirCare Access Services.
"""

from typing import Dict, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.kv_store import KeyValueStore, RedisKeyValueStore
from shared.message_queue import KafkaMessageQueue, MessageQueue

from .consumer import IngestionConsumer


class SymptomWorkerService(BaseService):
    """Background persistence of queued symptom entries."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[KeyValueStore] = None,
        queue: Optional[MessageQueue] = None,
        autostart: bool = True
    ):
        super().__init__("symptom_worker", 8022, config)

        self.store = store or RedisKeyValueStore(self.config.redis_url)
        self.queue = queue or KafkaMessageQueue(
            self.config.kafka_bootstrap,
            self.config.symptom_topic,
            group_id=self.config.symptom_consumer_group
        )
        self.consumer = IngestionConsumer(
            self.queue,
            self.store,
            self.config.symptom_table,
            batch_size=self.config.consumer_batch_size,
            poll_timeout_ms=self.config.consumer_poll_timeout_ms,
            metrics=self.metrics
        )
        self.autostart = autostart

        @self.app.on_event("startup")
        async def _startup():
            if self.autostart:
                await self.queue.start(produce=False, consume=True)
                await self.consumer.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.consumer.stop()
            await self.queue.stop()
            await self.store.stop()

        self._setup_worker_routes()

    def _setup_worker_routes(self):
        """Set up worker-specific routes."""

        @self.app.get("/worker/stats")
        async def worker_stats():
            """Consumer counters since start."""
            return {
                "running": self.consumer.is_running(),
                **self.consumer.stats
            }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check worker dependencies."""
        return {
            "redis": "ok" if await self.store.health_check() else "error",
            "kafka": "ok" if await self.queue.health_check() else "error",
            "consumer": "running" if self.consumer.is_running() else "stopped"
        }


def create_app():
    """Create symptom worker application."""
    service = SymptomWorkerService()
    return service.app


if __name__ == "__main__":
    service = SymptomWorkerService()
    service.run()
