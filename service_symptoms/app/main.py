"""
Symptom service for AirCare Access Services.
"""

import json
from typing import Any, Dict, Optional

from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AccessLayerException, InvalidInputError, MethodNotSupportedError
from shared.kv_store import KeyValueStore, RedisKeyValueStore
from shared.logging import bind_owner
from shared.message_queue import KafkaMessageQueue, MessageQueue

from .ingestion import CallerIdentityResolver, GatewayClaimsResolver, IngestionProducer
from .logs import LogAccess

UNSUPPORTED_METHODS = ["PUT", "PATCH"]


class SymptomsService(BaseService):
    """Symptom log service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[KeyValueStore] = None,
        queue: Optional[MessageQueue] = None,
        identity_resolver: Optional[CallerIdentityResolver] = None
    ):
        super().__init__("symptoms", 8021, config)

        self.store = store or RedisKeyValueStore(self.config.redis_url)
        self.queue = queue or KafkaMessageQueue(
            self.config.kafka_bootstrap,
            self.config.symptom_topic,
            send_timeout=self.config.queue_send_timeout_seconds
        )
        self.identity_resolver = identity_resolver or GatewayClaimsResolver(self.config.identity_header)
        self.producer = IngestionProducer(self.queue, metrics=self.metrics)
        self.log_access = LogAccess(self.store, self.config.symptom_table)

        @self.app.on_event("startup")
        async def _startup():
            await self.queue.start(produce=True)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.queue.stop()
            await self.store.stop()

        self._setup_symptom_routes()

    def _resolve_owner(self, request: Request) -> str:
        owner_id = self.identity_resolver.resolve(request)
        bind_owner(owner_id)
        return owner_id

    async def _read_body(self, request: Request) -> Any:
        raw = await request.body()
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise InvalidInputError("Request body must be valid JSON")

    def _setup_symptom_routes(self):
        """Set up symptom-specific routes."""

        @self.app.post("/symptoms", status_code=202)
        async def add_symptom(request: Request):
            """Queue a new symptom entry."""
            owner_id = self._resolve_owner(request)
            fields = await self._read_body(request)
            try:
                result = await self.producer.submit(owner_id, fields)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Symptom submission failed", error=str(e), exc_info=True)
                raise AccessLayerException("INTERNAL_ERROR", str(e) or "Internal server error")
            return {"message": "Symptom entry queued", "id": result["id"]}

        @self.app.get("/symptoms")
        async def list_symptoms(request: Request):
            """Return the caller's stored symptom entries."""
            owner_id = self._resolve_owner(request)
            try:
                return await self.log_access.list(owner_id)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Symptom listing failed", error=str(e), exc_info=True)
                raise AccessLayerException("INTERNAL_ERROR", str(e) or "Internal server error")

        @self.app.delete("/symptoms/{record_id}")
        async def delete_symptom(record_id: str, request: Request):
            """Delete one of the caller's entries."""
            owner_id = self._resolve_owner(request)
            try:
                return await self.log_access.remove(owner_id, record_id)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Symptom deletion failed", id=record_id, error=str(e), exc_info=True)
                raise AccessLayerException("INTERNAL_ERROR", str(e) or "Internal server error")

        @self.app.delete("/symptoms")
        async def delete_without_id(request: Request):
            self._resolve_owner(request)
            raise InvalidInputError("Missing ID for deletion")

        @self.app.api_route("/symptoms", methods=UNSUPPORTED_METHODS)
        @self.app.api_route("/symptoms/{record_id}", methods=UNSUPPORTED_METHODS)
        async def unsupported_method(request: Request):
            self._resolve_owner(request)
            raise MethodNotSupportedError()

        @self.app.options("/symptoms")
        @self.app.options("/symptoms/{record_id}")
        async def symptoms_preflight():
            """CORS preflight."""
            return {"message": "CORS preflight OK"}

    def _error_body(self, exc: AccessLayerException) -> Dict[str, Any]:
        return {"error": exc.message}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check symptom service dependencies."""
        return {
            "redis": "ok" if await self.store.health_check() else "error",
            "kafka": "ok" if await self.queue.health_check() else "error"
        }


def create_app():
    """Create symptom service application."""
    service = SymptomsService()
    return service.app


if __name__ == "__main__":
    service = SymptomsService()
    service.run()
