"""
Shared utilities for the AirCare Access Services.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- kv_store: Key-value store capability and its Redis backend
- message_queue: Queue capability and its Kafka backend
- base_service: FastAPI service skeleton (CORS, health, metrics, errors)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
