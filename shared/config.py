"""
Shared configuration management for AirCare Access Services.
"""

from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="AIRCARE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Key-value store
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_table: str = Field(default="EnvCache")
    symptom_table: str = Field(default="SymptomLogs")

    # Queue
    kafka_bootstrap: str = Field(default="localhost:9092")
    symptom_topic: str = Field(default="aircare.symptoms.v1")
    symptom_consumer_group: str = Field(default="symptom-worker")
    consumer_batch_size: int = Field(default=10, ge=1)
    consumer_poll_timeout_ms: int = Field(default=1000, ge=0)
    queue_send_timeout_seconds: float = Field(default=10.0, gt=0)

    # Environmental data cache
    cache_ttl_seconds: int = Field(default=24 * 60 * 60, gt=0)
    cache_fill_lease_seconds: int = Field(default=10, gt=0)
    cache_fill_wait_seconds: float = Field(default=3.0, ge=0)

    # Upstream providers
    openweather_api_key: SecretStr = Field(default=SecretStr(""))
    openweather_url: str = Field(default="https://api.openweathermap.org")
    open_meteo_url: str = Field(default="https://air-quality-api.open-meteo.com")
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)
    upstream_transport_retries: int = Field(default=1, ge=0)

    # Identity supplied by the upstream gateway
    identity_header: str = Field(default="X-Authenticated-Subject")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
