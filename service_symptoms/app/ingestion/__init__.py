"""
Ingestion package: resolve the caller, stamp the entry, enqueue it.
"""

from .identity import CallerIdentityResolver, GatewayClaimsResolver
from .producer import IngestionProducer

__all__ = [
    "CallerIdentityResolver",
    "GatewayClaimsResolver",
    "IngestionProducer",
]
