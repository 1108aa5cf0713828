"""
Caller identity resolution for the Symptom Service.

Authentication happens upstream; the gateway forwards the verified subject
claim in a header. This module only reads it.
"""

from abc import ABC, abstractmethod

from fastapi import Request

from shared.logging import get_logger
from shared.errors import AuthenticationError


class CallerIdentityResolver(ABC):
    """Maps a request to the owner id of its caller."""

    @abstractmethod
    def resolve(self, request: Request) -> str:
        """Return the owner id or raise AuthenticationError."""


class GatewayClaimsResolver(CallerIdentityResolver):
    """Reads the subject claim the gateway forwards in a header."""

    def __init__(self, header_name: str = "X-Authenticated-Subject"):
        self.header_name = header_name
        self.logger = get_logger("symptoms.identity")

    def resolve(self, request: Request) -> str:
        owner_id = (request.headers.get(self.header_name) or "").strip()
        if not owner_id:
            self.logger.warning("Request without caller identity", path=request.url.path)
            raise AuthenticationError("Missing user ID in authorizer claims")
        return owner_id
