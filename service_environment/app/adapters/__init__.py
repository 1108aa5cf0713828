"""
Adapters package for the Environment Service.

HTTP clients for the upstream data providers. Adapters encapsulate base
URLs, request shapes and the mapping of transport failures onto
``ExternalServiceError``. They do not retry beyond the httpx transport.
"""

from .openweather_client import OpenWeatherClient
from .open_meteo_client import OpenMeteoClient

__all__ = [
    "OpenWeatherClient",
    "OpenMeteoClient",
]
