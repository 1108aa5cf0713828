"""
Integration tests for the environment lookup flow against stubbed providers.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from service_environment.app.adapters import OpenMeteoClient, OpenWeatherClient
from service_environment.app.aggregation.aggregator import Aggregator
from service_environment.app.main import EnvironmentService
from shared.test_helpers import InMemoryKeyValueStore


class ProviderStub:
    """Answers both provider APIs and records the paths hit."""

    def __init__(self):
        self.paths = []
        self.aqi_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        if path == "/geo/1.0/direct":
            if request.url.params["q"].lower() == "paris":
                return httpx.Response(200, json=[{"name": "Paris", "country": "FR", "lat": 48.8589, "lon": 2.32}])
            return httpx.Response(200, json=[])
        if path == "/data/2.5/air_pollution":
            return httpx.Response(200, json={"list": [{"components": {
                "co": 201.94, "no2": 9.43, "o3": 68.66, "so2": 1.3, "pm2_5": 3.1, "pm10": 4.6
            }}]})
        if path == "/data/2.5/uvi":
            return httpx.Response(200, json={"value": 2.7})
        if path == "/v1/air-quality":
            if self.aqi_status != 200:
                return httpx.Response(self.aqi_status)
            return httpx.Response(200, json={"hourly": {
                "time": ["2000-01-01T00:00", "2000-01-01T01:00"],
                "us_aqi": [30, 32]
            }})
        return httpx.Response(404)


class TestEnvironmentFlow:
    """Service, cache and real clients over a mocked transport."""

    @pytest.fixture
    def stub(self):
        return ProviderStub()

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def client(self, stub, store):
        transport = httpx.MockTransport(stub)
        openweather = OpenWeatherClient("https://weather.test", "key", transport=transport)
        open_meteo = OpenMeteoClient("https://aq.test", transport=transport)
        aggregator = Aggregator(openweather, openweather, openweather, open_meteo)
        service = EnvironmentService(store=store, aggregator=aggregator)
        return TestClient(service.app)

    def test_live_then_cache(self, client, stub):
        first = client.get("/environment", params={"city": "Paris"})
        second = client.get("/environment", params={"city": "PARIS"})

        assert first.status_code == 200
        assert first.json()["source"] == "live"
        data = first.json()["data"]
        assert data["city"] == "Paris"
        assert data["aqi"] == 32
        assert data["uv_index"] == 2.7
        assert data["so2"] == 1.3

        assert second.json() == {"success": True, "data": data, "source": "cache"}
        assert stub.paths.count("/geo/1.0/direct") == 1

    def test_unknown_city(self, client, store):
        response = client.get("/environment", params={"city": "Atlantis"})

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert store.writes == []

    def test_aqi_provider_outage_degrades(self, client, stub):
        stub.aqi_status = 503

        response = client.get("/environment", params={"city": "Paris"})

        assert response.status_code == 200
        assert response.json()["data"]["aqi"] == "N/A"
        assert response.json()["data"]["pm10"] == 4.6
