"""
HTTP tests for the Symptom Worker Service.
"""

import pytest
from fastapi.testclient import TestClient

from service_symptom_worker.app.main import SymptomWorkerService
from shared.test_helpers import InMemoryKeyValueStore, InMemoryMessageQueue


class TestSymptomWorkerService:
    """Test cases for the worker endpoints."""

    @pytest.fixture
    def service(self):
        return SymptomWorkerService(
            store=InMemoryKeyValueStore(),
            queue=InMemoryMessageQueue(),
            autostart=False
        )

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    def test_stats_initial(self, client):
        response = client.get("/worker/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["running"] is False
        assert body["persisted"] == 0
        assert body["dropped"] == 0
        assert body["retried"] == 0

    def test_health_reports_consumer_state(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["dependencies"] == {
            "redis": "ok",
            "kafka": "ok",
            "consumer": "stopped"
        }

    def test_consumer_configured_from_settings(self, service):
        assert service.consumer.table == "SymptomLogs"
        assert service.consumer.batch_size == 10

    def test_autostart_runs_consumer(self):
        service = SymptomWorkerService(
            store=InMemoryKeyValueStore(),
            queue=InMemoryMessageQueue()
        )

        with TestClient(service.app) as client:
            assert client.get("/worker/stats").json()["running"] is True

        assert not service.consumer.is_running()
