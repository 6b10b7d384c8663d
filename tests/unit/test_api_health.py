"""Tests for the health endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient

from pagewright import __version__
from pagewright.api.app import create_app
from pagewright.config.credentials import CredentialResolver, MappingLookup
from pagewright.config.schema import PagewrightConfig
from pagewright.core.errors import ProviderOverloadedError
from tests.fixtures.providers import MockProvider, make_factory


def _client(*providers: MockProvider) -> TestClient:
    app = create_app(
        PagewrightConfig(),
        resolver=CredentialResolver([MappingLookup({})]),
        factory=make_factory(*providers),
    )
    return TestClient(app)


class TestHealth:
    def test_basic(self):
        with _client() as client:
            resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestHealthDetailed:
    def test_lists_available_providers(self):
        with _client(MockProvider("google"), MockProvider("openai", available=False)) as client:
            data = client.get("/api/health/detailed").json()
        assert data["status"] == "ok"
        assert data["version"] == __version__
        assert data["uptime_seconds"] >= 0
        assert list(data["providers"]) == ["google"]
        google = data["providers"]["google"]
        assert google["state"] == "unknown"
        assert google["available"] is True

    def test_probe(self):
        with _client(MockProvider("google", "OK")) as client:
            data = client.get("/api/health/detailed", params={"probe": "true"}).json()
        assert data["providers"]["google"]["state"] == "healthy"
        assert data["providers"]["google"]["responseTimeMs"] is not None

    def test_metrics_reported(self):
        with _client(MockProvider("google", "OK")) as client:
            data = client.get("/api/health/detailed", params={"probe": "true"}).json()
        metrics = data["providers"]["google"]["metrics"]
        assert metrics["totalChecks"] == 1
        assert metrics["successfulChecks"] == 1
        assert metrics["failedChecks"] == 0
        assert metrics["uptimePercentage"] == 100.0
        assert metrics["averageResponseTimeMs"] >= 0
        assert metrics["lastFailureTime"] is None

    def test_degraded_without_providers(self):
        with _client() as client:
            data = client.get("/api/health/detailed").json()
        assert data["status"] == "degraded"
        assert data["providers"] == {}

    def test_degraded_when_all_unhealthy(self):
        failing = MockProvider(
            "google", failures=[ProviderOverloadedError("google", "x") for _ in range(3)]
        )
        with _client(failing) as client:
            for _ in range(2):
                client.get("/api/health/detailed", params={"probe": "true"})
            data = client.get("/api/health/detailed", params={"probe": "true"}).json()
        assert data["providers"]["google"]["state"] == "unhealthy"
        assert data["status"] == "degraded"
