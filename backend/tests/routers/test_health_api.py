# tests/routers/test_health_api.py
"""
Integration tests for the health endpoints.

- GET /api/v1/health
- GET /api/v1/health/live
- GET /api/v1/health/data-provider/{data_source}
"""

import os
from unittest.mock import MagicMock, patch

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("APP_NAME", "Test App")

import redis
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from quotehub.database import get_db
from quotehub.dependencies import get_data_provider_service, get_redis_cache
from quotehub.main import app
from quotehub.models import DataSource
from quotehub.services.data_provider import DataProviderService
from quotehub.services.exceptions import ProviderUnavailableError
from quotehub.services.market_data_service import MarketDataService
from quotehub.services.property_service import PropertyService
from quotehub.services.redis_cache import RedisCacheService
from tests.conftest import MockDataProvider, create_settings


@pytest.fixture
def yahoo() -> MockDataProvider:
    return MockDataProvider(name=DataSource.YAHOO)


@pytest.fixture
def coingecko() -> MockDataProvider:
    return MockDataProvider(name=DataSource.COINGECKO)


@pytest.fixture
def data_provider_service(yahoo, coingecko, cache) -> DataProviderService:
    return DataProviderService(
        providers=[yahoo, coingecko],
        cache=cache,
        property_service=PropertyService(),
        market_data_service=MarketDataService(),
        config=create_settings(),
    )


@pytest.fixture
def override_db(db):
    """Route get_db to the test session; tests may swap in another session."""
    state = {"session": db}

    def override_get_db():
        yield state["session"]

    app.dependency_overrides[get_db] = override_get_db
    return state


@pytest.fixture
def client(override_db, cache, data_provider_service) -> TestClient:
    app.dependency_overrides[get_redis_cache] = lambda: cache
    app.dependency_overrides[get_data_provider_service] = lambda: data_provider_service

    with patch("quotehub.main.get_data_provider_service", return_value=data_provider_service):
        with TestClient(app) as c:
            yield c

    app.dependency_overrides.clear()


class TestHealthCheck:

    def test_all_healthy(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["checks"]) == {"database", "cache", "data_provider_yahoo", "data_provider_coingecko"}
        assert body["checks"]["data_provider_yahoo"]["circuit_breaker"]["state"] == "closed"

    def test_open_breaker_is_degraded(self, client, yahoo):
        yahoo._get_circuit_breaker().force_open()

        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["data_provider_yahoo"]["status"] == "unhealthy"

    def test_cache_down_is_degraded(self, client):
        failing = MagicMock()
        failing.ping.side_effect = redis.ConnectionError("refused")
        app.dependency_overrides[get_redis_cache] = lambda: RedisCacheService(failing)

        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["cache"]["status"] == "unhealthy"

    def test_database_down_is_unhealthy(self, client, override_db):
        broken = MagicMock()
        broken.execute.side_effect = SQLAlchemyError("connection lost")
        override_db["session"] = broken

        response = client.get("/api/v1/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["checks"]["database"]["critical"] is True


class TestLiveness:

    def test_live(self, client):
        response = client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}


class TestDataProviderCheck:

    def test_ok(self, client, yahoo):
        yahoo.add_quote("TEST", "10")

        response = client.get("/api/v1/health/data-provider/YAHOO")

        assert response.status_code == 200
        assert response.json() == {"status": "OK"}

    def test_bypasses_cache(self, client, yahoo, fake_redis):
        yahoo.add_quote("TEST", "10")

        client.get("/api/v1/health/data-provider/YAHOO")
        client.get("/api/v1/health/data-provider/YAHOO")

        assert yahoo.quote_calls == [["TEST"], ["TEST"]]

    def test_no_quote(self, client):
        response = client.get("/api/v1/health/data-provider/YAHOO")

        assert response.status_code == 503
        assert response.json()["error"] == "ServiceUnavailableError"

    def test_zero_price(self, client, yahoo):
        yahoo.add_quote("TEST", "0")

        assert client.get("/api/v1/health/data-provider/YAHOO").status_code == 503

    def test_provider_error(self, client, yahoo):
        yahoo.set_error(ProviderUnavailableError(provider="YAHOO", reason="down"))

        assert client.get("/api/v1/health/data-provider/YAHOO").status_code == 503

    def test_unregistered_data_source(self, client):
        assert client.get("/api/v1/health/data-provider/GHOSTFOLIO").status_code == 503

    def test_invalid_data_source(self, client):
        response = client.get("/api/v1/health/data-provider/NOPE")

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid data source: NOPE"
