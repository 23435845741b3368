# tests/routers/test_data_providers_api.py
"""
Integration tests for the data provider gateway endpoints.

These tests verify full HTTP request/response cycles for:
- GET /api/v1/data-providers/ghostfolio/asset-profile/{symbol}
- GET /api/v2/data-providers/ghostfolio/dividends/{symbol}
- GET /api/v2/data-providers/ghostfolio/historical/{symbol}
- GET /api/v2/data-providers/ghostfolio/lookup
- GET /api/v2/data-providers/ghostfolio/quotes
- GET /api/v2/data-providers/ghostfolio/status

Tests validate:
- API key authentication (401) and the gateway permission (403)
- Daily request metering (429, counted only on success)
- camelCase response bodies
- Upstream failures reported as a bare 500
"""

import os
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("APP_NAME", "Test App")

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from quotehub.database import get_db
from quotehub.dependencies import get_api_key_service, get_gateway_service
from quotehub.main import app
from quotehub.models import AssetClass, DataSource, Role, SubscriptionType, User
from quotehub.routers.data_providers import normalize_lookup_query
from quotehub.services.api_key_service import ApiKeyService
from quotehub.services.data_provider import DataProviderService
from quotehub.services.data_provider.types import (
    AssetProfile,
    HistoricalDataItem,
    LookupItem,
    LookupResponse,
)
from quotehub.services.exceptions import ProviderUnavailableError
from quotehub.services.gateway import GatewayService
from quotehub.services.market_data_service import MarketDataService
from quotehub.services.property_service import PropertyService
from quotehub.utils.date_utils import utc_now
from tests.conftest import MockDataProvider, create_settings, create_user

BASE = "/api/v2/data-providers/ghostfolio"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def yahoo() -> MockDataProvider:
    return MockDataProvider(name=DataSource.YAHOO)


@pytest.fixture
def coingecko() -> MockDataProvider:
    return MockDataProvider(name=DataSource.COINGECKO)


@pytest.fixture
def api_key_service() -> ApiKeyService:
    return ApiKeyService(salt="test-salt-for-testing-only")


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
def client(db: Session, data_provider_service, api_key_service) -> TestClient:
    """TestClient with database, gateway and API key overrides."""
    config = create_settings(data_sources_gateway=["YAHOO", "COINGECKO"])
    gateway = GatewayService(data_provider_service, PropertyService(), config=config)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_service] = lambda: gateway
    app.dependency_overrides[get_api_key_service] = lambda: api_key_service

    with patch("quotehub.main.get_data_provider_service", return_value=data_provider_service):
        with TestClient(app) as c:
            yield c

    app.dependency_overrides.clear()


def auth_headers(db: Session, api_key_service: ApiKeyService, user: User) -> dict[str, str]:
    return {"Authorization": f"Api-Key {api_key_service.create(db, user.id)}"}


@pytest.fixture
def premium_headers(db, api_key_service, premium_user) -> dict[str, str]:
    return auth_headers(db, api_key_service, premium_user)


# =============================================================================
# AUTHENTICATION & PERMISSION
# =============================================================================

class TestAuthentication:

    def test_missing_header(self, client):
        response = client.get(f"{BASE}/status")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Api-Key"
        assert response.json()["error"] == "InvalidApiKeyError"

    def test_other_scheme(self, client):
        response = client.get(f"{BASE}/status", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 401

    def test_unknown_key(self, client):
        response = client.get(f"{BASE}/status", headers={"Authorization": "Api-Key nope"})

        assert response.status_code == 401

    def test_basic_subscription_is_forbidden(self, client, db, api_key_service, basic_user):
        response = client.get(f"{BASE}/status", headers=auth_headers(db, api_key_service, basic_user))

        assert response.status_code == 403
        assert response.json()["details"] == {"permission": "enableDataProviderGhostfolio"}

    def test_admin_is_allowed(self, client, db, api_key_service, admin_user):
        response = client.get(f"{BASE}/status", headers=auth_headers(db, api_key_service, admin_user))

        assert response.status_code == 200

    def test_inactive_user_is_forbidden(self, client, db, api_key_service):
        user = create_user(db, role=Role.INACTIVE, subscription_type=SubscriptionType.PREMIUM)

        response = client.get(f"{BASE}/status", headers=auth_headers(db, api_key_service, user))

        assert response.status_code == 403


# =============================================================================
# METERING
# =============================================================================

class TestMetering:

    def test_status(self, client, premium_headers):
        response = client.get(f"{BASE}/status", headers=premium_headers)

        assert response.status_code == 200
        assert response.json() == {
            "dailyRequests": 0,
            "dailyRequestsMax": 20,
            "subscription": {"type": "Premium"},
        }

    def test_successful_request_is_counted(self, client, db, yahoo, premium_user, premium_headers):
        yahoo.add_quote("AAPL", "185")

        client.get(f"{BASE}/quotes", params={"symbols": "AAPL"}, headers=premium_headers)
        client.get(f"{BASE}/quotes", params={"symbols": "AAPL"}, headers=premium_headers)

        assert client.get(f"{BASE}/status", headers=premium_headers).json()["dailyRequests"] == 2

    def test_status_is_not_counted(self, client, premium_headers):
        client.get(f"{BASE}/status", headers=premium_headers)

        assert client.get(f"{BASE}/status", headers=premium_headers).json()["dailyRequests"] == 0

    def test_over_limit(self, client, db, premium_user, premium_headers):
        premium_user.data_provider_daily_requests = 21
        premium_user.data_provider_last_request_at = utc_now()
        db.commit()

        response = client.get(f"{BASE}/quotes", params={"symbols": "AAPL"}, headers=premium_headers)

        assert response.status_code == 429
        assert response.json()["error"] == "DailyRequestLimitExceededError"
        assert response.json()["details"] == {"daily_requests": 21, "max_daily_requests": 20}

    def test_yesterdays_requests_do_not_count(self, client, db, yahoo, premium_user, premium_headers):
        premium_user.data_provider_daily_requests = 21
        premium_user.data_provider_last_request_at = utc_now() - timedelta(days=1)
        db.commit()
        yahoo.add_quote("AAPL", "185")

        response = client.get(f"{BASE}/quotes", params={"symbols": "AAPL"}, headers=premium_headers)

        assert response.status_code == 200
        db.refresh(premium_user)
        assert premium_user.data_provider_daily_requests == 1

    def test_failed_request_is_not_counted(self, client, db, yahoo, coingecko, premium_user, premium_headers):
        yahoo.set_error(ProviderUnavailableError(provider="YAHOO", reason="down"))
        coingecko.set_error(ProviderUnavailableError(provider="COINGECKO", reason="down"))

        response = client.get(f"{BASE}/quotes", params={"symbols": "AAPL"}, headers=premium_headers)

        assert response.status_code == 500
        assert response.json() == {
            "error": "InternalServerError",
            "message": "Internal Server Error",
            "details": None,
        }
        db.refresh(premium_user)
        assert not premium_user.data_provider_daily_requests


# =============================================================================
# DATA ENDPOINTS
# =============================================================================

class TestQuotes:

    def test_quotes(self, client, yahoo, coingecko, premium_headers):
        yahoo.add_quote("AAPL", "185.5")
        coingecko.add_quote("bitcoin", "42000")

        response = client.get(f"{BASE}/quotes", params={"symbols": "AAPL, bitcoin"}, headers=premium_headers)

        assert response.status_code == 200
        assert response.json() == {"quotes": {
            "AAPL": {"currency": "USD", "dataSource": "GHOSTFOLIO", "marketPrice": 185.5, "marketState": "open"},
            "bitcoin": {"currency": "USD", "dataSource": "GHOSTFOLIO", "marketPrice": 42000.0, "marketState": "open"},
        }}

    def test_symbols_required(self, client, premium_headers):
        response = client.get(f"{BASE}/quotes", headers=premium_headers)

        assert response.status_code == 422


class TestHistoricalAndDividends:

    def test_historical(self, client, yahoo, premium_headers):
        yahoo.add_historical("AAPL", {
            "2025-01-02": HistoricalDataItem(market_price=Decimal("185")),
            "2025-01-03": HistoricalDataItem(market_price=Decimal("186.5")),
        })

        response = client.get(
            f"{BASE}/historical/AAPL",
            params={"from": "2025-01-01", "to": "2025-01-31"},
            headers=premium_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"historicalData": {
            "2025-01-02": {"marketPrice": 185.0},
            "2025-01-03": {"marketPrice": 186.5},
        }}

    def test_historical_requires_range(self, client, premium_headers):
        response = client.get(f"{BASE}/historical/AAPL", headers=premium_headers)

        assert response.status_code == 422

    def test_invalid_granularity(self, client, premium_headers):
        response = client.get(
            f"{BASE}/historical/AAPL",
            params={"from": "2025-01-01", "to": "2025-01-31", "granularity": "week"},
            headers=premium_headers,
        )

        assert response.status_code == 422

    def test_dividends(self, client, yahoo, premium_headers):
        yahoo.add_dividends("AAPL", {"2025-02-14": HistoricalDataItem(market_price=Decimal("0.25"))})

        response = client.get(
            f"{BASE}/dividends/AAPL",
            params={"from": "2025-01-01", "to": "2025-12-31", "granularity": "month"},
            headers=premium_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"dividends": {"2025-02-14": {"marketPrice": 0.25}}}


class TestAssetProfile:

    def test_profile(self, client, yahoo, premium_headers):
        yahoo.add_profile(AssetProfile(
            symbol="AAPL",
            data_source=DataSource.YAHOO,
            currency="USD",
            name="Apple Inc.",
            asset_class=AssetClass.EQUITY,
        ))

        response = client.get("/api/v1/data-providers/ghostfolio/asset-profile/AAPL", headers=premium_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["dataSource"] == "GHOSTFOLIO"
        assert body["assetClass"] == "EQUITY"
        assert body["name"] == "Apple Inc."

    def test_unknown_symbol(self, client, premium_headers):
        response = client.get("/api/v1/data-providers/ghostfolio/asset-profile/NOPE", headers=premium_headers)

        assert response.status_code == 500


class TestLookup:

    @pytest.mark.parametrize("query,expected", [
        ("ApPle", "apple"),
        ("us0378331005", "US0378331005"),
        ("US0378331005", "US0378331005"),
    ])
    def test_normalize_query(self, query, expected):
        assert normalize_lookup_query(query) == expected

    def test_lookup(self, client, yahoo, premium_headers):
        yahoo.set_search_results(LookupResponse(items=[
            LookupItem(symbol="AAPL", data_source=DataSource.YAHOO, name="Apple Inc.", currency="USD"),
        ]))

        with patch.object(yahoo, "search", wraps=yahoo.search) as search:
            response = client.get(f"{BASE}/lookup", params={"query": "APPLE"}, headers=premium_headers)

        assert search.call_args.args[0] == "apple"
        assert response.status_code == 200
        item = response.json()["items"][0]
        assert item["symbol"] == "AAPL"
        assert item["dataSource"] == "GHOSTFOLIO"
        assert item["dataProviderInfo"]["isPremium"] is False

    def test_short_query(self, client, premium_headers):
        response = client.get(f"{BASE}/lookup", params={"query": "a"}, headers=premium_headers)

        assert response.json() == {"items": []}
