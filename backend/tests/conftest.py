# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- A configurable mock data provider
- An in-memory stand-in for the Redis client
- User and quote factories
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("APP_NAME", "Test App")

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from quotehub.config import Settings
from quotehub.models import Base, DataSource, Role, SubscriptionType, User
from quotehub.services.data_provider.base import DataProviderInterface
from quotehub.services.data_provider.types import (
    AssetProfile,
    DataProviderInfo,
    DataProviderResponse,
    HistoricalSeries,
    LookupResponse,
    MarketState,
)
from quotehub.services.exceptions import TickerNotFoundError
from quotehub.services.market_data_service import MarketDataService
from quotehub.services.property_service import PropertyService
from quotehub.services.redis_cache import RedisCacheService


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK DATA PROVIDER
# =============================================================================

class MockDataProvider(DataProviderInterface):
    """
    Mock implementation of DataProviderInterface for testing.

    Responses are configured per symbol; unknown symbols are left out of
    quote results and raise TickerNotFoundError elsewhere. A configured
    error is raised by every call.
    """

    def __init__(
            self,
            name: DataSource = DataSource.YAHOO,
            is_premium: bool = False,
            max_symbols_per_request: int | None = None,
    ):
        self._name = name
        self._is_premium = is_premium
        self._max_symbols_per_request = max_symbols_per_request
        self._quotes: dict[str, DataProviderResponse] = {}
        self._historical: dict[str, HistoricalSeries] = {}
        self._dividends: dict[str, HistoricalSeries] = {}
        self._profiles: dict[str, AssetProfile] = {}
        self._search_results: LookupResponse = LookupResponse()
        self._unhandled: set[str] = set()
        self._error: Exception | None = None
        self.quote_calls: list[list[str]] = []
        self.historical_calls: list[str] = []
        super().__init__()

    def get_name(self) -> DataSource:
        return self._name

    def get_data_provider_info(self) -> DataProviderInfo:
        return DataProviderInfo(
            is_premium=self._is_premium,
            data_source=self._name,
            name=f"Mock {self._name.value}",
            url="https://example.com",
        )

    def get_max_number_of_symbols_per_request(self) -> int | None:
        return self._max_symbols_per_request

    def get_test_symbol(self) -> str:
        return "TEST"

    def can_handle(self, symbol: str) -> bool:
        return symbol not in self._unhandled

    # Configuration

    def add_quote(self, symbol: str, price: str, currency: str = "USD",
                  state: MarketState = MarketState.OPEN) -> None:
        self._quotes[symbol] = create_quote(price, currency=currency, data_source=self._name, state=state)

    def add_historical(self, symbol: str, series: HistoricalSeries) -> None:
        self._historical[symbol] = series

    def add_dividends(self, symbol: str, series: HistoricalSeries) -> None:
        self._dividends[symbol] = series

    def add_profile(self, profile: AssetProfile) -> None:
        self._profiles[profile.symbol] = profile

    def set_search_results(self, response: LookupResponse) -> None:
        self._search_results = response

    def set_unhandled(self, symbol: str) -> None:
        self._unhandled.add(symbol)

    def set_error(self, error: Exception | None) -> None:
        self._error = error

    # Interface

    def get_quotes(self, symbols, request_timeout=None):
        self.quote_calls.append(list(symbols))
        if self._error:
            raise self._error
        return {symbol: self._quotes[symbol] for symbol in symbols if symbol in self._quotes}

    def get_historical(self, symbol, from_date, to_date, granularity="day", request_timeout=None):
        self.historical_calls.append(symbol)
        if self._error:
            raise self._error
        return {symbol: self._historical.get(symbol, {})}

    def get_dividends(self, symbol, from_date, to_date, granularity="day", request_timeout=None):
        if self._error:
            raise self._error
        return self._dividends.get(symbol, {})

    def get_asset_profile(self, symbol):
        if self._error:
            raise self._error
        if symbol not in self._profiles:
            raise TickerNotFoundError(symbol=symbol, provider=self._name.value)
        return self._profiles[symbol]

    def search(self, query, include_indices=False, user_id=None):
        if self._error:
            raise self._error
        return self._search_results


@pytest.fixture
def mock_provider() -> MockDataProvider:
    """Create a fresh mock provider for each test."""
    return MockDataProvider()


# =============================================================================
# CACHE FIXTURES
# =============================================================================

class FakeRedis:
    """Dict-backed stand-in for the few redis.Redis commands the cache uses."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def ping(self):
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> RedisCacheService:
    return RedisCacheService(fake_redis, default_ttl=60)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def property_service() -> PropertyService:
    return PropertyService()


@pytest.fixture
def market_data_service() -> MarketDataService:
    return MarketDataService()


def create_settings(**overrides) -> Settings:
    """Settings for the test environment with explicit overrides."""
    return Settings(environment="test", database_url="sqlite:///:memory:", **overrides)


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def create_quote(
        price: str,
        currency: str = "USD",
        data_source: DataSource = DataSource.YAHOO,
        state: MarketState = MarketState.OPEN,
) -> DataProviderResponse:
    """Factory function for creating DataProviderResponse test data."""
    return DataProviderResponse(
        currency=currency,
        data_source=data_source,
        market_price=Decimal(price),
        market_state=state,
    )


def create_user(
        db: Session,
        role: Role = Role.USER,
        subscription_type: SubscriptionType = SubscriptionType.BASIC,
        created_at: datetime | None = None,
        is_experimental_features: bool = False,
) -> User:
    """Factory function for persisted users."""
    user = User(
        role=role,
        subscription_type=subscription_type,
        is_experimental_features=is_experimental_features,
        created_at=created_at or datetime(2025, 6, 1, tzinfo=timezone.utc),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db) -> User:
    return create_user(db, role=Role.ADMIN)


@pytest.fixture
def premium_user(db) -> User:
    return create_user(db, subscription_type=SubscriptionType.PREMIUM)


@pytest.fixture
def basic_user(db) -> User:
    return create_user(db)

