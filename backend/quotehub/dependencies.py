# backend/quotehub/dependencies.py
"""
Dependency injection module for FastAPI services.

Services are singletons shared across all requests, so provider circuit
breakers and the Redis connection pool are shared too. They are lazily
initialized on first use to avoid import-time side effects.

Usage in routers:
    from quotehub.dependencies import get_data_provider_service, get_gateway_user

    @router.get("/quotes")
    def get_quotes(
        user: User = Depends(get_gateway_user),
        service: DataProviderService = Depends(get_data_provider_service),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from quotehub.config import settings
from quotehub.database import SessionLocal, get_db
from quotehub.models import DataSource, User
from quotehub.services.api_key_service import ApiKeyService
from quotehub.services.constants import PROPERTY_API_KEY_GHOSTFOLIO
from quotehub.services.data_provider import (
    CoinGeckoProvider,
    DataProviderInterface,
    DataProviderService,
    GhostfolioProvider,
    YahooFinanceProvider,
)
from quotehub.services.exceptions import InvalidApiKeyError, PermissionDeniedError
from quotehub.services.gateway import GatewayService
from quotehub.services.market_data_service import MarketDataService
from quotehub.services.property_service import PropertyService
from quotehub.services.redis_cache import RedisCacheService, create_redis_client

logger = logging.getLogger(__name__)

API_KEY_SCHEME = "Api-Key"

GATEWAY_PERMISSION = "enableDataProviderGhostfolio"


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_property_service, get_market_data_service, get_redis_cache (no deps)
# 2. get_data_providers (reads properties through its own sessions)
# 3. get_data_provider_service (depends on all of the above)
# 4. get_gateway_service (depends on data provider service)


@lru_cache(maxsize=1)
def get_property_service() -> PropertyService:
    return PropertyService()


@lru_cache(maxsize=1)
def get_market_data_service() -> MarketDataService:
    return MarketDataService()


@lru_cache(maxsize=1)
def get_redis_cache() -> RedisCacheService:
    """
    Get the singleton quote cache.

    The Redis client connects lazily, so an unreachable server surfaces as
    cache misses rather than a startup failure.
    """
    logger.debug("Initializing singleton RedisCacheService")
    return RedisCacheService(
        client=create_redis_client(settings.redis_url),
        default_ttl=settings.cache_quotes_ttl,
    )


def _read_ghostfolio_api_key() -> str | None:
    with SessionLocal() as db:
        return get_property_service().get_by_key(db, PROPERTY_API_KEY_GHOSTFOLIO)


def _create_data_provider(data_source: DataSource) -> DataProviderInterface:
    if data_source == DataSource.YAHOO:
        return YahooFinanceProvider()

    if data_source == DataSource.COINGECKO:
        return CoinGeckoProvider(
            api_key_demo=settings.coingecko_api_key_demo,
            api_key_pro=settings.coingecko_api_key_pro,
        )

    return GhostfolioProvider(
        api_url=settings.gateway_api_url,
        api_key_provider=_read_ghostfolio_api_key,
    )


@lru_cache(maxsize=1)
def get_data_providers() -> tuple[DataProviderInterface, ...]:
    """
    One provider per configured data source.

    GHOSTFOLIO is always registered: it is offered as soon as a gateway API
    key is stored, which can happen at runtime.
    """
    names = {
        *settings.data_sources,
        *settings.data_sources_legacy,
        *settings.data_sources_gateway,
        settings.data_source_exchange_rates,
        settings.data_source_import,
        DataSource.GHOSTFOLIO.value,
    }
    providers = tuple(_create_data_provider(DataSource(name)) for name in sorted(names))
    logger.info(f"Registered data providers: {[p.get_name().value for p in providers]}")
    return providers


@lru_cache(maxsize=1)
def get_data_provider_service() -> DataProviderService:
    logger.debug("Initializing singleton DataProviderService")
    return DataProviderService(
        providers=list(get_data_providers()),
        cache=get_redis_cache(),
        property_service=get_property_service(),
        market_data_service=get_market_data_service(),
    )


@lru_cache(maxsize=1)
def get_gateway_service() -> GatewayService:
    logger.debug("Initializing singleton GatewayService")
    return GatewayService(
        data_provider_service=get_data_provider_service(),
        property_service=get_property_service(),
    )


@lru_cache(maxsize=1)
def get_api_key_service() -> ApiKeyService:
    return ApiKeyService(salt=settings.api_key_salt)


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def get_api_key_user(
        db: Annotated[Session, Depends(get_db)],
        api_key_service: Annotated[ApiKeyService, Depends(get_api_key_service)],
        authorization: Annotated[str | None, Header()] = None,
) -> User:
    """
    Resolve `Authorization: Api-Key <key>` to its user.

    Raises:
        InvalidApiKeyError: Missing header, other scheme or unknown key (401)
    """
    scheme, _, api_key = (authorization or "").partition(" ")
    api_key = api_key.strip()

    if scheme != API_KEY_SCHEME or not api_key:
        raise InvalidApiKeyError()

    user = api_key_service.get_user_by_api_key(db, api_key)
    if user is None:
        raise InvalidApiKeyError()

    return user


def get_gateway_user(
        user: Annotated[User, Depends(get_api_key_user)],
) -> User:
    """
    API key user allowed to use the data provider gateway.

    Raises:
        PermissionDeniedError: User lacks the gateway permission (403)
    """
    if not GatewayService.has_permission(user):
        raise PermissionDeniedError(GATEWAY_PERMISSION)
    return user


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """Drop all singletons; the next call creates fresh instances."""
    get_property_service.cache_clear()
    get_market_data_service.cache_clear()
    get_redis_cache.cache_clear()
    get_data_providers.cache_clear()
    get_data_provider_service.cache_clear()
    get_gateway_service.cache_clear()
    get_api_key_service.cache_clear()
    logger.info("Cleared all service singleton caches")
