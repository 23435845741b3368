# backend/quotehub/services/data_provider/__init__.py
"""
Data provider package.

This package contains:
- Abstract interface for data providers (base.py)
- Shared data transfer objects (types.py)
- Yahoo Finance, CoinGecko and gateway client implementations
- DataProviderService, which aggregates them (service.py)

Usage:
    from quotehub.services.data_provider import (
        DataProviderService,
        AssetProfileIdentifier,
        YahooFinanceProvider,
    )

Architecture:
    DataProviderInterface (ABC)
    ├── YahooFinanceProvider   (YAHOO)
    ├── CoinGeckoProvider      (COINGECKO)
    └── GhostfolioProvider     (GHOSTFOLIO, remote gateway)

    DataProviderService
    └── Routes by data source, batches, caches quotes in Redis
"""

# Base provider interface and data classes
from quotehub.services.data_provider.base import DataProviderInterface
from quotehub.services.data_provider.types import (
    AssetProfile,
    AssetProfileIdentifier,
    DataProviderInfo,
    DataProviderResponse,
    Granularity,
    HistoricalDataItem,
    HistoricalSeries,
    LookupItem,
    LookupResponse,
    MarketState,
)
# Concrete implementations
from quotehub.services.data_provider.coingecko import CoinGeckoProvider
from quotehub.services.data_provider.ghostfolio import GhostfolioProvider
from quotehub.services.data_provider.yahoo import YahooFinanceProvider
# Aggregation
from quotehub.services.data_provider.service import DataProviderService

__all__ = [
    # Abstract interface
    "DataProviderInterface",
    # Data classes
    "AssetProfile",
    "AssetProfileIdentifier",
    "DataProviderInfo",
    "DataProviderResponse",
    "Granularity",
    "HistoricalDataItem",
    "HistoricalSeries",
    "LookupItem",
    "LookupResponse",
    "MarketState",
    # Concrete implementations
    "CoinGeckoProvider",
    "GhostfolioProvider",
    "YahooFinanceProvider",
    # Aggregation
    "DataProviderService",
]
