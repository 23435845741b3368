# backend/quotehub/services/data_provider/service.py
"""
DataProviderService: the single entry point to market data.

Callers ask for (data source, symbol) pairs; this service picks the provider
for each data source, batches symbols, fans requests out concurrently and
merges the results.

Quote pipeline (get_quotes):
1. USDUSX is answered with a fixed price of 100
2. Quotes still in the Redis cache are returned as-is
3. The rest is grouped by data source and split into chunks of the
   provider's batch size
4. Chunks are fetched in a thread pool
5. Fetched quotes are cached; root currency pairs also yield their derived
   pairs (USDGBP -> USDGBp)
6. Open-market prices are persisted as INTRADAY rows for today

Provider calls run in worker threads. Caching and database writes stay on
the calling thread, so the request's Session is never shared between
threads.
"""

import dataclasses
import json
import logging
import re
import time
from datetime import date
from decimal import Decimal
from functools import partial
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotehub.config import Settings, settings
from quotehub.models import AssetSubClass, DataSource, MarketDataState, Role, SubscriptionType, User
from quotehub.services.constants import (
    DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
    DATA_SOURCES_LEGACY_CUTOFF,
    DEFAULT_CURRENCY,
    DERIVED_CURRENCIES,
    MIN_SEARCH_QUERY_LENGTH,
    PROPERTY_API_KEY_GHOSTFOLIO,
    PROPERTY_DATA_SOURCE_MAPPING,
    USX_MARKET_PRICE,
    USX_SYMBOL,
)
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
from quotehub.services.exceptions import DataProviderNotFoundError
from quotehub.services.market_data_service import MarketDataService, MarketDataUpdate
from quotehub.services.property_service import PropertyService
from quotehub.services.redis_cache import RedisCacheService
from quotehub.utils.concurrency import run_concurrently
from quotehub.utils.currency import get_currency_from_symbol, is_currency, is_derived_currency
from quotehub.utils.date_utils import (
    each_day_of_interval,
    format_date,
    get_start_of_utc_date,
    get_yesterday,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Pair symbols that are never taken from a provider response as-is
_SYNTHETIC_PAIR_SYMBOLS: frozenset[str] = frozenset(
    [f"{DEFAULT_CURRENCY}{derived.currency}" for derived in DERIVED_CURRENCIES] + [USX_SYMBOL]
)

_TRAILING_DEFAULT_CURRENCY = re.compile(rf" {DEFAULT_CURRENCY}$")


class DataProviderService:
    """
    Aggregates the registered data providers.

    Args:
        providers: One provider per data source
        cache: Quote cache
        property_service: Runtime properties (data source mapping, gateway key)
        market_data_service: Persistence of daily prices
        config: Application settings
    """

    def __init__(
            self,
            providers: list[DataProviderInterface],
            cache: RedisCacheService,
            property_service: PropertyService,
            market_data_service: MarketDataService,
            config: Settings = settings,
    ) -> None:
        self._providers = providers
        self._cache = cache
        self._property_service = property_service
        self._market_data_service = market_data_service
        self._config = config
        self._data_provider_mapping: dict[str, str] = {}

    @property
    def providers(self) -> list[DataProviderInterface]:
        return list(self._providers)

    def initialize(self, db: Session) -> None:
        """Load the DATA_SOURCE_MAPPING property."""
        self._data_provider_mapping = (
            self._property_service.get_by_key(db, PROPERTY_DATA_SOURCE_MAPPING) or {}
        )
        if self._data_provider_mapping:
            logger.info(f"Data source mapping loaded: {self._data_provider_mapping}")

    # =========================================================================
    # PROVIDER SELECTION
    # =========================================================================

    def get_data_provider(self, data_source: DataSource | str) -> DataProviderInterface:
        """
        The provider serving data_source, after applying the data source mapping.

        Raises:
            DataProviderNotFoundError: No registered provider matches
        """
        name = data_source.value if isinstance(data_source, DataSource) else str(data_source)

        mapped_name = self._data_provider_mapping.get(name)
        if mapped_name:
            for provider in self._providers:
                if provider.get_name().value == mapped_name:
                    return provider

        for provider in self._providers:
            if provider.get_name().value == name:
                return provider

        raise DataProviderNotFoundError(data_source=name)

    def get_data_source_for_exchange_rates(self) -> DataSource:
        return DataSource(self._config.data_source_exchange_rates)

    def get_data_source_for_import(self) -> DataSource:
        return DataSource(self._config.data_source_import)

    def get_data_sources(
            self,
            db: Session,
            user: User,
            include_ghostfolio: bool = False,
    ) -> list[DataSource]:
        """
        Data sources offered to the user, sorted by name.

        Non-admin users created before the legacy cutoff keep the legacy
        list when one is configured. GHOSTFOLIO is added when asked for or
        when a gateway API key is stored.
        """
        names = self._config.data_sources

        if (
            user.role != Role.ADMIN
            and get_start_of_utc_date(user.created_at) < DATA_SOURCES_LEGACY_CUTOFF
            and self._config.data_sources_legacy
        ):
            names = self._config.data_sources_legacy

        data_sources = {DataSource(name) for name in names}

        ghostfolio_api_key = self._property_service.get_by_key(db, PROPERTY_API_KEY_GHOSTFOLIO)
        if include_ghostfolio or ghostfolio_api_key:
            data_sources.add(DataSource.GHOSTFOLIO)

        return sorted(data_sources, key=lambda data_source: data_source.value)

    def check_quote(self, db: Session, data_source: DataSource) -> bool:
        """True if the provider returns a positive price for its test symbol."""
        provider = self.get_data_provider(data_source)
        symbol = provider.get_test_symbol()

        quotes = self.get_quotes(
            db,
            [AssetProfileIdentifier(data_source=data_source, symbol=symbol)],
            request_timeout=DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
            use_cache=False,
        )

        quote = quotes.get(symbol)
        return quote is not None and quote.market_price > 0

    # =========================================================================
    # ASSET PROFILES & DIVIDENDS
    # =========================================================================

    def get_asset_profiles(self, items: list[AssetProfileIdentifier]) -> dict[str, AssetProfile]:
        """
        Profiles keyed by symbol.

        Raises:
            The first provider error; the whole call fails
        """
        calls = [
            (item.symbol, partial(self.get_data_provider(item.data_source).get_asset_profile, item.symbol))
            for item in _unique(items)
        ]

        response: dict[str, AssetProfile] = {}
        for symbol, outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.error(f"Asset profile lookup failed for {symbol}: {outcome}")
                raise outcome
            response[symbol] = outcome

        return response

    def get_dividends(
            self,
            data_source: DataSource,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
    ) -> HistoricalSeries:
        return self.get_data_provider(data_source).get_dividends(
            symbol,
            from_date,
            to_date,
            granularity=granularity,
            request_timeout=DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
        )

    # =========================================================================
    # HISTORICAL DATA
    # =========================================================================

    def get_historical(
            self,
            db: Session,
            items: list[AssetProfileIdentifier],
            granularity: Granularity = "month",
            from_date: date | None = None,
            to_date: date | None = None,
    ) -> dict[str, HistoricalSeries]:
        """
        Stored prices from the market_data table.

        Monthly granularity keeps the first day of each month plus every day
        from yesterday on. Database errors are logged; whatever was read
        before the failure is returned.
        """
        response: dict[str, HistoricalSeries] = {}

        if not items or from_date is None or to_date is None:
            return response

        try:
            rows = self._market_data_service.get_range(
                db,
                items,
                from_date,
                to_date,
                monthly_since=get_yesterday() if granularity == "month" else None,
            )
            for row in rows:
                response.setdefault(row.symbol, {})[format_date(row.date)] = HistoricalDataItem(
                    market_price=Decimal(row.market_price),
                )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to read historical market data: {e}")

        return response

    def get_historical_raw(
            self,
            items: list[AssetProfileIdentifier],
            from_date: date,
            to_date: date,
    ) -> dict[str, HistoricalSeries]:
        """
        Historical prices straight from the providers.

        Derived currency pairs are fetched through their root pair and
        scaled by the factor. USDUSX is 100 on every day of the range.

        Raises:
            The first provider error; the whole call fails
        """
        exchange_rates_data_source = self.get_data_source_for_exchange_rates()

        identifiers = list(items)
        for derived in DERIVED_CURRENCIES:
            derived_symbol = f"{DEFAULT_CURRENCY}{derived.currency}"
            if derived_symbol == USX_SYMBOL:
                continue

            if any(
                item.data_source == exchange_rates_data_source and item.symbol == derived_symbol
                for item in identifiers
            ):
                identifiers = [item for item in identifiers if item.symbol != derived_symbol]
                identifiers.append(AssetProfileIdentifier(
                    data_source=exchange_rates_data_source,
                    symbol=f"{DEFAULT_CURRENCY}{derived.root_currency}",
                ))

        result: dict[str, HistoricalSeries] = {}
        calls: list[tuple[str, Callable[[], dict[str, HistoricalSeries]]]] = []

        for item in _unique(identifiers):
            provider = self.get_data_provider(item.data_source)
            if not provider.can_handle(item.symbol):
                continue

            if item.symbol == USX_SYMBOL:
                result[USX_SYMBOL] = {
                    format_date(day): HistoricalDataItem(market_price=USX_MARKET_PRICE)
                    for day in each_day_of_interval(from_date, to_date)
                }
                continue

            calls.append((
                item.symbol,
                partial(
                    provider.get_historical,
                    item.symbol,
                    from_date,
                    to_date,
                    request_timeout=DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
                ),
            ))

        for symbol, outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.error(f"Historical data lookup failed for {symbol}: {outcome}")
                raise outcome
            result[symbol] = (outcome or {}).get(symbol) or {}

        for derived in DERIVED_CURRENCIES:
            root_symbol = f"{DEFAULT_CURRENCY}{derived.root_currency}"
            if root_symbol in result and root_symbol != USX_SYMBOL:
                result[f"{DEFAULT_CURRENCY}{derived.currency}"] = {
                    date_str: HistoricalDataItem(market_price=item.market_price * derived.factor)
                    for date_str, item in result[root_symbol].items()
                }

        return result

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_quotes(
            self,
            db: Session,
            items: list[AssetProfileIdentifier],
            request_timeout: float | None = None,
            use_cache: bool = True,
            user: User | None = None,
    ) -> dict[str, DataProviderResponse]:
        """
        Live quotes keyed by symbol.

        A chunk whose provider call fails is logged and left out; the other
        chunks still contribute.
        """
        response: dict[str, DataProviderResponse] = {}
        start_time_total = time.perf_counter()

        items_to_fetch: list[AssetProfileIdentifier] = []
        for item in items:
            if item.symbol == USX_SYMBOL:
                response[USX_SYMBOL] = DataProviderResponse(
                    currency="USX",
                    data_source=self.get_data_source_for_exchange_rates(),
                    market_price=USX_MARKET_PRICE,
                    market_state=MarketState.OPEN,
                )
                continue

            if use_cache:
                cached = self._get_cached_quote(item)
                if cached is not None:
                    response[item.symbol] = cached
                    continue

            items_to_fetch.append(item)

        number_of_items_in_cache = len(response)
        if number_of_items_in_cache:
            logger.debug(
                f"Fetched {number_of_items_in_cache} quote(s) from cache in "
                f"{time.perf_counter() - start_time_total:.3f} seconds"
            )

        calls: list[tuple[tuple[DataSource, list[str]], Callable[[], Any]]] = []
        for data_source, symbols in self._group_symbols_to_fetch(items_to_fetch, user).items():
            provider = self.get_data_provider(data_source)
            chunk_size = provider.get_max_number_of_symbols_per_request() or len(symbols)

            for i in range(0, len(symbols), chunk_size):
                chunk = symbols[i:i + chunk_size]
                calls.append((
                    (data_source, chunk),
                    _timed(provider.get_quotes, chunk, request_timeout=request_timeout),
                ))

        for (data_source, chunk), outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.error(
                    f"Quote lookup failed for {len(chunk)} symbol(s) from {data_source.value}: {outcome}"
                )
                continue

            result, elapsed = outcome
            self._merge_quotes(response, data_source, result)

            logger.debug(
                f"Fetched {len(chunk)} quote(s) from {data_source.value} in {elapsed:.3f} seconds"
            )

            self._store_intraday_prices(db, response)

        logger.debug(
            f"Fetched {len(items)} quote(s) in {time.perf_counter() - start_time_total:.3f} seconds"
        )

        return response

    def _get_cached_quote(self, item: AssetProfileIdentifier) -> DataProviderResponse | None:
        raw = self._cache.get(self._cache.get_quote_key(item.data_source, item.symbol))
        if not raw:
            return None

        try:
            return DataProviderResponse.from_dict(json.loads(raw))
        except ValueError as e:
            logger.warning(f"Ignoring corrupt cached quote for {item.symbol}: {e}")
            return None

    def _group_symbols_to_fetch(
            self,
            items: list[AssetProfileIdentifier],
            user: User | None,
    ) -> dict[DataSource, list[str]]:
        grouped: dict[DataSource, list[str]] = {}

        for item in items:
            provider = self.get_data_provider(item.data_source)
            currency = get_currency_from_symbol(item.symbol)

            if is_currency(currency):
                # Derived pairs come from their root pair
                if is_derived_currency(currency):
                    continue
            elif (
                provider.get_data_provider_info().is_premium
                and self._config.enable_feature_subscription
                and user is not None
                and user.subscription_type == SubscriptionType.BASIC
            ):
                continue

            symbols = grouped.setdefault(item.data_source, [])
            if item.symbol not in symbols:
                symbols.append(item.symbol)

        return grouped

    def _merge_quotes(
            self,
            response: dict[str, DataProviderResponse],
            data_source: DataSource,
            result: dict[str, DataProviderResponse],
    ) -> None:
        ttl = self._config.cache_quotes_ttl

        for symbol, quote in result.items():
            if symbol in _SYNTHETIC_PAIR_SYMBOLS:
                continue

            response[symbol] = quote
            self._cache.set(
                self._cache.get_quote_key(data_source, symbol),
                json.dumps(quote.to_dict()),
                ttl,
            )

            for derived in DERIVED_CURRENCIES:
                if symbol != f"{DEFAULT_CURRENCY}{derived.root_currency}":
                    continue

                derived_symbol = f"{DEFAULT_CURRENCY}{derived.currency}"
                response[derived_symbol] = dataclasses.replace(
                    quote,
                    currency=derived.currency,
                    market_price=quote.market_price * derived.factor,
                    market_state=MarketState.OPEN,
                )
                self._cache.set(
                    self._cache.get_quote_key(data_source, derived_symbol),
                    json.dumps(response[derived_symbol].to_dict()),
                    ttl,
                )

    def _store_intraday_prices(self, db: Session, response: dict[str, DataProviderResponse]) -> None:
        today = get_start_of_utc_date()
        updates = [
            MarketDataUpdate(
                data_source=quote.data_source,
                symbol=symbol,
                date=today,
                market_price=quote.market_price,
                state=MarketDataState.INTRADAY,
            )
            for symbol, quote in response.items()
            if quote.market_price is not None
            and quote.market_price > 0
            and quote.market_state == MarketState.OPEN
        ]

        try:
            self._market_data_service.update_many(db, updates)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Failed to store intraday prices: {e}")

    # =========================================================================
    # SEARCH
    # =========================================================================

    def search(
            self,
            db: Session,
            query: str,
            user: User,
            include_indices: bool = False,
    ) -> LookupResponse:
        """
        Search every data source offered to the user.

        Items without a currency are dropped. With subscription gating on,
        provider identity is hidden and Premium users see nothing as premium.
        """
        if not query or len(query) < MIN_SEARCH_QUERY_LENGTH:
            return LookupResponse(items=[])

        calls = [
            (
                data_source,
                partial(
                    self.get_data_provider(data_source).search,
                    query,
                    include_indices=include_indices,
                    user_id=user.id,
                ),
            )
            for data_source in self.get_data_sources(db, user)
        ]

        lookup_items: list[LookupItem] = []
        for data_source, outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.error(f"Search for '{query}' failed on {data_source.value}: {outcome}")
                continue
            lookup_items.extend(outcome.items)

        items = [
            self._present_lookup_item(item, user)
            for item in lookup_items
            if item.currency
        ]
        items.sort(key=lambda item: (item.name or "").lower())

        return LookupResponse(items=items)

    def _present_lookup_item(self, item: LookupItem, user: User) -> LookupItem:
        info = item.data_provider_info or DataProviderInfo(is_premium=False)

        if self._config.enable_feature_subscription:
            info = dataclasses.replace(
                info,
                is_premium=False if user.subscription_type == SubscriptionType.PREMIUM else info.is_premium,
                data_source=None,
                name=None,
                url=None,
            )
        else:
            info = dataclasses.replace(info, is_premium=False)

        name = item.name
        if (
            name
            and item.asset_sub_class == AssetSubClass.CRYPTOCURRENCY
            and user.is_experimental_features
        ):
            name = _TRAILING_DEFAULT_CURRENCY.sub("", name)

        return dataclasses.replace(item, name=name, data_provider_info=info)


def _timed(func: Callable[..., T], *args: Any, **kwargs: Any) -> Callable[[], tuple[T, float]]:
    def run() -> tuple[T, float]:
        start = time.perf_counter()
        result = func(*args, **kwargs)
        return result, time.perf_counter() - start

    return run


def _unique(items: list[AssetProfileIdentifier]) -> list[AssetProfileIdentifier]:
    return list(dict.fromkeys(items))
