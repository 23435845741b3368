# backend/quotehub/services/gateway/service.py
"""
GatewayService: re-exposes the gateway providers as one data source.

Other installations consume this through GhostfolioProvider. Everything
returned here is attributed to the GHOSTFOLIO data source, whichever
upstream provider actually answered.

Provider order follows DATA_SOURCES_GATEWAY. For single-symbol lookups
(profiles, historical data, dividends) the first provider with a non-empty
answer wins; quotes and search fan out to every provider at once.

Usage is metered per user and per UTC day. Counters are reset lazily: a
counter last touched on an earlier day reads as 0.
"""

import dataclasses
import logging
from datetime import date
from functools import partial
from typing import Any, Callable

from sqlalchemy.orm import Session

from quotehub.config import Settings, settings
from quotehub.models import DataSource, Role, SubscriptionType, User
from quotehub.services.circuit_breaker import CircuitBreakerOpen
from quotehub.services.constants import (
    DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
    DEFAULT_CURRENCY,
    DERIVED_CURRENCIES,
    MIN_SEARCH_QUERY_LENGTH,
    PROPERTY_DATA_SOURCES_GHOSTFOLIO_DATA_PROVIDER_MAX_REQUESTS,
    USX_MARKET_PRICE,
    USX_SYMBOL,
)
from quotehub.services.data_provider.base import DataProviderInterface
from quotehub.services.data_provider.service import DataProviderService
from quotehub.services.data_provider.types import (
    AssetProfile,
    DataProviderInfo,
    DataProviderResponse,
    Granularity,
    HistoricalSeries,
    LookupItem,
    LookupResponse,
    MarketState,
)
from quotehub.services.exceptions import (
    DailyRequestLimitExceededError,
    DataProviderError,
    NotFoundError,
    TickerNotFoundError,
)
from quotehub.services.property_service import PropertyService
from quotehub.utils.concurrency import run_concurrently
from quotehub.utils.currency import get_currency_from_symbol, get_derived_currency
from quotehub.utils.date_utils import is_same_utc_day, utc_now

logger = logging.getLogger(__name__)

# Errors after which the next gateway provider is tried
_PROVIDER_ERRORS = (DataProviderError, CircuitBreakerOpen)

_PROFILE_FIELDS = (
    "currency",
    "name",
    "asset_class",
    "asset_sub_class",
    "isin",
    "url",
    "countries",
    "sectors",
)


class GatewayService:
    """
    Data provider gateway.

    Args:
        data_provider_service: Resolves gateway data sources to providers
        property_service: Runtime properties (daily request limit)
        config: Application settings
    """

    def __init__(
            self,
            data_provider_service: DataProviderService,
            property_service: PropertyService,
            config: Settings = settings,
    ) -> None:
        self._data_provider_service = data_provider_service
        self._property_service = property_service
        self._config = config

    def get_data_provider_info(self) -> DataProviderInfo:
        return DataProviderInfo(
            is_premium=False,
            data_source=DataSource.GHOSTFOLIO,
            name="Ghostfolio",
            url="https://ghostfol.io",
        )

    def _get_providers(self) -> list[DataProviderInterface]:
        return [
            self._data_provider_service.get_data_provider(DataSource(name))
            for name in self._config.data_sources_gateway
        ]

    # =========================================================================
    # ACCESS & METERING
    # =========================================================================

    @staticmethod
    def has_permission(user: User) -> bool:
        """Admins and Premium subscribers may use the gateway."""
        if user.role == Role.INACTIVE:
            return False
        return user.role == Role.ADMIN or user.subscription_type == SubscriptionType.PREMIUM

    def get_max_daily_requests(self, db: Session) -> int:
        value = self._property_service.get_by_key(
            db, PROPERTY_DATA_SOURCES_GHOSTFOLIO_DATA_PROVIDER_MAX_REQUESTS
        )
        if value is None:
            return self._config.gateway_max_daily_requests

        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid max daily requests property: {value!r}")
            return self._config.gateway_max_daily_requests

    def get_daily_requests(self, user: User) -> int:
        if not is_same_utc_day(user.data_provider_last_request_at, utc_now()):
            return 0
        return user.data_provider_daily_requests or 0

    def check_daily_requests(self, db: Session, user: User) -> None:
        """
        Raises:
            DailyRequestLimitExceededError: Today's requests exceed the maximum
        """
        daily_requests = self.get_daily_requests(user)
        max_daily_requests = self.get_max_daily_requests(db)

        if daily_requests > max_daily_requests:
            raise DailyRequestLimitExceededError(
                daily_requests=daily_requests,
                max_daily_requests=max_daily_requests,
            )

    def increment_daily_requests(self, db: Session, user_id: int) -> int:
        """
        Count one request for today, starting over on a new UTC day.

        Returns:
            Requests made today, including this one

        Raises:
            NotFoundError: Unknown user
        """
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", resource_type="User", resource_id=user_id)

        user.data_provider_daily_requests = self.get_daily_requests(user) + 1
        user.data_provider_last_request_at = utc_now()
        db.commit()

        return user.data_provider_daily_requests

    def get_status(self, db: Session, user: User) -> dict[str, Any]:
        return {
            "daily_requests": self.get_daily_requests(user),
            "daily_requests_max": self.get_max_daily_requests(db),
            "subscription": {"type": user.subscription_type.value},
        }

    # =========================================================================
    # DATA
    # =========================================================================

    def get_asset_profile(self, symbol: str) -> AssetProfile:
        """
        Profile merged across gateway providers, first non-empty value per field.

        Raises:
            The last provider error when no provider knows the symbol
        """
        merged: dict[str, Any] = {}
        found = False
        last_error: Exception | None = None

        for provider in self._get_providers():
            try:
                profile = provider.get_asset_profile(symbol)
            except _PROVIDER_ERRORS as e:
                logger.info(f"{provider} has no profile for {symbol}: {e}")
                last_error = e
                continue

            found = True
            for field in _PROFILE_FIELDS:
                if not merged.get(field):
                    merged[field] = getattr(profile, field)

        if not found:
            raise last_error or TickerNotFoundError(symbol=symbol, provider=DataSource.GHOSTFOLIO.value)

        return AssetProfile(
            symbol=symbol,
            data_source=DataSource.GHOSTFOLIO,
            **{field: value for field, value in merged.items() if value is not None},
        )

    def get_dividends(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
    ) -> HistoricalSeries:
        return self._first_non_empty(
            symbol,
            lambda provider: provider.get_dividends(
                symbol,
                from_date,
                to_date,
                granularity=granularity,
                request_timeout=DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
            ),
        )

    def get_historical(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
    ) -> HistoricalSeries:
        return self._first_non_empty(
            symbol,
            lambda provider: provider.get_historical(
                symbol,
                from_date,
                to_date,
                granularity=granularity,
                request_timeout=DATA_PROVIDER_LONG_TIMEOUT_SECONDS,
            ).get(symbol) or {},
        )

    def _first_non_empty(
            self,
            symbol: str,
            fetch: Callable[[DataProviderInterface], HistoricalSeries],
    ) -> HistoricalSeries:
        """
        Ask each gateway provider in turn until one returns data.

        Raises:
            The last provider error if every provider failed
        """
        last_error: Exception | None = None
        any_succeeded = False

        for provider in self._get_providers():
            try:
                series = fetch(provider)
            except _PROVIDER_ERRORS as e:
                logger.warning(f"{provider} failed for {symbol}: {e}")
                last_error = e
                continue

            any_succeeded = True
            if series:
                return series

        if not any_succeeded and last_error is not None:
            raise last_error

        return {}

    def get_quotes(self, symbols: list[str]) -> dict[str, DataProviderResponse]:
        """
        Quotes from every gateway provider, first quote per symbol wins.

        Derived currency pairs are computed from their root pair.

        Raises:
            The last provider error if every provider call failed
        """
        symbols_to_fetch: list[str] = []
        for symbol in symbols:
            if symbol == USX_SYMBOL:
                continue

            derived = None
            if symbol.startswith(DEFAULT_CURRENCY):
                derived = get_derived_currency(get_currency_from_symbol(symbol))

            target = f"{DEFAULT_CURRENCY}{derived.root_currency}" if derived else symbol
            if target not in symbols_to_fetch:
                symbols_to_fetch.append(target)

        calls = []
        for provider in self._get_providers():
            chunk_size = provider.get_max_number_of_symbols_per_request() or len(symbols_to_fetch) or 1
            for i in range(0, len(symbols_to_fetch), chunk_size):
                chunk = symbols_to_fetch[i:i + chunk_size]
                calls.append((
                    provider,
                    partial(provider.get_quotes, chunk, request_timeout=self._config.request_timeout),
                ))

        quotes: dict[str, DataProviderResponse] = {}
        last_error: Exception | None = None
        any_succeeded = not calls

        for provider, outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.warning(f"Gateway quotes from {provider} failed: {outcome}")
                last_error = outcome
                continue

            any_succeeded = True
            for symbol, quote in outcome.items():
                if symbol not in quotes:
                    quotes[symbol] = dataclasses.replace(
                        quote,
                        data_source=DataSource.GHOSTFOLIO,
                        data_provider_info=None,
                    )

        if not any_succeeded and last_error is not None:
            raise last_error

        for derived in DERIVED_CURRENCIES:
            root_quote = quotes.get(f"{DEFAULT_CURRENCY}{derived.root_currency}")
            if root_quote is not None:
                quotes[f"{DEFAULT_CURRENCY}{derived.currency}"] = dataclasses.replace(
                    root_quote,
                    currency=derived.currency,
                    market_price=root_quote.market_price * derived.factor,
                    market_state=MarketState.OPEN,
                )

        if USX_SYMBOL in symbols:
            quotes[USX_SYMBOL] = DataProviderResponse(
                currency="USX",
                data_source=DataSource.GHOSTFOLIO,
                market_price=USX_MARKET_PRICE,
                market_state=MarketState.OPEN,
            )

        return quotes

    def lookup(self, query: str | None, include_indices: bool = False) -> LookupResponse:
        """Search every gateway provider; items without a currency are dropped."""
        if not query or len(query) < MIN_SEARCH_QUERY_LENGTH:
            return LookupResponse(items=[])

        calls = [
            (provider, partial(provider.search, query, include_indices=include_indices))
            for provider in self._get_providers()
        ]

        info = self.get_data_provider_info()
        items: list[LookupItem] = []

        for provider, outcome in run_concurrently(calls):
            if isinstance(outcome, Exception):
                logger.warning(f"Gateway lookup for '{query}' on {provider} failed: {outcome}")
                continue

            items.extend(
                LookupItem(
                    symbol=item.symbol,
                    data_source=DataSource.GHOSTFOLIO,
                    name=item.name,
                    currency=item.currency,
                    asset_class=item.asset_class,
                    asset_sub_class=item.asset_sub_class,
                    data_provider_info=info,
                )
                for item in outcome.items
                if item.currency
            )

        items.sort(key=lambda item: (item.name or "").lower())
        return LookupResponse(items=items)
