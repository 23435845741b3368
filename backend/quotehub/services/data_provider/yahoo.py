# backend/quotehub/services/data_provider/yahoo.py
"""
Yahoo Finance data provider implementation.

Implements DataProviderInterface with the yfinance library.

Symbol conventions:
- Currency pairs are stored as "USDEUR" and quoted by Yahoo as "USDEUR=X"
- Cryptocurrencies are stored as "BTCUSD" and quoted by Yahoo as "BTC-USD"
- Everything else (stocks, ETFs, funds) uses the Yahoo symbol as is

Limitations:
- Rate limits (not officially documented, but exist)
- Quotes may be delayed (15-20 minutes for some markets)
"""

import logging
import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import yfinance as yf

from quotehub.models import AssetClass, AssetSubClass, DataSource
from quotehub.services.constants import DEFAULT_CURRENCY
from quotehub.services.data_provider.base import DataProviderInterface
from quotehub.services.data_provider.types import (
    AssetProfile,
    DataProviderInfo,
    DataProviderResponse,
    Granularity,
    HistoricalDataItem,
    HistoricalSeries,
    LookupItem,
    LookupResponse,
    MarketState,
)
from quotehub.services.exceptions import (
    DataProviderError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
)
from quotehub.utils.currency import is_currency
from quotehub.utils.date_utils import format_date

logger = logging.getLogger(__name__)


class YahooFinanceProvider(DataProviderInterface):
    """
    Yahoo Finance implementation of DataProviderInterface.

    Configuration:
        timeout: Default request timeout in seconds

    Example:
        provider = YahooFinanceProvider(timeout=10)

        quotes = provider.get_quotes(["AAPL", "USDEUR"])
        print(quotes["AAPL"].market_price)
    """

    # Yahoo quote type -> (asset class, asset sub class)
    QUOTE_TYPE_MAPPING: dict[str, tuple[AssetClass | None, AssetSubClass | None]] = {
        "CRYPTOCURRENCY": (AssetClass.LIQUIDITY, AssetSubClass.CRYPTOCURRENCY),
        "CURRENCY": (AssetClass.LIQUIDITY, AssetSubClass.CASH),
        "EQUITY": (AssetClass.EQUITY, AssetSubClass.STOCK),
        "ETF": (AssetClass.EQUITY, AssetSubClass.ETF),
        "FUTURE": (AssetClass.COMMODITY, AssetSubClass.COMMODITY),
        "INDEX": (AssetClass.EQUITY, None),
        "MUTUALFUND": (AssetClass.EQUITY, AssetSubClass.MUTUALFUND),
    }

    SEARCHABLE_QUOTE_TYPES = {"CRYPTOCURRENCY", "EQUITY", "ETF", "FUTURE", "MUTUALFUND"}

    MAX_SYMBOLS_PER_REQUEST: int = 50

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        super().__init__()
        logger.info(f"YahooFinanceProvider initialized (timeout={timeout}s)")

    def get_name(self) -> DataSource:
        return DataSource.YAHOO

    def get_data_provider_info(self) -> DataProviderInfo:
        return DataProviderInfo(
            is_premium=False,
            data_source=DataSource.YAHOO,
            name="Yahoo Finance",
            url="https://finance.yahoo.com",
        )

    def get_max_number_of_symbols_per_request(self) -> int | None:
        return self.MAX_SYMBOLS_PER_REQUEST

    def get_test_symbol(self) -> str:
        return "AAPL"

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_quotes(
            self,
            symbols: list[str],
            request_timeout: float | None = None,
    ) -> dict[str, DataProviderResponse]:
        """
        Current quotes, one yfinance Tickers batch per call.

        request_timeout is ignored: yfinance reads quotes through the
        Ticker.info property, which takes no timeout.
        """
        if not symbols:
            return {}

        return self._call(self._fetch_quotes, symbols)

    def _fetch_quotes(self, symbols: list[str]) -> dict[str, DataProviderResponse]:
        yahoo_symbols = {self.convert_to_yahoo_symbol(symbol): symbol for symbol in symbols}
        result: dict[str, DataProviderResponse] = {}

        try:
            yf_tickers = yf.Tickers(" ".join(yahoo_symbols))
        except Exception as e:
            raise self._map_error(e, ",".join(symbols)) from e

        for yahoo_symbol, symbol in yahoo_symbols.items():
            yf_ticker = yf_tickers.tickers.get(yahoo_symbol)
            if yf_ticker is None:
                logger.warning(f"No quote returned by Yahoo Finance for {symbol}")
                continue

            try:
                info = yf_ticker.info or {}
            except Exception as e:
                error = self._map_error(e, symbol)
                if not isinstance(error, TickerNotFoundError):
                    raise error from e
                logger.warning(f"Yahoo Finance has no quote for {symbol}: {e}")
                continue

            market_price = self._to_decimal(info.get("regularMarketPrice"))
            if market_price is None:
                logger.warning(f"No market price in Yahoo Finance quote for {symbol}")
                continue

            result[symbol] = DataProviderResponse(
                currency=self._parse_currency(info, symbol),
                data_source=DataSource.YAHOO,
                market_price=market_price,
                market_state=self._parse_market_state(info, symbol),
            )

        return result

    def _parse_market_state(self, info: dict, symbol: str) -> MarketState:
        # Currency markets trade around the clock
        if info.get("marketState") == "REGULAR" or self._is_currency_pair(symbol):
            return MarketState.OPEN
        return MarketState.CLOSED

    def _parse_currency(self, info: dict, symbol: str) -> str:
        currency = info.get("currency")
        if currency:
            return currency
        if self._is_currency_pair(symbol):
            return symbol[len(DEFAULT_CURRENCY):]
        return DEFAULT_CURRENCY

    # =========================================================================
    # HISTORICAL DATA
    # =========================================================================

    def get_historical(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> dict[str, HistoricalSeries]:
        return self._call(
            self._fetch_historical,
            symbol,
            from_date,
            to_date,
            granularity,
            request_timeout or self._timeout,
        )

    def _fetch_historical(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity,
            timeout: float,
    ) -> dict[str, HistoricalSeries]:
        yahoo_symbol = self.convert_to_yahoo_symbol(symbol)

        logger.debug(
            f"Fetching historical prices for {yahoo_symbol}: "
            f"{from_date} to {to_date} ({granularity})"
        )

        try:
            yf_ticker = yf.Ticker(yahoo_symbol)

            # Yahoo Finance end date is exclusive
            df = yf_ticker.history(
                start=from_date.isoformat(),
                end=(to_date + timedelta(days=1)).isoformat(),
                interval="1mo" if granularity == "month" else "1d",
                auto_adjust=False,
                timeout=timeout,
            )

            if df.empty:
                if not self._is_valid_ticker_info(yf_ticker.info):
                    raise TickerNotFoundError(symbol=symbol, provider=self.get_name().value)

                logger.warning(
                    f"No price data for {yahoo_symbol} between {from_date} and {to_date}"
                )
                return {symbol: {}}

            series: HistoricalSeries = {}
            for idx, row in df.iterrows():
                close_price = self._to_decimal(row.get("Close"))
                if close_price is None:
                    continue
                series[format_date(idx)] = HistoricalDataItem(market_price=close_price)

            return {symbol: series}

        except DataProviderError:
            raise
        except Exception as e:
            raise self._map_error(e, symbol) from e

    def get_dividends(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> HistoricalSeries:
        """request_timeout is ignored: Ticker.dividends takes no timeout."""
        return self._call(self._fetch_dividends, symbol, from_date, to_date, granularity)

    def _fetch_dividends(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity,
    ) -> HistoricalSeries:
        try:
            dividends = yf.Ticker(self.convert_to_yahoo_symbol(symbol)).dividends
        except Exception as e:
            raise self._map_error(e, symbol) from e

        amounts: dict[str, Decimal] = {}
        for idx, value in dividends.items():
            payment_date = idx.date()
            if not from_date <= payment_date <= to_date:
                continue

            amount = self._to_decimal(value)
            if amount is None:
                continue

            if granularity == "month":
                payment_date = payment_date.replace(day=1)

            key = format_date(payment_date)
            amounts[key] = amounts.get(key, Decimal("0")) + amount

        return {key: HistoricalDataItem(market_price=amount) for key, amount in amounts.items()}

    # =========================================================================
    # ASSET PROFILE & SEARCH
    # =========================================================================

    def get_asset_profile(self, symbol: str) -> AssetProfile:
        return self._call(self._fetch_asset_profile, symbol)

    def _fetch_asset_profile(self, symbol: str) -> AssetProfile:
        yahoo_symbol = self.convert_to_yahoo_symbol(symbol)
        logger.debug(f"Fetching asset profile for {yahoo_symbol}")

        try:
            info = yf.Ticker(yahoo_symbol).info
        except Exception as e:
            raise self._map_error(e, symbol) from e

        if not self._is_valid_ticker_info(info):
            raise TickerNotFoundError(symbol=symbol, provider=self.get_name().value)

        asset_class, asset_sub_class = self.QUOTE_TYPE_MAPPING.get(
            info.get("quoteType", ""), (None, None)
        )

        sectors: tuple[dict[str, Any], ...] = ()
        if info.get("sector"):
            sectors = ({"name": info["sector"], "weight": 1},)

        countries: tuple[dict[str, Any], ...] = ()
        if info.get("country"):
            countries = ({"name": info["country"], "weight": 1},)

        return AssetProfile(
            symbol=symbol,
            data_source=DataSource.YAHOO,
            currency=self._parse_currency(info, symbol),
            name=info.get("longName") or info.get("shortName"),
            asset_class=asset_class,
            asset_sub_class=asset_sub_class,
            url=info.get("website"),
            countries=countries,
            sectors=sectors,
        )

    def search(
            self,
            query: str,
            include_indices: bool = False,
            user_id: int | None = None,
    ) -> LookupResponse:
        return self._call(self._search, query, include_indices)

    def _search(self, query: str, include_indices: bool) -> LookupResponse:
        allowed_types = set(self.SEARCHABLE_QUOTE_TYPES)
        if include_indices:
            allowed_types.add("INDEX")

        try:
            hits = yf.Search(query, max_results=10, news_count=0).quotes
        except Exception as e:
            raise self._map_error(e, query) from e

        candidates: list[dict] = []
        for hit in hits:
            quote_type = hit.get("quoteType")
            if quote_type not in allowed_types:
                continue
            # Only cryptocurrencies quoted in the default currency
            if quote_type == "CRYPTOCURRENCY" and not hit.get("symbol", "").endswith(f"-{DEFAULT_CURRENCY}"):
                continue
            candidates.append(hit)

        if not candidates:
            return LookupResponse()

        # Search hits carry no currency, the quote does
        symbols = [self.convert_from_yahoo_symbol(hit["symbol"]) for hit in candidates]
        quotes = self._fetch_quotes(symbols)

        items = []
        for hit, symbol in zip(candidates, symbols):
            asset_class, asset_sub_class = self.QUOTE_TYPE_MAPPING.get(hit["quoteType"], (None, None))
            quote = quotes.get(symbol)
            items.append(LookupItem(
                symbol=symbol,
                data_source=DataSource.YAHOO,
                name=hit.get("longname") or hit.get("shortname"),
                currency=quote.currency if quote else None,
                asset_class=asset_class,
                asset_sub_class=asset_sub_class,
                data_provider_info=self.get_data_provider_info(),
            ))

        return LookupResponse(items=items)

    # =========================================================================
    # SYMBOL CONVERSION
    # =========================================================================

    def convert_to_yahoo_symbol(self, symbol: str) -> str:
        """
        Example:
            >>> provider.convert_to_yahoo_symbol("USDEUR")
            'USDEUR=X'
            >>> provider.convert_to_yahoo_symbol("BTCUSD")
            'BTC-USD'
        """
        if self._is_currency_pair(symbol):
            return f"{symbol}=X"
        if self._is_crypto_pair(symbol):
            return f"{symbol[:-len(DEFAULT_CURRENCY)]}-{DEFAULT_CURRENCY}"
        return symbol

    def convert_from_yahoo_symbol(self, yahoo_symbol: str) -> str:
        if yahoo_symbol.endswith("=X"):
            return yahoo_symbol[:-2]
        if yahoo_symbol.endswith(f"-{DEFAULT_CURRENCY}"):
            return yahoo_symbol.replace("-", "")
        return yahoo_symbol

    @staticmethod
    def _is_currency_pair(symbol: str) -> bool:
        return (
            len(symbol) == 6
            and symbol.startswith(DEFAULT_CURRENCY)
            and is_currency(symbol[len(DEFAULT_CURRENCY):])
        )

    @staticmethod
    def _is_crypto_pair(symbol: str) -> bool:
        base = symbol[:-len(DEFAULT_CURRENCY)]
        return (
            symbol.endswith(DEFAULT_CURRENCY)
            and 2 <= len(base) <= 10
            and base.isalnum()
            and base.isupper()
            and not is_currency(base)
        )

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _map_error(self, error: Exception, symbol: str) -> DataProviderError:
        """Translate a yfinance exception into the provider error hierarchy."""
        if isinstance(error, DataProviderError):
            return error

        error_str = str(error).lower()
        provider = self.get_name().value

        if "not found" in error_str or "no data" in error_str:
            return TickerNotFoundError(symbol=symbol, provider=provider)
        if "rate limit" in error_str or "too many requests" in error_str:
            return RateLimitError(provider=provider)

        logger.error(f"Yahoo Finance error for {symbol}: {error}")
        return ProviderUnavailableError(provider=provider, reason=str(error))

    @staticmethod
    def _is_valid_ticker_info(info: dict | None) -> bool:
        """Yahoo returns an info dict even for unknown symbols, just without content."""
        if not info:
            return False
        return bool(
            info.get("regularMarketPrice")
            or info.get("shortName")
            or info.get("longName")
        )

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return Decimal(str(value)).quantize(Decimal("0.00000001"))
        except (TypeError, ValueError):
            return None
