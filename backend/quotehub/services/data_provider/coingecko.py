# backend/quotehub/services/data_provider/coingecko.py
"""
CoinGecko data provider implementation.

Talks to the CoinGecko REST API with httpx. Symbols are CoinGecko coin ids
("bitcoin", "ethereum"), all prices are in the default currency.

Endpoints used:
- /simple/price                      quotes
- /coins/{id}/market_chart/range     historical prices
- /coins/{id}                        asset profile
- /search                            lookup

A pro API key switches to the pro endpoint; a demo key is sent to the
public endpoint. Without keys the public endpoint is used anonymously.
"""

import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

import httpx

from quotehub.models import AssetClass, AssetSubClass, DataSource
from quotehub.services.constants import DEFAULT_CURRENCY
from quotehub.services.data_provider.base import DataProviderInterface, decode_json_response
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
from quotehub.services.exceptions import ProviderUnavailableError
from quotehub.utils.date_utils import format_date

logger = logging.getLogger(__name__)

PUBLIC_API_URL = "https://api.coingecko.com/api/v3"
PRO_API_URL = "https://pro-api.coingecko.com/api/v3"


class CoinGeckoProvider(DataProviderInterface):
    """
    CoinGecko implementation of DataProviderInterface.

    Args:
        api_key_demo: Demo API key (public endpoint)
        api_key_pro: Pro API key (pro endpoint, takes precedence)
        timeout: Default request timeout in seconds
        transport: httpx transport override (tests use httpx.MockTransport)
    """

    def __init__(
            self,
            api_key_demo: str | None = None,
            api_key_pro: str | None = None,
            timeout: float = 10.0,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        if api_key_pro:
            base_url = PRO_API_URL
            headers = {"x-cg-pro-api-key": api_key_pro}
        else:
            base_url = PUBLIC_API_URL
            headers = {"x-cg-demo-api-key": api_key_demo} if api_key_demo else {}

        self._timeout = timeout
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Accept": "application/json", **headers},
            timeout=timeout,
            transport=transport,
        )
        super().__init__()
        logger.info(f"CoinGeckoProvider initialized (base_url={base_url})")

    def get_name(self) -> DataSource:
        return DataSource.COINGECKO

    def get_data_provider_info(self) -> DataProviderInfo:
        return DataProviderInfo(
            is_premium=False,
            data_source=DataSource.COINGECKO,
            name="CoinGecko",
            url="https://coingecko.com",
        )

    def get_test_symbol(self) -> str:
        return "bitcoin"

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_quotes(
            self,
            symbols: list[str],
            request_timeout: float | None = None,
    ) -> dict[str, DataProviderResponse]:
        if not symbols:
            return {}

        data = self._call(
            self._get_json,
            "/simple/price",
            {"ids": ",".join(symbols), "vs_currencies": DEFAULT_CURRENCY.lower()},
            request_timeout,
        )

        result: dict[str, DataProviderResponse] = {}
        for symbol in symbols:
            price = (data.get(symbol) or {}).get(DEFAULT_CURRENCY.lower())
            if price is None:
                logger.warning(f"No CoinGecko price for {symbol}")
                continue

            result[symbol] = DataProviderResponse(
                currency=DEFAULT_CURRENCY,
                data_source=DataSource.COINGECKO,
                market_price=Decimal(str(price)),
                market_state=MarketState.OPEN,
            )

        return result

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
        start = datetime.combine(from_date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(to_date, time.max, tzinfo=timezone.utc)

        data = self._call(
            self._get_json,
            f"/coins/{symbol}/market_chart/range",
            {
                "vs_currency": DEFAULT_CURRENCY.lower(),
                "from": int(start.timestamp()),
                "to": int(end.timestamp()),
            },
            request_timeout,
            symbol,
        )

        series: HistoricalSeries = {}
        for timestamp_ms, price in data.get("prices", []):
            day = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()
            if granularity == "month" and day.day != 1:
                continue
            # Several points per day for short ranges, the last one wins
            series[format_date(day)] = HistoricalDataItem(market_price=Decimal(str(price)))

        return {symbol: series}

    # =========================================================================
    # ASSET PROFILE & SEARCH
    # =========================================================================

    def get_asset_profile(self, symbol: str) -> AssetProfile:
        data = self._call(
            self._get_json,
            f"/coins/{symbol}",
            {
                "localization": "false",
                "tickers": "false",
                "market_data": "false",
                "community_data": "false",
                "developer_data": "false",
            },
            None,
            symbol,
        )

        homepage = ((data.get("links") or {}).get("homepage") or [None])[0]

        return AssetProfile(
            symbol=symbol,
            data_source=DataSource.COINGECKO,
            currency=DEFAULT_CURRENCY,
            name=data.get("name"),
            asset_class=AssetClass.LIQUIDITY,
            asset_sub_class=AssetSubClass.CRYPTOCURRENCY,
            url=homepage or None,
        )

    def search(
            self,
            query: str,
            include_indices: bool = False,
            user_id: int | None = None,
    ) -> LookupResponse:
        data = self._call(self._get_json, "/search", {"query": query}, None)

        items = [
            LookupItem(
                symbol=coin["id"],
                data_source=DataSource.COINGECKO,
                name=coin.get("name"),
                currency=DEFAULT_CURRENCY,
                asset_class=AssetClass.LIQUIDITY,
                asset_sub_class=AssetSubClass.CRYPTOCURRENCY,
                data_provider_info=self.get_data_provider_info(),
            )
            for coin in data.get("coins", [])
            if coin.get("id")
        ]
        return LookupResponse(items=items)

    # =========================================================================
    # HTTP
    # =========================================================================

    def _get_json(
            self,
            path: str,
            params: dict[str, Any],
            request_timeout: float | None,
            symbol: str | None = None,
    ) -> Any:
        """
        GET a CoinGecko endpoint and decode the JSON body.

        Raises:
            TickerNotFoundError: 404 for a symbol-specific endpoint
            RateLimitError: 429 (retryable)
            ProviderUnavailableError: Network errors and other failures (retryable)
        """
        provider = self.get_name().value
        try:
            response = self._client.get(
                path,
                params=params,
                timeout=request_timeout or self._timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(provider=provider, reason=str(e)) from e

        return decode_json_response(response, provider, symbol)

