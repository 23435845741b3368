# backend/quotehub/services/data_provider/ghostfolio.py
"""
Client for a remote data provider gateway.

Another quotehub installation (or ghostfol.io itself) exposes its
aggregated providers under /api/v1|v2/data-providers/ghostfolio/*. This
provider consumes those endpoints so they appear here as the GHOSTFOLIO
data source.

Authentication uses the API_KEY_GHOSTFOLIO property, sent as
`Authorization: Api-Key <key>`. The key is read on every request so a key
stored at runtime is picked up without a restart.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable

import httpx

from quotehub.models import AssetClass, AssetSubClass, DataSource
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
)
from quotehub.services.exceptions import DataProviderError, ProviderUnavailableError
from quotehub.utils.date_utils import format_date

logger = logging.getLogger(__name__)


class GhostfolioProvider(DataProviderInterface):
    """
    Gateway client implementation of DataProviderInterface.

    Args:
        api_url: Base URL of the remote API, e.g. "https://ghostfol.io/api"
        api_key_provider: Returns the current API key (None when unset)
        timeout: Default request timeout in seconds
        transport: httpx transport override (tests use httpx.MockTransport)
    """

    MAX_SYMBOLS_PER_REQUEST = 20

    def __init__(
            self,
            api_url: str,
            api_key_provider: Callable[[], str | None],
            timeout: float = 10.0,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key_provider = api_key_provider
        self._timeout = timeout
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        super().__init__()
        logger.info(f"GhostfolioProvider initialized (api_url={api_url})")

    def get_name(self) -> DataSource:
        return DataSource.GHOSTFOLIO

    def get_data_provider_info(self) -> DataProviderInfo:
        return DataProviderInfo(
            is_premium=True,
            data_source=DataSource.GHOSTFOLIO,
            name="Ghostfolio Premium",
            url="https://ghostfol.io",
        )

    def get_max_number_of_symbols_per_request(self) -> int | None:
        return self.MAX_SYMBOLS_PER_REQUEST

    def get_test_symbol(self) -> str:
        return "AAPL"

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
            "/v2/data-providers/ghostfolio/quotes",
            {"symbols": ",".join(symbols)},
            request_timeout,
        )

        result: dict[str, DataProviderResponse] = {}
        for symbol, quote in (data.get("quotes") or {}).items():
            try:
                result[symbol] = DataProviderResponse.from_dict(quote)
            except ValueError as e:
                logger.warning(f"Skipping malformed gateway quote for {symbol}: {e}")

        return result

    # =========================================================================
    # HISTORICAL DATA & DIVIDENDS
    # =========================================================================

    def get_historical(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> dict[str, HistoricalSeries]:
        data = self._call(
            self._get_json,
            f"/v2/data-providers/ghostfolio/historical/{symbol}",
            self._range_params(from_date, to_date, granularity),
            request_timeout,
            symbol,
        )
        return {symbol: self._parse_series(data.get("historicalData"))}

    def get_dividends(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> HistoricalSeries:
        data = self._call(
            self._get_json,
            f"/v2/data-providers/ghostfolio/dividends/{symbol}",
            self._range_params(from_date, to_date, granularity),
            request_timeout,
            symbol,
        )
        return self._parse_series(data.get("dividends"))

    @staticmethod
    def _range_params(from_date: date, to_date: date, granularity: Granularity) -> dict[str, str]:
        return {
            "from": format_date(from_date),
            "to": format_date(to_date),
            "granularity": granularity,
        }

    @staticmethod
    def _parse_series(raw: dict[str, Any] | None) -> HistoricalSeries:
        return {
            date_str: HistoricalDataItem(market_price=Decimal(str(item["marketPrice"])))
            for date_str, item in (raw or {}).items()
            if item and item.get("marketPrice") is not None
        }

    # =========================================================================
    # ASSET PROFILE & SEARCH
    # =========================================================================

    def get_asset_profile(self, symbol: str) -> AssetProfile:
        data = self._call(
            self._get_json,
            f"/v1/data-providers/ghostfolio/asset-profile/{symbol}",
            {},
            None,
            symbol,
        )

        return AssetProfile(
            symbol=data.get("symbol") or symbol,
            data_source=DataSource.GHOSTFOLIO,
            currency=data.get("currency"),
            name=data.get("name"),
            asset_class=_enum_or_none(AssetClass, data.get("assetClass")),
            asset_sub_class=_enum_or_none(AssetSubClass, data.get("assetSubClass")),
            isin=data.get("isin"),
            url=data.get("url"),
            countries=tuple(data.get("countries") or ()),
            sectors=tuple(data.get("sectors") or ()),
        )

    def search(
            self,
            query: str,
            include_indices: bool = False,
            user_id: int | None = None,
    ) -> LookupResponse:
        data = self._call(
            self._get_json,
            "/v2/data-providers/ghostfolio/lookup",
            {"query": query, "includeIndices": str(include_indices).lower()},
            None,
        )

        items = [
            LookupItem(
                symbol=item["symbol"],
                data_source=DataSource.GHOSTFOLIO,
                name=item.get("name"),
                currency=item.get("currency"),
                asset_class=_enum_or_none(AssetClass, item.get("assetClass")),
                asset_sub_class=_enum_or_none(AssetSubClass, item.get("assetSubClass")),
                data_provider_info=self.get_data_provider_info(),
            )
            for item in data.get("items", [])
            if item.get("symbol")
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
        provider = self.get_name().value

        api_key = self._api_key_provider()
        if not api_key:
            raise DataProviderError("No API key configured for the data provider gateway", provider=provider)

        try:
            response = self._client.get(
                path,
                params=params,
                headers={"Authorization": f"Api-Key {api_key}"},
                timeout=request_timeout or self._timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(provider=provider, reason=str(e)) from e

        return decode_json_response(response, provider, symbol)


def _enum_or_none(enum_cls, value):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None
