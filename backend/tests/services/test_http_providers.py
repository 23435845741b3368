# backend/tests/services/test_http_providers.py
"""
Tests for the HTTP data providers (CoinGecko and the remote gateway client).

Requests are answered by httpx.MockTransport handlers, so no network is used.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest

from quotehub.models import AssetClass, AssetSubClass, DataSource
from quotehub.services.data_provider.coingecko import CoinGeckoProvider
from quotehub.services.data_provider.ghostfolio import GhostfolioProvider
from quotehub.services.data_provider.types import MarketState
from quotehub.services.exceptions import (
    DataProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
)


class RecordingHandler:
    """MockTransport handler routing on the path suffix and recording requests."""

    def __init__(self, routes: dict[str, httpx.Response]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, response in self.routes.items():
            if request.url.path.endswith(suffix):
                # Fresh copy, retries hit the same route
                return httpx.Response(
                    response.status_code,
                    headers=response.headers,
                    content=response.content,
                )
        return httpx.Response(404, json={"error": "not found"})


def _ms(year: int, month: int, day: int, hour: int = 0) -> int:
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def _no_wait(provider):
    provider.RETRY_MIN_WAIT = 0
    provider.RETRY_MAX_WAIT = 0
    return provider


# =============================================================================
# COINGECKO
# =============================================================================

class TestCoinGeckoProvider:

    def _provider(self, handler, **kwargs) -> CoinGeckoProvider:
        return _no_wait(CoinGeckoProvider(transport=httpx.MockTransport(handler), **kwargs))

    def test_quotes(self):
        handler = RecordingHandler({
            "/simple/price": httpx.Response(200, json={"bitcoin": {"usd": 42000.5}, "ethereum": {}}),
        })

        quotes = self._provider(handler).get_quotes(["bitcoin", "ethereum"])

        assert list(quotes) == ["bitcoin"]
        assert quotes["bitcoin"].market_price == Decimal("42000.5")
        assert quotes["bitcoin"].market_state == MarketState.OPEN
        assert handler.requests[0].url.params["ids"] == "bitcoin,ethereum"
        assert handler.requests[0].url.params["vs_currencies"] == "usd"

    def test_demo_key_on_public_endpoint(self):
        handler = RecordingHandler({"/simple/price": httpx.Response(200, json={})})

        self._provider(handler, api_key_demo="demo").get_quotes(["bitcoin"])

        request = handler.requests[0]
        assert request.url.host == "api.coingecko.com"
        assert request.headers["x-cg-demo-api-key"] == "demo"

    def test_pro_key_switches_endpoint(self):
        handler = RecordingHandler({"/simple/price": httpx.Response(200, json={})})

        self._provider(handler, api_key_demo="demo", api_key_pro="pro").get_quotes(["bitcoin"])

        request = handler.requests[0]
        assert request.url.host == "pro-api.coingecko.com"
        assert request.headers["x-cg-pro-api-key"] == "pro"
        assert "x-cg-demo-api-key" not in request.headers

    def test_historical_last_point_per_day(self):
        handler = RecordingHandler({
            "/market_chart/range": httpx.Response(200, json={"prices": [
                [_ms(2025, 1, 1), 100.0],
                [_ms(2025, 1, 1, 12), 101.0],
                [_ms(2025, 1, 2), 102.0],
            ]}),
        })

        result = self._provider(handler).get_historical("bitcoin", date(2025, 1, 1), date(2025, 1, 2))

        assert list(result["bitcoin"]) == ["2025-01-01", "2025-01-02"]
        assert result["bitcoin"]["2025-01-01"].market_price == Decimal("101.0")

    def test_historical_monthly(self):
        handler = RecordingHandler({
            "/market_chart/range": httpx.Response(200, json={"prices": [
                [_ms(2025, 1, 1), 100.0],
                [_ms(2025, 1, 15), 110.0],
                [_ms(2025, 2, 1), 120.0],
            ]}),
        })

        result = self._provider(handler).get_historical(
            "bitcoin", date(2025, 1, 1), date(2025, 2, 28), granularity="month",
        )

        assert list(result["bitcoin"]) == ["2025-01-01", "2025-02-01"]

    def test_unknown_coin(self):
        handler = RecordingHandler({})

        with pytest.raises(TickerNotFoundError):
            self._provider(handler).get_asset_profile("nope")

        assert len(handler.requests) == 1

    def test_asset_profile(self):
        handler = RecordingHandler({
            "/coins/bitcoin": httpx.Response(200, json={
                "name": "Bitcoin",
                "links": {"homepage": ["https://bitcoin.org", ""]},
            }),
        })

        profile = self._provider(handler).get_asset_profile("bitcoin")

        assert profile.name == "Bitcoin"
        assert profile.asset_sub_class == AssetSubClass.CRYPTOCURRENCY
        assert profile.url == "https://bitcoin.org"

    def test_search(self):
        handler = RecordingHandler({
            "/search": httpx.Response(200, json={"coins": [
                {"id": "bitcoin", "name": "Bitcoin", "symbol": "BTC"},
                {"name": "No id"},
            ]}),
        })

        items = self._provider(handler).search("bit").items

        assert [item.symbol for item in items] == ["bitcoin"]
        assert items[0].currency == "USD"

    def test_rate_limit_with_retry_after(self):
        handler = RecordingHandler({
            "/simple/price": httpx.Response(429, headers={"Retry-After": "30"}),
        })

        with pytest.raises(RateLimitError) as exc_info:
            self._provider(handler).get_quotes(["bitcoin"])

        assert exc_info.value.retry_after == 30
        assert len(handler.requests) == CoinGeckoProvider.MAX_RETRY_ATTEMPTS

    def test_server_error(self):
        handler = RecordingHandler({"/simple/price": httpx.Response(502)})

        with pytest.raises(ProviderUnavailableError):
            self._provider(handler).get_quotes(["bitcoin"])

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailableError):
            self._provider(handler).get_quotes(["bitcoin"])

    def test_invalid_json(self):
        handler = RecordingHandler({"/simple/price": httpx.Response(200, content=b"<html>")})

        with pytest.raises(ProviderUnavailableError, match="Invalid JSON"):
            self._provider(handler).get_quotes(["bitcoin"])


# =============================================================================
# REMOTE GATEWAY
# =============================================================================

class TestGhostfolioProvider:

    def _provider(self, handler, api_key: str | None = "remote-key") -> GhostfolioProvider:
        return _no_wait(GhostfolioProvider(
            api_url="https://gateway.example.com/api/",
            api_key_provider=lambda: api_key,
            transport=httpx.MockTransport(handler),
        ))

    def test_identity(self):
        provider = self._provider(RecordingHandler({}))

        assert provider.get_name() == DataSource.GHOSTFOLIO
        assert provider.get_data_provider_info().is_premium is True
        assert provider.get_max_number_of_symbols_per_request() == 20

    def test_quotes(self):
        handler = RecordingHandler({
            "/v2/data-providers/ghostfolio/quotes": httpx.Response(200, json={"quotes": {
                "AAPL": {
                    "currency": "USD",
                    "dataSource": "GHOSTFOLIO",
                    "marketPrice": 185.5,
                    "marketState": "open",
                },
                "BROKEN": {"currency": "USD"},
            }}),
        })

        quotes = self._provider(handler).get_quotes(["AAPL", "BROKEN"])

        assert list(quotes) == ["AAPL"]
        assert quotes["AAPL"].market_price == Decimal("185.5")
        request = handler.requests[0]
        assert request.url.path == "/api/v2/data-providers/ghostfolio/quotes"
        assert request.url.params["symbols"] == "AAPL,BROKEN"
        assert request.headers["Authorization"] == "Api-Key remote-key"

    def test_missing_api_key_is_not_sent(self):
        handler = RecordingHandler({})

        with pytest.raises(DataProviderError, match="No API key"):
            self._provider(handler, api_key=None).get_quotes(["AAPL"])

        assert handler.requests == []

    def test_historical(self):
        handler = RecordingHandler({
            "/historical/AAPL": httpx.Response(200, json={"historicalData": {
                "2025-01-02": {"marketPrice": 185.0},
                "2025-01-03": {"marketPrice": None},
            }}),
        })

        result = self._provider(handler).get_historical(
            "AAPL", date(2025, 1, 1), date(2025, 1, 3), granularity="month",
        )

        assert list(result["AAPL"]) == ["2025-01-02"]
        params = handler.requests[0].url.params
        assert (params["from"], params["to"], params["granularity"]) == ("2025-01-01", "2025-01-03", "month")

    def test_dividends(self):
        handler = RecordingHandler({
            "/dividends/AAPL": httpx.Response(200, json={"dividends": {"2025-02-14": {"marketPrice": 0.25}}}),
        })

        result = self._provider(handler).get_dividends("AAPL", date(2025, 1, 1), date(2025, 3, 1))

        assert result["2025-02-14"].market_price == Decimal("0.25")

    def test_asset_profile(self):
        handler = RecordingHandler({
            "/v1/data-providers/ghostfolio/asset-profile/AAPL": httpx.Response(200, json={
                "symbol": "AAPL",
                "dataSource": "GHOSTFOLIO",
                "currency": "USD",
                "name": "Apple Inc.",
                "assetClass": "EQUITY",
                "assetSubClass": "UNKNOWN_KIND",
                "countries": [{"code": "US", "weight": 1}],
            }),
        })

        profile = self._provider(handler).get_asset_profile("AAPL")

        assert profile.name == "Apple Inc."
        assert profile.asset_class == AssetClass.EQUITY
        assert profile.asset_sub_class is None
        assert profile.countries == ({"code": "US", "weight": 1},)

    def test_unknown_symbol(self):
        with pytest.raises(TickerNotFoundError):
            self._provider(RecordingHandler({})).get_asset_profile("NOPE")

    def test_search(self):
        handler = RecordingHandler({
            "/lookup": httpx.Response(200, json={"items": [
                {"symbol": "AAPL", "name": "Apple Inc.", "currency": "USD", "assetClass": "EQUITY"},
            ]}),
        })

        items = self._provider(handler).search("apple", include_indices=True).items

        assert items[0].data_source == DataSource.GHOSTFOLIO
        assert items[0].asset_class == AssetClass.EQUITY
        assert handler.requests[0].url.params["includeIndices"] == "true"

    def test_unauthorized_is_unavailable(self):
        handler = RecordingHandler({"/quotes": httpx.Response(401, json={"error": "UnauthorizedError"})})

        with pytest.raises(ProviderUnavailableError, match="HTTP 401"):
            self._provider(handler).get_quotes(["AAPL"])
