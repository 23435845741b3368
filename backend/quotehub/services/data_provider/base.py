# backend/quotehub/services/data_provider/base.py
"""
Abstract interface for data providers.

Every upstream source (Yahoo Finance, CoinGecko, a remote gateway) is wrapped
in a DataProviderInterface so DataProviderService can fan requests out
without knowing which API sits behind a data source.

Shared plumbing lives here:
- Exponential backoff retry for transient failures (tenacity)
- One circuit breaker per provider instance, so a dead upstream fails fast
  instead of eating the request timeout on every call
"""

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import TypeVar, Callable, Any

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from quotehub.models import DataSource
from quotehub.services.circuit_breaker import CircuitBreaker
from quotehub.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
)
from quotehub.services.data_provider.types import (
    AssetProfile,
    DataProviderInfo,
    DataProviderResponse,
    Granularity,
    HistoricalSeries,
    LookupResponse,
)
from quotehub.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class DataProviderInterface(ABC):
    """
    Abstract base class for data providers.

    Retry Behavior:
        `_call` wraps an upstream call in the provider's circuit breaker and
        retries ProviderUnavailableError / RateLimitError with exponential
        backoff. Subclasses tune it with class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)

    TickerNotFoundError is neither retried nor counted as a breaker failure.

    Batching:
        get_max_number_of_symbols_per_request() caps how many symbols one
        get_quotes() call may receive. None means unbounded.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    def __init__(self) -> None:
        self._circuit_breaker = CircuitBreaker(
            name=f"data-provider-{self.get_name().value}",
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
            excluded_exceptions=(TickerNotFoundError,),
        )

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @abstractmethod
    def get_name(self) -> DataSource:
        """The data source this provider serves."""
        pass

    @abstractmethod
    def get_asset_profile(self, symbol: str) -> AssetProfile:
        """
        Raises:
            TickerNotFoundError: Symbol unknown to the provider
            ProviderUnavailableError: Network or API error (retryable)
        """
        pass

    @abstractmethod
    def get_data_provider_info(self) -> DataProviderInfo:
        pass

    @abstractmethod
    def get_historical(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> dict[str, HistoricalSeries]:
        """
        Daily (or monthly) prices between both dates, inclusive.

        Returns:
            {symbol: {"YYYY-MM-DD": HistoricalDataItem}}
        """
        pass

    @abstractmethod
    def get_quotes(
            self,
            symbols: list[str],
            request_timeout: float | None = None,
    ) -> dict[str, DataProviderResponse]:
        """
        Live quotes. Symbols the provider cannot price are left out of
        the result rather than raising.
        """
        pass

    @abstractmethod
    def get_test_symbol(self) -> str:
        """A symbol that always has a quote, used for health checks."""
        pass

    @abstractmethod
    def search(
            self,
            query: str,
            include_indices: bool = False,
            user_id: int | None = None,
    ) -> LookupResponse:
        pass

    # =========================================================================
    # OPTIONAL METHODS (with default implementations)
    # =========================================================================

    def can_handle(self, symbol: str) -> bool:
        return True

    def get_dividends(
            self,
            symbol: str,
            from_date: date,
            to_date: date,
            granularity: Granularity = "day",
            request_timeout: float | None = None,
    ) -> HistoricalSeries:
        """Dividend per share by payment date. Providers without dividend data return {}."""
        return {}

    def get_max_number_of_symbols_per_request(self) -> int | None:
        return None

    # =========================================================================
    # RESILIENCE
    # =========================================================================

    def _get_circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run an upstream call through the circuit breaker with retry.

        Raises:
            CircuitBreakerOpen: Provider is failing, call not attempted
            The last exception if all retries fail
        """
        with self._circuit_breaker:
            return self._execute_with_retry(func, *args, **kwargs)

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_name().value})"


def decode_json_response(response: httpx.Response, provider: str, symbol: str | None = None) -> Any:
    """
    Map an upstream HTTP response to its JSON body or a provider error.

    Raises:
        TickerNotFoundError: 404 on a symbol-specific endpoint
        RateLimitError: 429, with Retry-After when the upstream sends it
        ProviderUnavailableError: Any other error status or an undecodable body
    """
    if response.status_code == 404 and symbol is not None:
        raise TickerNotFoundError(symbol=symbol, provider=provider)

    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitError(
            provider=provider,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )

    if response.is_error:
        raise ProviderUnavailableError(
            provider=provider,
            reason=f"HTTP {response.status_code} from {response.request.url.path}",
        )

    try:
        return response.json()
    except ValueError as e:
        raise ProviderUnavailableError(provider=provider, reason=f"Invalid JSON: {e}") from e
