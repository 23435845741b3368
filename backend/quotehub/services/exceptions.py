# backend/quotehub/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The application layer maps them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    ├── DataProviderError
    │   ├── DataProviderNotFoundError
    │   ├── ProviderUnavailableError
    │   ├── TickerNotFoundError
    │   └── RateLimitError
    ├── AuthenticationError
    │   └── InvalidApiKeyError
    ├── AuthorizationError
    │   └── PermissionDeniedError
    └── DailyRequestLimitExceededError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when a provider's circuit breaker is open
"""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when programmatic validation fails (bad date range, unknown
    granularity), NOT for request validation which is handled by Pydantic.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "User")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


# =============================================================================
# DATA PROVIDER ERRORS
# =============================================================================


class DataProviderError(ServiceError):
    """
    Base exception for data provider failures.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class DataProviderNotFoundError(DataProviderError):
    """Raised when no registered provider serves the requested data source."""

    def __init__(self, data_source: str | None = None) -> None:
        self.data_source = data_source
        super().__init__("No data provider has been found.", provider=data_source)


class ProviderUnavailableError(DataProviderError):
    """
    Raised when a data provider is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class TickerNotFoundError(DataProviderError):
    """
    Raised when a symbol is not known to the provider.

    This is NOT a retryable error.
    """

    def __init__(self, symbol: str, provider: str) -> None:
        message = f"Symbol '{symbol}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.symbol = symbol


class RateLimitError(DataProviderError):
    """
    Raised when the provider's rate limit has been exceeded.

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


# =============================================================================
# ACCESS ERRORS
# =============================================================================


class AuthenticationError(ServiceError):
    """Base exception for failed authentication."""
    pass


class InvalidApiKeyError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid or missing API key")


class AuthorizationError(ServiceError):
    """Base exception for authenticated callers lacking a permission."""
    pass


class PermissionDeniedError(AuthorizationError):
    """
    Attributes:
        permission: Name of the missing permission
    """

    def __init__(self, permission: str) -> None:
        self.permission = permission
        super().__init__(f"Missing permission: {permission}")


class DailyRequestLimitExceededError(ServiceError):
    """
    Raised when a user has used up the gateway's daily request allowance.

    Attributes:
        daily_requests: Requests made today
        max_daily_requests: Allowed requests per day
    """

    def __init__(self, daily_requests: int, max_daily_requests: int) -> None:
        self.daily_requests = daily_requests
        self.max_daily_requests = max_daily_requests
        super().__init__(
            f"Daily request limit reached ({daily_requests}/{max_daily_requests})"
        )


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

from quotehub.services.circuit_breaker import CircuitBreakerOpen

__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "DataProviderError",
    "DataProviderNotFoundError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "AuthenticationError",
    "InvalidApiKeyError",
    "AuthorizationError",
    "PermissionDeniedError",
    "DailyRequestLimitExceededError",
    "CircuitBreakerOpen",
]
