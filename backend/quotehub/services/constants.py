# backend/quotehub/services/constants.py
"""
Centralized constants for the quotehub services.

Usage:
    from quotehub.services.constants import (
        DEFAULT_CURRENCY,
        DERIVED_CURRENCIES,
        PROPERTY_DATA_SOURCE_MAPPING,
    )
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


# =============================================================================
# CURRENCIES
# =============================================================================

# Currency pairs are written as DEFAULT_CURRENCY + target, e.g. "USDEUR"
DEFAULT_CURRENCY: str = "USD"


@dataclass(frozen=True)
class DerivedCurrency:
    """
    A currency quoted in minor units of a root currency.

    Example: GBp (pence) = GBP * 100
    """
    currency: str
    root_currency: str
    factor: int


DERIVED_CURRENCIES: tuple[DerivedCurrency, ...] = (
    DerivedCurrency(currency="GBp", root_currency="GBP", factor=100),
    DerivedCurrency(currency="ILA", root_currency="ILS", factor=100),
    DerivedCurrency(currency="USX", root_currency="USD", factor=100),
    DerivedCurrency(currency="ZAc", root_currency="ZAR", factor=100),
)

# USX is derived from the default currency itself, so "USDUSX" has no root
# pair to fetch and is always answered with a fixed price
USX_SYMBOL: str = f"{DEFAULT_CURRENCY}USX"
USX_MARKET_PRICE: Decimal = Decimal("100")

# ISO 4217 codes accepted as currencies
ISO_CURRENCY_CODES: frozenset[str] = frozenset({
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY",
    "COP", "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD", "EGP",
    "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GHS", "GIP", "GMD",
    "GNF", "GTQ", "GYD", "HKD", "HNL", "HTG", "HUF", "IDR", "ILS", "INR",
    "IQD", "IRR", "ISK", "JMD", "JOD", "JPY", "KES", "KGS", "KHR", "KMF",
    "KPW", "KRW", "KWD", "KYD", "KZT", "LAK", "LBP", "LKR", "LRD", "LSL",
    "LYD", "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR",
    "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK", "NPR",
    "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG", "QAR",
    "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR", "SDG", "SEK", "SGD",
    "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SVC", "SYP", "SZL", "THB",
    "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX",
    "USD", "UYU", "UZS", "VES", "VND", "VUV", "WST", "XAF", "XCD", "XOF",
    "XPF", "YER", "ZAR", "ZMW", "ZWL",
})


# =============================================================================
# DATES
# =============================================================================

DATE_FORMAT: str = "%Y-%m-%d"

# Users created before this date keep the legacy data source selection
DATA_SOURCES_LEGACY_CUTOFF: date = date(2025, 3, 23)


# =============================================================================
# PROPERTY KEYS
# =============================================================================

# dict mapping a requested provider name to the provider serving it
PROPERTY_DATA_SOURCE_MAPPING: str = "DATA_SOURCE_MAPPING"

# API key this installation uses against a remote gateway
PROPERTY_API_KEY_GHOSTFOLIO: str = "API_KEY_GHOSTFOLIO"

# Per-user daily request limit of the gateway
PROPERTY_DATA_SOURCES_GHOSTFOLIO_DATA_PROVIDER_MAX_REQUESTS: str = (
    "DATA_SOURCES_GHOSTFOLIO_DATA_PROVIDER_MAX_REQUESTS"
)


# =============================================================================
# DATA PROVIDER SETTINGS
# =============================================================================

# Timeout for health checks and bulk historical/dividend fetches
DATA_PROVIDER_LONG_TIMEOUT_SECONDS: float = 30.0

# Queries shorter than this are not forwarded to providers
MIN_SEARCH_QUERY_LENGTH: int = 2

# Worker threads for fanning requests out across providers and chunks
DATA_PROVIDER_MAX_WORKERS: int = 8


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Number of failures before circuit opens and blocks requests
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds to wait before testing if a provider has recovered
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Maximum calls allowed in half-open state to test recovery
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3

# Time window (seconds) for counting failures (0 = count all failures)
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# RATE LIMITING CONSTANTS
# =============================================================================
# Format follows slowapi/limits syntax: "100/minute", "10/hour", etc.

# Default rate limit for read endpoints
RATE_LIMIT_DEFAULT: str = "100/minute"

# Per-IP limit for gateway endpoints (on top of the per-user daily limit)
RATE_LIMIT_GATEWAY: str = "60/minute"

# Rate limit for data provider health checks (each one triggers an upstream quote)
RATE_LIMIT_PROBE: str = "10/minute"

# Rate limit for health check endpoints
RATE_LIMIT_HEALTH: str = "300/minute"
