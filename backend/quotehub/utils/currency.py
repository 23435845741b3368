# backend/quotehub/utils/currency.py
"""
Currency and identifier helpers.

Currency pairs are symbols of the form DEFAULT_CURRENCY + target, e.g.
"USDEUR" quotes EUR per USD. Some markets quote in minor units (GBp for
pence); those derived currencies are never fetched directly but computed
from their root pair.
"""

import re

from quotehub.services.constants import (
    DEFAULT_CURRENCY,
    DERIVED_CURRENCIES,
    ISO_CURRENCY_CODES,
    DerivedCurrency,
)

_DERIVED_BY_CURRENCY: dict[str, DerivedCurrency] = {
    derived.currency: derived for derived in DERIVED_CURRENCIES
}

_ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")


def get_currency_from_symbol(symbol: str | None = "") -> str:
    """
    Strip the default currency from a pair symbol.

    Example:
        >>> get_currency_from_symbol("USDGBp")
        'GBp'
    """
    return (symbol or "").replace(DEFAULT_CURRENCY, "", 1)


def is_currency(code: str | None) -> bool:
    """True for ISO 4217 codes and derived currencies like GBp."""
    if not code:
        return False
    return code in ISO_CURRENCY_CODES or is_derived_currency(code)


def is_derived_currency(code: str | None) -> bool:
    if not code:
        return False
    return code in _DERIVED_BY_CURRENCY


def get_derived_currency(code: str) -> DerivedCurrency | None:
    return _DERIVED_BY_CURRENCY.get(code)


def is_isin(value: str | None) -> bool:
    """
    Validate an International Securities Identification Number.

    Checks the format (country code, nine alphanumerics, check digit) and
    the Luhn check digit computed over the letters expanded to numbers.

    Example:
        >>> is_isin("US0378331005")
        True
    """
    if not value:
        return False

    value = value.upper()
    if not _ISIN_PATTERN.match(value):
        return False

    # A=10 ... Z=35, digits unchanged
    digits = "".join(str(int(char, 36)) for char in value)

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0
