# backend/quotehub/services/data_provider/types.py
"""
Data transfer objects shared by data providers, DataProviderService and
the gateway.

Prices are Decimals throughout. Quotes are cached as JSON, so
DataProviderResponse knows how to turn itself into a plain dict and back.
"""

import enum
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from quotehub.models import AssetClass, AssetSubClass, DataSource

Granularity = Literal["day", "month"]

# {date_str: HistoricalDataItem}
HistoricalSeries = dict[str, "HistoricalDataItem"]


class MarketState(str, enum.Enum):
    CLOSED = "closed"
    DELAYED = "delayed"
    OPEN = "open"


@dataclass(frozen=True)
class AssetProfileIdentifier:
    """(data source, symbol): the identity of an asset across the provider layer."""
    data_source: DataSource
    symbol: str


@dataclass(frozen=True)
class DataProviderInfo:
    """
    Attribution of a provider.

    data_source, name and url are None when the identity of the upstream
    provider is hidden from the caller.
    """
    is_premium: bool
    data_source: DataSource | None = None
    name: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataSource": self.data_source.value if self.data_source else None,
            "isPremium": self.is_premium,
            "name": self.name,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataProviderInfo":
        data_source = data.get("dataSource")
        return cls(
            is_premium=bool(data.get("isPremium", False)),
            data_source=DataSource(data_source) if data_source else None,
            name=data.get("name"),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class DataProviderResponse:
    """
    A live quote.

    Attributes:
        currency: Currency of market_price (may be derived, e.g. GBp)
        data_source: Data source the quote is attributed to
        market_price: Last price
        market_state: Whether the market is open, closed or delayed
        data_provider_info: Attribution, if the provider supplies one
    """
    currency: str
    data_source: DataSource
    market_price: Decimal
    market_state: MarketState
    data_provider_info: DataProviderInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation (price as string to keep precision)."""
        result: dict[str, Any] = {
            "currency": self.currency,
            "dataSource": self.data_source.value,
            "marketPrice": str(self.market_price),
            "marketState": self.market_state.value,
        }
        if self.data_provider_info is not None:
            result["dataProviderInfo"] = self.data_provider_info.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataProviderResponse":
        """
        Raises:
            ValueError: If a required field is missing or malformed
        """
        try:
            info = data.get("dataProviderInfo")
            return cls(
                currency=data["currency"],
                data_source=DataSource(data["dataSource"]),
                market_price=Decimal(str(data["marketPrice"])),
                market_state=MarketState(data["marketState"]),
                data_provider_info=DataProviderInfo.from_dict(info) if info else None,
            )
        except (KeyError, TypeError, InvalidOperation) as e:
            raise ValueError(f"Malformed quote: {e}") from e


@dataclass(frozen=True)
class HistoricalDataItem:
    """Price (or dividend amount) on one day."""
    market_price: Decimal


@dataclass(frozen=True)
class LookupItem:
    """One search hit."""
    symbol: str
    data_source: DataSource | None
    name: str | None
    currency: str | None
    asset_class: AssetClass | None = None
    asset_sub_class: AssetSubClass | None = None
    data_provider_info: DataProviderInfo | None = None


@dataclass
class LookupResponse:
    items: list[LookupItem] = field(default_factory=list)


@dataclass(frozen=True)
class AssetProfile:
    """Descriptive data about an asset, as far as a provider knows it."""
    symbol: str
    data_source: DataSource
    currency: str | None = None
    name: str | None = None
    asset_class: AssetClass | None = None
    asset_sub_class: AssetSubClass | None = None
    isin: str | None = None
    url: str | None = None
    countries: tuple[dict[str, Any], ...] = ()
    sectors: tuple[dict[str, Any], ...] = ()
