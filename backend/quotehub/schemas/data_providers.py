# backend/quotehub/schemas/data_providers.py
"""
Pydantic schemas for the data provider gateway.

The gateway speaks camelCase JSON, the format GhostfolioProvider clients
expect. Models are populated from the service dataclasses with the
from_* class methods.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from quotehub.models import AssetClass, AssetSubClass, DataSource
from quotehub.services.data_provider.types import (
    AssetProfile,
    DataProviderInfo,
    DataProviderResponse,
    HistoricalSeries,
    LookupItem,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# SHARED
# =============================================================================

class DataProviderInfoSchema(CamelModel):
    data_source: DataSource | None = None
    is_premium: bool
    name: str | None = None
    url: str | None = None

    @classmethod
    def from_info(cls, info: DataProviderInfo) -> "DataProviderInfoSchema":
        return cls(
            data_source=info.data_source,
            is_premium=info.is_premium,
            name=info.name,
            url=info.url,
        )


class HistoricalDataItemSchema(CamelModel):
    market_price: float


def series_to_schema(series: HistoricalSeries) -> dict[str, HistoricalDataItemSchema]:
    return {
        date_str: HistoricalDataItemSchema(market_price=float(item.market_price))
        for date_str, item in series.items()
    }


# =============================================================================
# RESPONSES
# =============================================================================

class AssetProfileResponse(CamelModel):
    symbol: str
    data_source: DataSource
    currency: str | None = None
    name: str | None = None
    asset_class: AssetClass | None = None
    asset_sub_class: AssetSubClass | None = None
    isin: str | None = None
    url: str | None = None
    countries: list[dict] = Field(default_factory=list)
    sectors: list[dict] = Field(default_factory=list)

    @classmethod
    def from_profile(cls, profile: AssetProfile) -> "AssetProfileResponse":
        return cls(
            symbol=profile.symbol,
            data_source=profile.data_source,
            currency=profile.currency,
            name=profile.name,
            asset_class=profile.asset_class,
            asset_sub_class=profile.asset_sub_class,
            isin=profile.isin,
            url=profile.url,
            countries=list(profile.countries),
            sectors=list(profile.sectors),
        )


class DividendsResponse(CamelModel):
    dividends: dict[str, HistoricalDataItemSchema]


class HistoricalResponse(CamelModel):
    historical_data: dict[str, HistoricalDataItemSchema]


class LookupItemSchema(CamelModel):
    asset_class: AssetClass | None = None
    asset_sub_class: AssetSubClass | None = None
    currency: str | None = None
    data_provider_info: DataProviderInfoSchema | None = None
    data_source: DataSource | None = None
    name: str | None = None
    symbol: str

    @classmethod
    def from_item(cls, item: LookupItem) -> "LookupItemSchema":
        return cls(
            asset_class=item.asset_class,
            asset_sub_class=item.asset_sub_class,
            currency=item.currency,
            data_provider_info=(
                DataProviderInfoSchema.from_info(item.data_provider_info)
                if item.data_provider_info else None
            ),
            data_source=item.data_source,
            name=item.name,
            symbol=item.symbol,
        )


class LookupResponseSchema(CamelModel):
    items: list[LookupItemSchema]


class QuoteSchema(CamelModel):
    currency: str
    data_source: DataSource
    market_price: float
    market_state: str

    @classmethod
    def from_quote(cls, quote: DataProviderResponse) -> "QuoteSchema":
        return cls(
            currency=quote.currency,
            data_source=quote.data_source,
            market_price=float(quote.market_price),
            market_state=quote.market_state.value,
        )


class QuotesResponse(CamelModel):
    quotes: dict[str, QuoteSchema]


class SubscriptionSchema(CamelModel):
    type: str


class StatusResponse(CamelModel):
    daily_requests: int = Field(..., ge=0)
    daily_requests_max: int
    subscription: SubscriptionSchema
