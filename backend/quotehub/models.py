# backend/quotehub/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import String, Date, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, Boolean, JSON, Integer, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class DataSource(str, enum.Enum):
    """Upstream data providers. GHOSTFOLIO is the gateway's own brand."""
    COINGECKO = "COINGECKO"
    GHOSTFOLIO = "GHOSTFOLIO"
    YAHOO = "YAHOO"


class MarketDataState(str, enum.Enum):
    CLOSE = "CLOSE"
    INTRADAY = "INTRADAY"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    DEMO = "DEMO"
    INACTIVE = "INACTIVE"
    USER = "USER"


class SubscriptionType(str, enum.Enum):
    BASIC = "Basic"
    PREMIUM = "Premium"


class AssetClass(str, enum.Enum):
    ALTERNATIVE_INVESTMENT = "ALTERNATIVE_INVESTMENT"
    COMMODITY = "COMMODITY"
    EQUITY = "EQUITY"
    FIXED_INCOME = "FIXED_INCOME"
    LIQUIDITY = "LIQUIDITY"
    REAL_ESTATE = "REAL_ESTATE"


class AssetSubClass(str, enum.Enum):
    BOND = "BOND"
    CASH = "CASH"
    COMMODITY = "COMMODITY"
    CRYPTOCURRENCY = "CRYPTOCURRENCY"
    ETF = "ETF"
    MUTUALFUND = "MUTUALFUND"
    PRECIOUS_METAL = "PRECIOUS_METAL"
    PRIVATE_EQUITY = "PRIVATE_EQUITY"
    STOCK = "STOCK"


class User(Base):
    """
    A consumer of the data provider layer.

    Only the attributes the provider layer reads are modelled: role and
    subscription drive data source selection and premium gating, the
    request counters drive the gateway's daily limit.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    role: Mapped[Role] = mapped_column(Enum(Role), default=Role.USER)
    subscription_type: Mapped[SubscriptionType] = mapped_column(
        Enum(SubscriptionType),
        default=SubscriptionType.BASIC
    )
    is_experimental_features: Mapped[bool] = mapped_column(Boolean, default=False)

    # Gateway usage, reset lazily when a request arrives on a new UTC day
    data_provider_daily_requests: Mapped[int] = mapped_column(Integer, default=0)
    data_provider_last_request_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    api_keys: Mapped[list["ApiKey"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class ApiKey(Base):
    """Hashed API key. The plain key is shown once on creation and never stored."""
    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    hashed_key: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user: Mapped["User"] = relationship(back_populates="api_keys")


class MarketData(Base):
    """
    Daily price per (data source, symbol).

    CLOSE rows come from historical gathering, INTRADAY rows are written
    whenever a live quote for an open market is fetched and are replaced by
    later quotes of the same day.
    """
    __tablename__ = "market_data"
    __table_args__ = (
        UniqueConstraint('data_source', 'date', 'symbol', name='uq_market_data_source_date_symbol'),
        # "Get prices for these symbols of this data source in a date range"
        Index('ix_market_data_source_symbol_date', 'data_source', 'symbol', 'date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    data_source: Mapped[DataSource] = mapped_column(Enum(DataSource))
    symbol: Mapped[str] = mapped_column(String, index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    market_price: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    state: Mapped[MarketDataState] = mapped_column(Enum(MarketDataState), default=MarketDataState.CLOSE)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class Property(Base):
    """
    Runtime key/value settings editable without a redeploy.

    Example keys: DATA_SOURCE_MAPPING, API_KEY_GHOSTFOLIO,
    DATA_SOURCES_GHOSTFOLIO_DATA_PROVIDER_MAX_REQUESTS
    """
    __tablename__ = "properties"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
