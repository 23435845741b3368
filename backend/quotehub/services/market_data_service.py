# backend/quotehub/services/market_data_service.py
"""
Persistence of daily prices in the market_data table.

Rows are unique per (data_source, date, symbol). Writes are upserts so an
INTRADAY price written in the morning is replaced by later quotes of the
same day, and eventually by the CLOSE price from historical gathering.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select, and_, or_, extract
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from quotehub.models import DataSource, MarketData, MarketDataState

if TYPE_CHECKING:
    from quotehub.services.data_provider.types import AssetProfileIdentifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketDataUpdate:
    data_source: DataSource
    symbol: str
    date: date
    market_price: Decimal
    state: MarketDataState = MarketDataState.CLOSE


class MarketDataService:
    """Read and upsert daily prices. Receives the session per call."""

    def update_many(self, db: Session, data: list[MarketDataUpdate]) -> int:
        """
        Upsert prices, replacing market_price and state on conflict.

        Returns:
            Number of rows written
        """
        if not data:
            return 0

        records = [
            {
                "data_source": item.data_source,
                "symbol": item.symbol,
                "date": item.date,
                "market_price": item.market_price,
                "state": item.state,
            }
            for item in data
        ]

        insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
        stmt = insert(MarketData).values(records)
        stmt = stmt.on_conflict_do_update(
            index_elements=["data_source", "date", "symbol"],
            set_={
                "market_price": stmt.excluded.market_price,
                "state": stmt.excluded.state,
            },
        )

        db.execute(stmt)
        db.commit()

        logger.debug(f"Upserted {len(records)} market data row(s)")
        return len(records)

    def get_range(
            self,
            db: Session,
            identifiers: list["AssetProfileIdentifier"],
            start_date: date,
            end_date: date,
            monthly_since: date | None = None,
    ) -> list[MarketData]:
        """
        Stored prices for the identifiers between both dates (inclusive), oldest first.

        With monthly_since set, only the first day of each month is returned
        before that date and every day from it on.
        """
        if not identifiers:
            return []

        pairs = or_(*(
            and_(MarketData.data_source == item.data_source, MarketData.symbol == item.symbol)
            for item in identifiers
        ))

        stmt = (
            select(MarketData)
            .where(pairs, MarketData.date >= start_date, MarketData.date <= end_date)
            .order_by(MarketData.date, MarketData.symbol)
        )
        if monthly_since is not None:
            stmt = stmt.where(or_(
                extract("day", MarketData.date) == 1,
                MarketData.date >= monthly_since,
            ))

        return list(db.scalars(stmt).all())
