# backend/quotehub/routers/data_providers.py
"""
Data provider gateway endpoints.

Other installations reach the aggregated gateway providers here, through
GhostfolioProvider. Every endpoint needs an API key (`Authorization:
Api-Key <key>`) of a user holding the gateway permission.

Metering:
    Each data endpoint first rejects users over their daily allowance (429),
    then runs the operation and counts it only when it succeeded. The status
    endpoint is free.

Upstream failures are reported as a bare 500 without provider details.
"""

import logging
from datetime import date
from typing import Callable, Literal, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy.orm import Session

from quotehub.database import get_db
from quotehub.dependencies import get_gateway_service, get_gateway_user
from quotehub.middleware import limiter, RATE_LIMIT_GATEWAY
from quotehub.models import User
from quotehub.schemas.data_providers import (
    AssetProfileResponse,
    DividendsResponse,
    HistoricalResponse,
    LookupItemSchema,
    LookupResponseSchema,
    QuoteSchema,
    QuotesResponse,
    StatusResponse,
    series_to_schema,
)
from quotehub.services.gateway import GatewayService
from quotehub.utils.currency import is_isin

logger = logging.getLogger(__name__)

T = TypeVar("T")

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/api",
    tags=["Data Provider Gateway"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def run_metered(
        db: Session,
        user: User,
        gateway: GatewayService,
        operation: Callable[[], T],
) -> T:
    """
    Run a gateway operation under the user's daily allowance.

    Raises:
        DailyRequestLimitExceededError: Allowance used up (429, via handler)
        HTTPException 500: The operation failed
    """
    gateway.check_daily_requests(db, user)

    try:
        result = operation()
        gateway.increment_daily_requests(db, user.id)
    except Exception as e:
        logger.error(f"Gateway request of user {user.id} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from e

    return result


def normalize_lookup_query(query: str) -> str:
    """ISINs are matched upper-case, everything else lower-case."""
    return query.upper() if is_isin(query.upper()) else query.lower()


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/v1/data-providers/ghostfolio/asset-profile/{symbol}",
    response_model=AssetProfileResponse,
    summary="Get an asset profile",
)
@limiter.limit(RATE_LIMIT_GATEWAY)
def get_asset_profile(
        request: Request,
        symbol: str = Path(..., min_length=1),
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> AssetProfileResponse:
    profile = run_metered(db, user, gateway, lambda: gateway.get_asset_profile(symbol))
    return AssetProfileResponse.from_profile(profile)


@router.get(
    "/v2/data-providers/ghostfolio/dividends/{symbol}",
    response_model=DividendsResponse,
    summary="Get dividends of a symbol",
)
@limiter.limit(RATE_LIMIT_GATEWAY)
def get_dividends(
        request: Request,
        symbol: str = Path(..., min_length=1),
        from_date: date = Query(..., alias="from"),
        to_date: date = Query(..., alias="to"),
        granularity: Literal["day", "month"] = Query(default="day"),
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> DividendsResponse:
    dividends = run_metered(
        db, user, gateway,
        lambda: gateway.get_dividends(symbol, from_date, to_date, granularity=granularity),
    )
    return DividendsResponse(dividends=series_to_schema(dividends))


@router.get(
    "/v2/data-providers/ghostfolio/historical/{symbol}",
    response_model=HistoricalResponse,
    summary="Get historical prices of a symbol",
)
@limiter.limit(RATE_LIMIT_GATEWAY)
def get_historical(
        request: Request,
        symbol: str = Path(..., min_length=1),
        from_date: date = Query(..., alias="from"),
        to_date: date = Query(..., alias="to"),
        granularity: Literal["day", "month"] = Query(default="day"),
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> HistoricalResponse:
    historical_data = run_metered(
        db, user, gateway,
        lambda: gateway.get_historical(symbol, from_date, to_date, granularity=granularity),
    )
    return HistoricalResponse(historical_data=series_to_schema(historical_data))


@router.get(
    "/v2/data-providers/ghostfolio/lookup",
    response_model=LookupResponseSchema,
    summary="Search symbols",
)
@limiter.limit(RATE_LIMIT_GATEWAY)
def lookup_symbol(
        request: Request,
        query: str = Query(default=""),
        include_indices: bool = Query(default=False, alias="includeIndices"),
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> LookupResponseSchema:
    result = run_metered(
        db, user, gateway,
        lambda: gateway.lookup(normalize_lookup_query(query), include_indices=include_indices),
    )
    return LookupResponseSchema(items=[LookupItemSchema.from_item(item) for item in result.items])


@router.get(
    "/v2/data-providers/ghostfolio/quotes",
    response_model=QuotesResponse,
    summary="Get live quotes",
)
@limiter.limit(RATE_LIMIT_GATEWAY)
def get_quotes(
        request: Request,
        symbols: str = Query(..., min_length=1, description="Comma separated symbols"),
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> QuotesResponse:
    symbol_list = [symbol.strip() for symbol in symbols.split(",") if symbol.strip()]
    quotes = run_metered(db, user, gateway, lambda: gateway.get_quotes(symbol_list))
    return QuotesResponse(
        quotes={symbol: QuoteSchema.from_quote(quote) for symbol, quote in quotes.items()}
    )


@router.get(
    "/v2/data-providers/ghostfolio/status",
    response_model=StatusResponse,
    summary="Get the caller's gateway usage",
)
def get_status(
        user: User = Depends(get_gateway_user),
        db: Session = Depends(get_db),
        gateway: GatewayService = Depends(get_gateway_service),
) -> StatusResponse:
    return StatusResponse.model_validate(gateway.get_status(db, user))
