# backend/quotehub/routers/health.py
"""
Health check endpoints.

- /api/v1/health: database (critical), Redis cache and provider circuit
  breakers (non-critical). 503 when a critical check fails.
- /api/v1/health/live: process liveness, no dependency checks.
- /api/v1/health/data-provider/{data_source}: live quote of the provider's
  test symbol.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotehub.database import get_db
from quotehub.dependencies import get_data_provider_service, get_redis_cache
from quotehub.middleware import limiter, RATE_LIMIT_HEALTH, RATE_LIMIT_PROBE
from quotehub.models import DataSource
from quotehub.services.circuit_breaker import CircuitBreakerOpen
from quotehub.services.data_provider import DataProviderService
from quotehub.services.exceptions import DataProviderError
from quotehub.services.redis_cache import RedisCacheService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/health",
    tags=["Health"],
)


@router.get("")
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(
        request: Request,
        db: Session = Depends(get_db),
        cache: RedisCacheService = Depends(get_redis_cache),
        data_provider_service: DataProviderService = Depends(get_data_provider_service),
):
    """
    Comprehensive health check endpoint.

    **Response Status Codes:**
    - 200: All systems healthy, or non-critical systems degraded
    - 503: Database unhealthy, do not route traffic here
    """
    checks = {}
    critical_healthy = True
    overall_status = "healthy"

    # Database (CRITICAL)
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy", "critical": True}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "unhealthy", "critical": True, "error": str(e)}
        critical_healthy = False
        overall_status = "unhealthy"

    # Quote cache (NON-CRITICAL): a dead cache only means every quote is fetched
    if cache.is_healthy():
        checks["cache"] = {"status": "healthy", "critical": False}
    else:
        checks["cache"] = {"status": "unhealthy", "critical": False}
        if overall_status == "healthy":
            overall_status = "degraded"

    # Provider circuit breakers (NON-CRITICAL)
    for provider in data_provider_service.providers:
        breaker = provider._get_circuit_breaker()
        checks[f"data_provider_{provider.get_name().value.lower()}"] = {
            "status": "unhealthy" if breaker.is_open else "healthy",
            "critical": False,
            "circuit_breaker": breaker.to_dict(),
        }
        if breaker.is_open and overall_status == "healthy":
            overall_status = "degraded"

    response_data = {"status": overall_status, "checks": checks}

    if not critical_healthy:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response_data)

    return response_data


@router.get("/live")
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Returns 200 whenever the process is alive."""
    return {"status": "alive"}


@router.get("/data-provider/{data_source}")
@limiter.limit(RATE_LIMIT_PROBE)
def data_provider_check(
        request: Request,
        data_source: str,
        db: Session = Depends(get_db),
        data_provider_service: DataProviderService = Depends(get_data_provider_service),
):
    """
    Quote the provider's test symbol, bypassing the cache.

    - 200 {"status": "OK"}: positive price returned
    - 400: unknown data source
    - 503: no price
    """
    try:
        source = DataSource(data_source)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid data source: {data_source}",
        )

    try:
        has_quote = data_provider_service.check_quote(db, source)
    except (DataProviderError, CircuitBreakerOpen) as e:
        logger.warning(f"Data provider check for {data_source} failed: {e}")
        has_quote = False

    if not has_quote:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Data provider {data_source} is unavailable",
        )

    return {"status": "OK"}
