# backend/quotehub/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application and loads the data source mapping on startup
- Registers global exception handlers
- Registers all routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from quotehub.config import settings
from quotehub.database import SessionLocal
from quotehub.dependencies import get_data_provider_service
from quotehub.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
)
from quotehub.routers import data_providers_router, health_router
from quotehub.schemas.errors import ErrorDetail, ValidationErrorDetail
from quotehub.services.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CircuitBreakerOpen,
    DailyRequestLimitExceededError,
    DataProviderError,
    DataProviderNotFoundError,
    NotFoundError,
    PermissionDeniedError,
    ProviderUnavailableError,
    RateLimitError,
    ServiceError,
    TickerNotFoundError,
    ValidationError,
)
from quotehub.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the data source mapping before serving requests."""
    try:
        with SessionLocal() as db:
            get_data_provider_service().initialize(db)
    except SQLAlchemyError as e:
        logger.error(f"Could not load the data source mapping, starting without it: {e}")
    yield


app = FastAPI(
    title=settings.app_name,
    description="Data provider aggregation, quote caching and data provider gateway",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)

# Outermost, so every log record of the request carries the correlation ID
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions carry no HTTP knowledge; they are mapped to
# status codes here. Handlers for subclasses are matched before their bases.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(
        status_code: int,
        exc: Exception,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle not found errors (404)."""
    logger.warning(f"Not found: {exc}")
    details = {"resource_type": exc.resource_type, "resource_id": exc.resource_id} if exc.resource_type else None
    return _error_response(404, exc, details)


@app.exception_handler(TickerNotFoundError)
async def ticker_not_found_handler(request: Request, exc: TickerNotFoundError) -> JSONResponse:
    """Handle symbol unknown to a data provider (404)."""
    logger.warning(f"Symbol not found on provider: {exc.symbol}")
    return _error_response(404, exc, {"symbol": exc.symbol, "provider": exc.provider})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(400, exc, {"field": exc.field} if exc.field else None)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Handle missing or invalid API keys (401)."""
    logger.warning(f"Authentication error: {exc}")
    return _error_response(401, exc, headers={"WWW-Authenticate": "Api-Key"})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    """Handle missing permissions (403)."""
    logger.warning(f"Permission denied: {exc.permission}")
    return _error_response(403, exc, {"permission": exc.permission})


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    """Handle generic authorization errors (403)."""
    logger.warning(f"Authorization error: {exc}")
    return _error_response(403, exc)


@app.exception_handler(DailyRequestLimitExceededError)
async def daily_limit_handler(request: Request, exc: DailyRequestLimitExceededError) -> JSONResponse:
    """Handle an exhausted gateway allowance (429)."""
    logger.warning(f"Daily request limit exceeded: {exc}")
    return _error_response(429, exc, {
        "daily_requests": exc.daily_requests,
        "max_daily_requests": exc.max_daily_requests,
    })


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
    """Handle data provider unavailable (503)."""
    logger.error(f"Provider unavailable: {exc}")
    return _error_response(503, exc, {"provider": exc.provider})


@app.exception_handler(RateLimitError)
async def upstream_rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Handle upstream rate limits (503; the caller did nothing wrong)."""
    logger.warning(f"Upstream rate limit: {exc}")
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return _error_response(503, exc, {"provider": exc.provider, "retry_after": exc.retry_after}, headers)


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={"breaker_name": exc.breaker_name, "retry_after": retry_after},
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(DataProviderNotFoundError)
async def data_provider_not_found_handler(request: Request, exc: DataProviderNotFoundError) -> JSONResponse:
    """Handle a data source without registered provider (500)."""
    logger.error(f"No data provider for {exc.data_source}")
    return _error_response(500, exc, {"data_source": exc.data_source})


@app.exception_handler(DataProviderError)
async def data_provider_error_handler(request: Request, exc: DataProviderError) -> JSONResponse:
    """Handle generic data provider errors (500)."""
    logger.error(f"Data provider error: {exc}")
    return _error_response(500, exc, {"provider": exc.provider} if exc.provider else None)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, exc)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle all HTTPExceptions with consistent error format.

    Converts FastAPI's default {"detail": "..."} format to ErrorDetail.
    """
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    error_type = error_types.get(exc.status_code, "HTTPError")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_type,
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422) in ValidationErrorDetail format."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(data_providers_router)  # /api/v1|v2/data-providers/ghostfolio/*
app.include_router(health_router)  # /api/v1/health/*
