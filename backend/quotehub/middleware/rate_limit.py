# backend/quotehub/middleware/rate_limit.py
"""
Per-IP rate limiting with slowapi.

This protects upstream provider quotas independently of the gateway's
per-user daily allowance, which is enforced in the gateway router.

Key by: Client IP address (X-Forwarded-For only from trusted proxies)
Storage: In-memory

Usage:
    from quotehub.middleware.rate_limit import limiter, RATE_LIMIT_GATEWAY

    @router.get("/quotes")
    @limiter.limit(RATE_LIMIT_GATEWAY)
    def get_quotes(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from quotehub.config import settings
from quotehub.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_GATEWAY,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_PROBE,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


def _is_trusted_proxy(request: Request) -> bool:
    if settings.trust_proxy_headers:
        return True

    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Client IP for rate limit keys.

    Forwarding headers are honoured only when the immediate peer is a
    trusted proxy, otherwise clients could pick their own key.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=not settings.is_test,
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """429 in the same body format as every other API error."""
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(
        f"Rate limit exceeded for {_get_client_ip(request)}: {limit_info}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {
                "retry_after": DEFAULT_RETRY_AFTER_SECONDS,
            },
        },
        headers={
            "Retry-After": str(DEFAULT_RETRY_AFTER_SECONDS),
        },
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_GATEWAY",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_PROBE",
]
