# backend/quotehub/middleware/__init__.py
"""
ASGI middleware:
- Correlation ID tracking for request tracing
- Per-IP rate limiting

Usage:
    from quotehub.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from quotehub.middleware.correlation import CorrelationIdMiddleware
from quotehub.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_GATEWAY,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_PROBE,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_GATEWAY",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_PROBE",
]
