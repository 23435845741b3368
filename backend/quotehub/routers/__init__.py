# backend/quotehub/routers/__init__.py
"""
API routers:
- data_providers: Data provider gateway (/api/v1|v2/data-providers/ghostfolio/*)
- health: Health checks (/api/v1/health/*)
"""

from quotehub.routers.data_providers import router as data_providers_router
from quotehub.routers.health import router as health_router

__all__ = [
    "data_providers_router",
    "health_router",
]
