# backend/quotehub/utils/__init__.py
"""
Cross-cutting utilities:
- logging: Logging setup with correlation ID support
- context: Correlation ID storage
- currency: Currency pair and ISIN helpers
- date_utils: Day iteration and UTC day helpers
- concurrency: Thread pool fan-out for provider calls
"""

from quotehub.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from quotehub.utils.logging import setup_logging

__all__ = [
    "setup_logging",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
