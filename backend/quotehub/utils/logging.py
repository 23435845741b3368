# backend/quotehub/utils/logging.py
"""
Logging configuration for quotehub.

- Log level and format from settings (LOG_LEVEL, LOG_FORMAT)
- Every record carries the request's correlation ID
- JSON output for log aggregators
- Third-party HTTP/provider libraries quieted to WARNING

Usage:
    from quotehub.utils import setup_logging

    setup_logging()

Log Levels:
    DEBUG   - Cache hits, per-provider fetch timings
    INFO    - Startup, mapping loaded, circuit breaker recovery
    WARNING - Provider failures, retries, cache backend errors
    ERROR   - Failures surfaced to the caller
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from quotehub.config import settings
from quotehub.utils.context import get_correlation_id

DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

NOISY_LOGGERS = [
    "yfinance",
    "urllib3",
    "urllib3.connectionpool",
    "requests",
    "httpx",
    "httpcore",
    "peewee",
    "redis",
]

# LogRecord attributes that are not "extra" fields
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "message", "taskName",
}


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:

    {
        "timestamp": "2025-01-15T10:30:00.123+00:00",
        "level": "INFO",
        "logger": "quotehub.services.data_provider.service",
        "correlation_id": "abc-123-def",
        "message": "Fetched 3 quote(s) from YAHOO in 0.412 seconds",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            # default=str keeps Decimal prices and enums serializable
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure the root logger. Call once at startup.

    Args:
        level: Log level name, defaults to settings.log_level
        log_format: 'text' or 'json', defaults to settings.log_format
        suppress_noisy_loggers: Lower third-party loggers to WARNING
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = log_format or settings.log_format

    if format_type.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt=DEFAULT_TEXT_FORMAT,
            datefmt=DEFAULT_DATE_FORMAT,
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={log_level_str}, format={format_type}",
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


def _get_log_level(level_str: str) -> int:
    """
    Raises:
        ValueError: If level_str is not a valid log level
    """
    level = logging.getLevelName(level_str.upper().strip())
    if not isinstance(level, int):
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            "Valid levels are: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return level
