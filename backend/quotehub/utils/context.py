# backend/quotehub/utils/context.py
"""
Request context for correlation IDs.

Uses contextvars, so the value follows the request through the worker
threads started by the provider fan-out only when the context is copied
explicitly (see quotehub.utils.concurrency.run_concurrently).

Usage:
    from quotehub.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")
    correlation_id = get_correlation_id()  # "abc-123"
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, or None if not set."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)
