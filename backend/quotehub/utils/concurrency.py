# backend/quotehub/utils/concurrency.py
"""
Thread pool fan-out for blocking upstream calls.

Provider clients (yfinance, httpx.Client) are synchronous, so concurrent
requests run in a ThreadPoolExecutor. Each call runs in a copy of the
caller's context, so log records keep the request's correlation ID.
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

from quotehub.services.constants import DATA_PROVIDER_MAX_WORKERS

T = TypeVar("T")
K = TypeVar("K")


def run_concurrently(
        calls: list[tuple[K, Callable[[], T]]],
        max_workers: int = DATA_PROVIDER_MAX_WORKERS,
) -> list[tuple[K, T | Exception]]:
    """
    Run keyed calls in a thread pool.

    Returns:
        (key, result or raised exception) in submission order. Exceptions
        are returned, not raised, so the caller decides whether one failed
        call fails the whole batch.
    """
    if not calls:
        return []

    with ThreadPoolExecutor(max_workers=min(len(calls), max_workers)) as executor:
        futures = [
            (key, executor.submit(contextvars.copy_context().run, func))
            for key, func in calls
        ]

        outcomes: list[tuple[K, T | Exception]] = []
        for key, future in futures:
            try:
                outcomes.append((key, future.result()))
            except Exception as e:
                outcomes.append((key, e))

    return outcomes

