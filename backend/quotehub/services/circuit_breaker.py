# backend/quotehub/services/circuit_breaker.py
"""
Circuit breaker guarding calls to upstream data providers.

Each provider instance owns one breaker. After enough failures the breaker
opens and calls fail fast with CircuitBreakerOpen until the recovery timeout
has passed; then a few trial calls decide whether it closes again.

States:
    CLOSED  - Normal operation, requests pass through
    OPEN    - Too many failures, requests rejected immediately
    HALF_OPEN - Testing recovery, limited requests allowed

Usage:
    breaker = CircuitBreaker(name="data-provider-YAHOO")

    with breaker:
        quotes = fetch_quotes()
"""
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    A call was rejected without being attempted.

    Attributes:
        breaker_name: Name of the rejecting breaker
        time_remaining: Seconds until the breaker lets a trial call through
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker, used as a context manager around one call.

    Calls from the provider fan-out run on worker threads, so all state is
    guarded by an RLock. Timing uses the monotonic clock; the *_time fields
    of CircuitBreakerStats are wall-clock timestamps for display only.

    Attributes:
        name: Identifier used in logs, errors and health output
        failure_threshold: Failures that open the circuit
        recovery_timeout: Seconds an open circuit waits before trial calls
        half_open_max_calls: Trial calls admitted while half-open
        failure_window: Only failures this recent (seconds) count, 0 = all
        excluded_exceptions: Exceptions that count as a healthy answer
            (a missing ticker says nothing about provider health)
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: deque = field(default_factory=deque, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _trial_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

    # =========================================================================
    # INSPECTION
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    @property
    def stats(self) -> CircuitBreakerStats:
        """Snapshot of the counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def to_dict(self) -> dict[str, Any]:
        """Health-check view of this breaker."""
        with self._lock:
            state = self._current_state()
            result: dict[str, Any] = {
                "state": state.value,
                "failed_calls": self._stats.failed_calls,
                "rejected_calls": self._stats.rejected_calls,
            }
            if state == CircuitState.OPEN:
                result["retry_after_seconds"] = round(self._seconds_until_trial(), 1)
            return result

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "CircuitBreaker":
        """
        Raises:
            CircuitBreakerOpen: The call is not admitted
        """
        with self._lock:
            self._stats.total_calls += 1
            if not self._admit():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._seconds_until_trial())
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        failed = exc_val is not None and not isinstance(exc_val, self.excluded_exceptions)
        with self._lock:
            if failed:
                self._on_failure()
            else:
                self._on_success()
        return False

    # =========================================================================
    # MANUAL CONTROL
    # =========================================================================

    def reset(self) -> None:
        """Close the breaker and forget past failures."""
        with self._lock:
            self._move_to(CircuitState.CLOSED)

    def force_open(self) -> None:
        """Open the breaker, e.g. while a provider is known to be down."""
        with self._lock:
            self._opened_at = time.monotonic()
            self._move_to(CircuitState.OPEN)

    # =========================================================================
    # INTERNALS (caller holds the lock)
    # =========================================================================

    def _current_state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._seconds_until_trial() <= 0:
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    def _admit(self) -> bool:
        state = self._current_state()
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and self._trial_calls < self.half_open_max_calls:
            self._trial_calls += 1
            return True
        return False

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = time.time()
        if self._state == CircuitState.HALF_OPEN:
            self._move_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = time.monotonic()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._opened_at = now
            self._move_to(CircuitState.OPEN)
            return

        if self._state != CircuitState.CLOSED:
            return

        self._failures.append(now)
        if self.failure_window > 0:
            while self._failures and self._failures[0] <= now - self.failure_window:
                self._failures.popleft()

        if len(self._failures) >= self.failure_threshold:
            self._opened_at = now
            self._move_to(CircuitState.OPEN)

    def _seconds_until_trial(self) -> float:
        return max(0.0, self._opened_at + self.recovery_timeout - time.monotonic())

    def _move_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.HALF_OPEN:
            self._trial_calls = 0
        elif new_state == CircuitState.CLOSED:
            self._failures.clear()

        level = logging.WARNING if new_state == CircuitState.OPEN else logging.INFO
        logger.log(level, f"CircuitBreaker '{self.name}': {old_state.value} -> {new_state.value}")
