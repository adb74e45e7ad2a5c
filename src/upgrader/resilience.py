"""Resilience primitives for package index lookups.

A ``CircuitBreaker`` stops hammering an index that keeps failing, and
``retry`` re-runs a lookup that failed for a transient reason. Both are
thread-safe because ``PackageIndexClient.fetch_all`` shares one breaker
between its lookup workers.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from typing import Any, Callable, Iterator, TypeVar

from upgrader.defaults import (
    INDEX_BACKOFF_CAP_SECONDS,
    INDEX_BREAKER_COOLDOWN_SECONDS,
    INDEX_BREAKER_FAILURES,
)

log = logging.getLogger("upgrader.resilience")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------

class CircuitOpen(Exception):
    """The service failed too often; calls are refused until the cooldown ends."""

    def __init__(self, service: str, retry_in: float) -> None:
        super().__init__(f"{service} is unavailable (circuit open); retry in {retry_in:.0f}s")
        self.service = service
        self.retry_in = retry_in


class CircuitBreaker:
    """Closed until *failure_threshold* consecutive failures, then open for *cooldown* seconds.

    After the cooldown the breaker is half-open: exactly one trial call goes
    through while other callers are refused. The trial's outcome closes or
    re-opens the circuit.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str,
        failure_threshold: int = INDEX_BREAKER_FAILURES,
        cooldown: float = INDEX_BREAKER_COOLDOWN_SECONDS,
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown = cooldown
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_running = False
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> str:
        if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.cooldown:
            self._state = self.HALF_OPEN
            self._trial_running = False
        return self._state

    def _admit(self) -> None:
        with self._lock:
            state = self._current_state()
            if state == self.CLOSED:
                return
            if state == self.HALF_OPEN and not self._trial_running:
                self._trial_running = True
                log.info("Circuit breaker '%s' half-open; sending a trial request", self.name)
                return
            remaining = max(0.0, self.cooldown - (time.monotonic() - self._opened_at))
        raise CircuitOpen(self.name, remaining)

    def record_success(self) -> None:
        with self._lock:
            if self._state == self.HALF_OPEN:
                log.info("Circuit breaker '%s' closed", self.name)
            self._state = self.CLOSED
            self._failures = 0
            self._trial_running = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == self.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state != self.OPEN:
                    log.warning(
                        "Circuit breaker '%s' opened after %d failure(s)", self.name, self._failures,
                    )
                self._state = self.OPEN
                self._opened_at = time.monotonic()
                self._trial_running = False

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


# ---------------------------------------------------------------------------
# Retry with exponential backoff
# ---------------------------------------------------------------------------

def backoff_delays(
    attempts: int,
    base_delay: float,
    max_delay: float = INDEX_BACKOFF_CAP_SECONDS,
) -> Iterator[float]:
    """Delays to sleep between *attempts* tries: base, 2*base, 4*base, ... capped."""
    delay = base_delay
    for _ in range(max(0, attempts - 1)):
        yield min(delay, max_delay)
        delay *= 2


def retry(
    attempts: int,
    base_delay: float,
    when: Callable[[Exception], bool],
    max_delay: float = INDEX_BACKOFF_CAP_SECONDS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator: re-run the call while it raises an error for which *when* is true.

    Errors *when* rejects propagate at once; the last transient error
    propagates after the final attempt.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delays = backoff_delays(attempts, base_delay, max_delay)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    delay = next(delays, None) if when(e) else None
                    if delay is None:
                        raise
                    log.warning(
                        "Attempt %d/%d of %s failed: %s; retrying in %.1fs",
                        attempt, attempts, func.__name__, e, delay,
                    )
                    time.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
