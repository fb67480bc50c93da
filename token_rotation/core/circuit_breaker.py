"""Lightweight circuit breaker wrapping calls to external stores and services."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import ParamSpec, TypeVar

from token_rotation.services._shared.errors import CircuitOpenError

log = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    * ``CLOSED``: calls pass through; each failure bumps a counter, a success resets it.
    * ``OPEN``: reached after ``failure_threshold`` consecutive failures; calls fail
      fast with :class:`CircuitOpenError` until ``reset_timeout`` seconds elapse.
    * ``HALF_OPEN``: a single probe call is let through; success closes the breaker,
      failure re-opens it.

    :param name: Dependency name, used in logs and health reports.
    :param failure_threshold: Consecutive failures before opening.
    :param reset_timeout: Seconds to stay open before probing.
    :param clock: Monotonic time source (seconds).
    :param excluded: Exception types that do not count as dependency failures.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 10,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        excluded: tuple[type[BaseException], ...] = (),
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._excluded = excluded
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._current_state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    def _current_state(self) -> BreakerState:
        # Caller holds the lock
        if (
            self._state is BreakerState.OPEN
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            self._state = BreakerState.HALF_OPEN
            self._probe_in_flight = False
        return self._state

    def call(self, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        """Invoke ``fn`` through the breaker.

        :raises CircuitOpenError: When the breaker is open (or a probe is in flight).
        """
        with self._lock:
            state = self._current_state()
            if state is BreakerState.OPEN:
                raise CircuitOpenError(self.name)
            if state is BreakerState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(self.name)
                self._probe_in_flight = True

        try:
            result = fn(*args, **kwargs)
        except self._excluded:
            self._record_success()
            raise
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            if self._state is not BreakerState.CLOSED:
                log.info("Circuit breaker closed", extra={"dependency": self.name})
            self._state = BreakerState.CLOSED
            self._failures = 0
            self._probe_in_flight = False

    def _record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state is BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state is not BreakerState.OPEN:
                    log.warning(
                        "Circuit breaker opened after %d consecutive failures",
                        self._failures,
                        extra={"dependency": self.name},
                    )
                self._state = BreakerState.OPEN
                self._opened_at = self._clock()
                self._probe_in_flight = False

    def reset(self) -> None:
        """Force the breaker back to ``CLOSED``."""
        with self._lock:
            self._state = BreakerState.CLOSED
            self._failures = 0
            self._probe_in_flight = False


def guarded_call(
    breaker: CircuitBreaker | None, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs
) -> R:
    """Call ``fn`` through ``breaker``, or directly when no breaker is wired."""
    if breaker is None:
        return fn(*args, **kwargs)
    return breaker.call(fn, *args, **kwargs)
