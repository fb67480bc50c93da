# tests/unit/core/test_circuit_breaker.py
from __future__ import annotations

import pytest

from token_rotation.core.circuit_breaker import BreakerState, CircuitBreaker, guarded_call
from token_rotation.services._shared.errors import CircuitOpenError, ErrorCode


class _Ticker:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _fail():
    raise ConnectionError("store down")


@pytest.fixture
def ticker():
    return _Ticker()


@pytest.fixture
def breaker(ticker):
    return CircuitBreaker("family_store", failure_threshold=3, reset_timeout=30, clock=ticker)


def _trip(breaker, times):
    for _ in range(times):
        with pytest.raises(ConnectionError):
            breaker.call(_fail)


def test_passes_results_through_when_closed(breaker):
    assert breaker.call(lambda a, b=0: a + b, 1, b=2) == 3
    assert breaker.state is BreakerState.CLOSED


def test_opens_after_consecutive_failures(breaker):
    _trip(breaker, 3)

    assert breaker.state is BreakerState.OPEN
    with pytest.raises(CircuitOpenError) as err:
        breaker.call(lambda: "unreachable")
    assert err.value.dependency == "family_store"
    assert err.value.code is ErrorCode.ROTATION_ERROR


def test_success_resets_failure_count(breaker):
    _trip(breaker, 2)
    breaker.call(lambda: None)
    _trip(breaker, 2)

    assert breaker.state is BreakerState.CLOSED
    assert breaker.failure_count == 2


def test_half_open_probe_success_closes(breaker, ticker):
    _trip(breaker, 3)
    ticker.now += 30

    assert breaker.state is BreakerState.HALF_OPEN
    assert breaker.call(lambda: "ok") == "ok"
    assert breaker.state is BreakerState.CLOSED


def test_half_open_probe_failure_reopens(breaker, ticker):
    _trip(breaker, 3)
    ticker.now += 30

    _trip(breaker, 1)

    assert breaker.state is BreakerState.OPEN


def test_excluded_errors_do_not_count():
    breaker = CircuitBreaker("verifier", failure_threshold=1, excluded=(ValueError,))

    def _reject():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        breaker.call(_reject)
    assert breaker.state is BreakerState.CLOSED


def test_reset_forces_closed(breaker):
    _trip(breaker, 3)

    breaker.reset()

    assert breaker.state is BreakerState.CLOSED
    assert breaker.failure_count == 0


def test_guarded_call_without_breaker_calls_directly():
    assert guarded_call(None, lambda a, b=0: a + b, 2, b=3) == 5


def test_guarded_call_routes_through_breaker(ticker):
    breaker = CircuitBreaker("audit_history", failure_threshold=1, clock=ticker)

    with pytest.raises(ConnectionError):
        guarded_call(breaker, _fail)

    with pytest.raises(CircuitOpenError):
        guarded_call(breaker, lambda: "unreachable")
    assert breaker.failure_count == 1
