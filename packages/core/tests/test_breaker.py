"""Tests for the oracle circuit breaker."""

import pytest

from argus_core.breaker import CLOSED, HALF_OPEN, OPEN, BreakerState, CircuitBreaker
from argus_core.errors import TransientUpstreamError


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_breaker(threshold=2, reset_timeout=30.0):
    clock = Clock()
    return CircuitBreaker("test", threshold=threshold, reset_timeout=reset_timeout, clock=clock), clock


class TestCircuitBreaker:
    def test_starts_closed(self):
        breaker, _ = make_breaker()
        breaker.before_call()
        assert breaker.state.state == CLOSED

    def test_opens_at_threshold(self):
        breaker, _ = make_breaker(threshold=2)
        breaker.record_failure()
        assert breaker.state.state == CLOSED
        breaker.record_failure()
        assert breaker.state.state == OPEN
        with pytest.raises(TransientUpstreamError):
            breaker.before_call()

    def test_success_resets_failure_count(self):
        breaker, _ = make_breaker(threshold=2)
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state.state == CLOSED
        assert breaker.state.failure_count == 1

    def test_half_opens_after_reset_timeout(self):
        breaker, clock = make_breaker(threshold=1, reset_timeout=30.0)
        breaker.record_failure()
        clock.now += 30.0
        breaker.before_call()
        assert breaker.state.state == HALF_OPEN

    def test_half_open_failure_reopens(self):
        breaker, clock = make_breaker(threshold=3, reset_timeout=30.0)
        for _ in range(3):
            breaker.record_failure()
        clock.now += 31.0
        breaker.before_call()
        breaker.record_failure()
        assert breaker.state.state == OPEN

    def test_half_open_success_closes(self):
        breaker, clock = make_breaker(threshold=1)
        breaker.record_failure()
        clock.now += 60.0
        breaker.before_call()
        breaker.record_success()
        assert breaker.state.state == CLOSED
        assert breaker.state.failure_count == 0

    def test_state_is_shared_only_when_passed_explicitly(self):
        shared = BreakerState()
        a = CircuitBreaker("a", threshold=1, state=shared)
        b = CircuitBreaker("b", threshold=1, state=shared)
        c = CircuitBreaker("c", threshold=1)
        a.record_failure()
        assert b.state.state == OPEN
        assert c.state.state == CLOSED
