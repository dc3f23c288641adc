"""Tests for the circuit breaker guarding payment processor calls."""

import time

import pytest
import stripe

from curio_market.core.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


def tripped(threshold: int = 2, recovery: float = 0.1) -> CircuitBreaker:
    cb = CircuitBreaker("stripe-test", failure_threshold=threshold, recovery_timeout=recovery)
    for _ in range(threshold):
        cb.record_failure()
    return cb


class TestCircuitBreakerStates:

    def test_starts_closed(self):
        cb = CircuitBreaker("stripe-test", failure_threshold=3)
        assert cb.state == CircuitState.CLOSED
        assert cb.allow_request() is True

    def test_opens_at_threshold_only(self):
        cb = CircuitBreaker("stripe-test", failure_threshold=3, recovery_timeout=10.0)
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.allow_request() is False

    def test_half_open_after_recovery_timeout(self):
        cb = tripped()
        time.sleep(0.15)
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.allow_request() is True

    def test_probe_success_closes(self):
        cb = tripped()
        time.sleep(0.15)
        cb.record_success()
        assert cb.state == CircuitState.CLOSED

    def test_probe_failure_reopens(self):
        cb = tripped()
        time.sleep(0.15)
        cb.record_failure()
        assert cb.state == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker("stripe-test", failure_threshold=2, recovery_timeout=10.0)
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_reset(self):
        cb = tripped(recovery=60.0)
        cb.reset()
        assert cb.state == CircuitState.CLOSED


class TestCircuitBreakerGuard:

    @pytest.mark.asyncio
    async def test_open_circuit_skips_the_call(self):
        cb = tripped(threshold=1, recovery=60.0)
        called = False

        with pytest.raises(CircuitOpenError):
            async with cb.guard():
                called = True

        assert called is False

    @pytest.mark.asyncio
    async def test_upstream_errors_count_as_failures(self):
        cb = CircuitBreaker("stripe-test", failure_threshold=2, recovery_timeout=60.0)

        for _ in range(2):
            with pytest.raises(stripe.APIConnectionError):
                async with cb.guard(ignore=(stripe.CardError,)):
                    raise stripe.APIConnectionError("network down")

        assert cb.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_client_errors_do_not_trip(self):
        cb = CircuitBreaker("stripe-test", failure_threshold=1, recovery_timeout=60.0)

        with pytest.raises(stripe.InvalidRequestError):
            async with cb.guard(ignore=(stripe.CardError, stripe.InvalidRequestError)):
                raise stripe.InvalidRequestError("No such customer", param="customer")

        assert cb.state == CircuitState.CLOSED
