"""Circuit breaker for calls to the payment processor."""

import time
from contextlib import asynccontextmanager
from enum import Enum
from threading import Lock
from typing import AsyncIterator

from curio_market.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    """Raised instead of calling an upstream that is known to be down."""

    def __init__(self, name: str):
        super().__init__(f"Circuit '{name}' is open")
        self.name = name


class CircuitBreaker:
    """
    Stops hammering an upstream API after repeated failures.

    CLOSED passes calls through; after ``failure_threshold`` consecutive
    failures it trips to OPEN and rejects calls for ``recovery_timeout``
    seconds; then HALF_OPEN lets one trial call through, which either closes the
    circuit (success) or reopens it (failure).

    Only failures that indicate the upstream is unhealthy should be
    recorded. Card declines and invalid-request errors are the caller's
    problem, not the processor's, and are passed to ``guard`` via
    ``ignore``.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float = 0.0
        self._lock = Lock()

    @property
    def state(self) -> CircuitState:
        """Current state; moves OPEN to HALF_OPEN once the timeout elapsed."""
        with self._lock:
            if (
                self._state == CircuitState.OPEN
                and time.time() - self._last_failure_time >= self.recovery_timeout
            ):
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit breaker '{self.name}': OPEN -> HALF_OPEN (recovery timeout elapsed)")
            return self._state

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit breaker '{self.name}': HALF_OPEN -> CLOSED (success)")
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.time()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker '{self.name}': HALF_OPEN -> OPEN (failure)")
            elif self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    f"Circuit breaker '{self.name}': CLOSED -> OPEN "
                    f"(failures: {self._failure_count}/{self.failure_threshold})"
                )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = 0.0

    @asynccontextmanager
    async def guard(self, ignore: tuple = ()) -> AsyncIterator[None]:
        """
        Wrap one upstream call.

        Raises CircuitOpenError without running the body when the circuit is
        open. Exceptions listed in ``ignore`` propagate without counting as
        upstream failures.
        """
        if not self.allow_request():
            raise CircuitOpenError(self.name)
        try:
            yield
        except ignore:
            self.record_success()
            raise
        except Exception:
            self.record_failure()
            raise
        else:
            self.record_success()


# Shared by every Stripe call in the process
stripe_breaker = CircuitBreaker("stripe", failure_threshold=5, recovery_timeout=30.0)
