"""Consecutive-failure circuit breaker for calls to a remote dependency."""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    While open every call is refused until ``recovery_timeout`` seconds have
    passed; then a single trial call is let through (half-open). Its outcome
    closes or re-opens the circuit.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._rejected_count = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def allow_request(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info("Circuit %s half-open, letting one trial call through", self.name)
                return True
            self._rejected_count += 1
            return False

        # HALF_OPEN: only the single trial call
        if self._trial_in_flight:
            self._rejected_count += 1
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit %s closed", self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._failure_count += 1
        self._trial_in_flight = False
        if self._state == CircuitState.HALF_OPEN:
            self._trip("half-open trial failed")
        elif self._state == CircuitState.CLOSED and self._failure_count >= self._failure_threshold:
            self._trip(f"{self._failure_count} consecutive failures")

    def _trip(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.error("Circuit %s open: %s", self.name, reason)

    def get_stats(self) -> dict[str, object]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "rejected_count": self._rejected_count,
        }
