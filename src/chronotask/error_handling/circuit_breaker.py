"""
Circuit breaker pattern implementation for fault tolerance.
Stops further retry attempts for an error code after repeated failures until
a cool-down elapses.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from chronotask.config import CIRCUIT_BREAKER_THRESHOLD, CIRCUIT_BREAKER_TIMEOUT

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """Circuit breaker pattern to prevent cascade failures."""

    def __init__(
        self,
        failure_threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        recovery_timeout: float = CIRCUIT_BREAKER_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.clock = clock
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    def record_success(self):
        """Record successful operation."""
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit breaker closed after successful recovery")
        self.failure_count = 0
        self.last_failure_time = None
        self.state = CircuitState.CLOSED

    def record_failure(self):
        """Record failed operation and potentially open circuit."""
        self.failure_count += 1
        self.last_failure_time = self.clock()

        # In half-open state, any failure immediately opens the circuit
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning("Circuit breaker opened after failure in half-open state")
        elif self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker opened after {self.failure_count} failures"
                )
            self.state = CircuitState.OPEN

    def can_proceed(self) -> bool:
        """Check if operation can proceed."""
        if self.state != CircuitState.OPEN:
            return True

        # Check if recovery timeout has passed (transition from open to half-open)
        if self.last_failure_time is not None:
            time_since_failure = self.clock() - self.last_failure_time
            if time_since_failure > self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                self.failure_count = 0
                logger.info("Circuit breaker transitioned to half-open state")
                return True

        return False

    def timeout_remaining(self) -> float:
        if self.state != CircuitState.OPEN or self.last_failure_time is None:
            return 0.0
        elapsed = self.clock() - self.last_failure_time
        return max(0.0, self.recovery_timeout - elapsed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
        }
