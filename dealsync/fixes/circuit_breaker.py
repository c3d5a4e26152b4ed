"""
Circuit breaker for fix execution.

Counts consecutive failed fixes. Once the threshold is reached the breaker
stays open for ``reset_ms`` and then closes again with its counter cleared.
There is no half-open probing state.
"""

import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class CircuitBreaker:

    def __init__(self, threshold: int = 5, reset_ms: int = 60000, on_trip=None):
        """
        Args:
            threshold: Consecutive failures that open the breaker
            reset_ms: How long the breaker stays open
            on_trip: Optional callable invoked each time the breaker opens
        """
        self.threshold = threshold
        self.reset_ms = reset_ms
        self.on_trip = on_trip

        self.failures = 0
        self.open_until: Optional[float] = None
        self.trip_count = 0

    def is_open(self) -> bool:
        """Return True while the breaker blocks new fixes."""
        if self.open_until is None:
            return False

        if time.monotonic() < self.open_until:
            return True

        logger.info("Circuit breaker reset after cool-down")
        self.failures = 0
        self.open_until = None
        return False

    def record_success(self) -> None:
        self.failures = 0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold and self.open_until is None:
            self.open_until = time.monotonic() + self.reset_ms / 1000
            self.trip_count += 1
            logger.warning(
                f"Circuit breaker opened after {self.failures} consecutive failures; "
                f"blocking fixes for {self.reset_ms}ms"
            )
            if self.on_trip is not None:
                self.on_trip()

    @property
    def tripped(self) -> bool:
        return self.trip_count > 0

    def reset(self) -> None:
        self.failures = 0
        self.open_until = None
        self.trip_count = 0
