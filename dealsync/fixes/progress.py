"""
Progress reporting and cancellation for fix sessions.
"""

import logging
import queue
import threading
from typing import Iterator, Optional

from dealsync.fixes.models import FixStep

logger = logging.getLogger(__name__)

_CLOSED = object()


class ProgressStream:
    """
    Queue of FixStep snapshots published by the orchestrator.

    Iterating blocks until the stream is closed; a consumer on another
    thread sees every step transition in order.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._closed = False

    def publish(self, step: FixStep) -> None:
        if self._closed:
            return
        self._queue.put(step.snapshot())

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: Optional[float] = None) -> Optional[FixStep]:
        """
        Return the next snapshot, or None once the stream is closed.

        Raises:
            queue.Empty: If nothing arrives within timeout
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # Keep the sentinel for other readers
            self._queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[FixStep]:
        while True:
            step = self.get()
            if step is None:
                return
            yield step


class CancellationToken:
    """Thread-safe cancellation flag checked between batches and issues."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Session cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info(f"Cancellation requested: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
