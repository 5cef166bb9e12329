"""Countdown barrier used to wait for every dispatched task."""

import threading
from typing import Optional


class CompletionBarrier:
    """Blocks until a fixed number of completion signals have arrived.

    Each dispatched task signals exactly once, whether it succeeded or
    failed. No result values flow through the barrier.
    """

    def __init__(self, count: int):
        if count < 0:
            raise ValueError(f"Barrier count must be non-negative, got {count}")
        self._count = count
        self._condition = threading.Condition()

    @property
    def count(self) -> int:
        """Number of signals still outstanding."""
        with self._condition:
            return self._count

    def count_down(self) -> None:
        """Record one completion. Does nothing once the count is zero."""
        with self._condition:
            if self._count == 0:
                return
            self._count -= 1
            if self._count == 0:
                self._condition.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the count to reach zero.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely

        Returns:
            True if the barrier opened, False on timeout
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._count == 0, timeout=timeout)
