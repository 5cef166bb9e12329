"""Periodic helpers that run alongside a bulk phase.

Both helpers run on their own daemon thread so a slow re-login never delays a
progress line and vice versa. Failures inside a tick are non-fatal: they are
logged and the schedule continues until the phase stops the helper.
"""

import logging
import threading
import time
from typing import Any, Optional

from .exceptions import AuthRefreshFailure
from .registry import ProgressCounter

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs tick() at a fixed rate on a background thread until stopped."""

    def __init__(self, interval: float, initial_delay: float = 0.0, name: Optional[str] = None):
        """Initialize the periodic task.

        Args:
            interval: Seconds between the starts of consecutive ticks
            initial_delay: Seconds to wait before the first tick
            name: Thread name
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        self.interval = interval
        self.initial_delay = initial_delay
        self.name = name or self.__class__.__name__
        self.ticks = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> None:
        """Perform one unit of periodic work."""
        raise NotImplementedError

    def start(self) -> None:
        """Start the background thread. Does nothing if already running."""
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self.name)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop the background thread.

        A tick already in progress is allowed to finish; the thread exits at
        its next wait. This never raises.

        Args:
            timeout: Maximum time to wait for the thread to exit

        Returns:
            True if stopped, False if the thread was still busy after timeout
        """
        self._stop_event.set()
        if not self._thread or not self._thread.is_alive():
            return True
        if self._thread is threading.current_thread():
            return False

        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def is_running(self) -> bool:
        """Check if the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        if self._stop_event.wait(timeout=self.initial_delay):
            return

        next_run = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.debug(f"{self.name} tick failed: {e}")
            self.ticks += 1

            # Fixed rate: schedule from the previous start, not the previous end
            next_run += self.interval
            delay = max(0.0, next_run - time.monotonic())
            if self._stop_event.wait(timeout=delay):
                return


class ProgressReporter(PeriodicTask):
    """Logs the phase counter on a fixed cadence, starting immediately."""

    def __init__(
        self,
        counter: ProgressCounter,
        verb: str,
        interval: float = 1.0,
        subject: str = "devices",
    ):
        """Initialize the progress reporter.

        Args:
            counter: Counter to sample on each tick
            verb: Past participle describing the phase ('created', 'removed')
            interval: Seconds between status lines
            subject: Plural noun for the processed items
        """
        super().__init__(interval=interval, initial_delay=0.0, name=f"progress-{verb}")
        self.counter = counter
        self.verb = verb
        self.subject = subject

    def tick(self) -> None:
        logger.info(f"{self.counter.value} {self.subject} have been {self.verb} so far...")


class SessionRefresher(PeriodicTask):
    """Re-authenticates the session on a long cadence.

    The first refresh happens one interval after start, since the phase has
    just logged in. A failed refresh is logged and the next one is attempted
    on schedule; requests in flight keep the token they already read.
    """

    def __init__(self, session: Any, interval: float = 600.0):
        """Initialize the session refresher.

        Args:
            session: Object exposing login(), normally a DeviceRestClient
            interval: Seconds between re-logins
        """
        super().__init__(interval=interval, initial_delay=interval, name="session-refresh")
        self.session = session
        self.refresh_count = 0
        self.last_error: Optional[AuthRefreshFailure] = None

    def tick(self) -> None:
        try:
            self.session.login()
        except Exception as e:
            self.last_error = AuthRefreshFailure(e).release_traceback()
            logger.warning(str(self.last_error))
            return

        self.refresh_count += 1
        logger.debug(f"Session refreshed ({self.refresh_count} so far)")
