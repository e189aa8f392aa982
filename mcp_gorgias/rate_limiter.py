"""Sliding-window rate limiter shared by every outbound request."""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Gorgias allows 40 requests per 20 second window per account
DEFAULT_REQUESTS_PER_WINDOW = 40
DEFAULT_WINDOW_SECONDS = 20.0


class RateLimiter:
    """Bound outbound requests to N per trailing time window.

    Issuance timestamps are kept in order and pruned as they age out of the
    window. The list never grows past ``requests_per_window`` entries.
    """

    def __init__(
        self,
        requests_per_window: int = DEFAULT_REQUESTS_PER_WINDOW,
        window: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            requests_per_window: Maximum issuances inside any window
            window: Window length in seconds
            clock: Monotonic time source (injectable for tests)
            sleep: Blocking sleep function (injectable for tests)
        """
        if requests_per_window < 1:
            raise ValueError("requests_per_window must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.requests_per_window = requests_per_window
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        window_start = now - self.window
        while self._timestamps and self._timestamps[0] <= window_start:
            self._timestamps.popleft()

    def acquire(self) -> None:
        """Block until a slot is free, then reserve it."""
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.requests_per_window:
                    self._timestamps.append(now)
                    logger.debug(
                        "Rate limiter: %d/%d requests in current window",
                        len(self._timestamps),
                        self.requests_per_window,
                    )
                    return
                wait = self._timestamps[0] + self.window - now

            # Sleep outside the lock so other callers can still read state
            logger.warning("Rate limit reached. Waiting %.3fs before next request.", wait)
            self._sleep(max(wait, 0.0))

    def remaining(self) -> int:
        """Return how many requests could be issued right now."""
        with self._lock:
            window_start = self._clock() - self.window
            current = sum(1 for ts in self._timestamps if ts > window_start)
        return max(0, self.requests_per_window - current)

    def reset_time(self) -> float:
        """Return the clock time at which the oldest reserved slot frees (0.0 if none)."""
        with self._lock:
            if not self._timestamps:
                return 0.0
            return self._timestamps[0] + self.window
