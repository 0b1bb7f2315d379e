from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall and monotonic time. Swap for a fake in tests."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class RateLimiter:
    """Spaces upstream calls at least ``min_interval`` seconds apart.

    One budget is shared by every symbol. The wait happens while holding the
    lock, so concurrent callers queue behind each other instead of all
    observing the same last grant and proceeding together.
    """

    def __init__(self, min_interval: float, clock: SystemClock | None = None) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.min_interval = min_interval
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._last_grant: float | None = None

    @property
    def last_grant(self) -> float | None:
        return self._last_grant

    def acquire(self) -> float:
        """Block until the next call may go out; return the grant time."""
        with self._lock:
            now = self._clock.monotonic()
            if self._last_grant is not None:
                wait = self.min_interval - (now - self._last_grant)
                if wait > 0:
                    logger.debug("rate limiting: waiting %.3fs", wait)
                    self._clock.sleep(wait)
                    now = self._clock.monotonic()
            self._last_grant = now
            return now
