import logging
import threading
import time
from typing import Callable, Optional

from carpool_router.errors import RateLimitTimeout

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Spaces outbound requests by a minimum interval.

    Callers reserve the next free slot under a lock, so admission is
    first-come first-served and every caller in the process shares the
    same spacing. The wait itself happens outside the lock.
    """

    def __init__(
        self,
        min_interval_s: float,
        max_wait_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self.min_interval_s = min_interval_s
        self.max_wait_s = max_wait_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: Optional[float] = None

    def acquire(self) -> float:
        """Block until this caller's slot; returns the slot time"""
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            wait = slot - now
            if self.max_wait_s is not None and wait > self.max_wait_s:
                raise RateLimitTimeout(wait, self.max_wait_s)
            self._next_slot = slot + self.min_interval_s

        if wait > 0:
            logger.debug(f"Rate limiter waiting {wait:.3f}s")
            self._sleep(wait)
        return slot

    def reset(self) -> None:
        with self._lock:
            self._next_slot = None
