from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Spaces provider lookups so they never exceed ``qps`` per second.

    Shared by every lookup thread; acquire() blocks the caller until its
    slot comes up and returns how long it waited. A qps of 0 disables
    throttling."""

    def __init__(
        self,
        qps: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = 1.0 / qps if qps > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    def acquire(self) -> float:
        if not self.enabled:
            return 0.0
        with self._lock:
            now = self._clock()
            wait = max(0.0, self._next_slot - now)
            if wait:
                self._sleep(wait)
            self._next_slot = max(self._next_slot, now) + self._interval
        return wait
