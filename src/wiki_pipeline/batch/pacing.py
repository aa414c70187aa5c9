from __future__ import annotations

import threading
import time
from typing import Callable


class DispatchPacer:
    """
    Minimum spacing between successive upstream dispatches, shared by all workers.

    Each `wait()` reserves the next free slot under the lock and sleeps
    outside it, so N workers still dispatch at most once per `interval_s`.
    """

    def __init__(
        self,
        interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        self.interval_s = interval_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    def wait(self) -> float:
        """Block until this caller's slot. Returns the time slept."""
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.interval_s
        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return max(delay, 0.0)

    def defer(self, seconds: float) -> None:
        """Push every later dispatch back by at least `seconds` (upstream asked us to slow down)."""
        with self._lock:
            until = self._clock() + max(seconds, 0.0)
            if self._next_slot is None or self._next_slot < until:
                self._next_slot = until
