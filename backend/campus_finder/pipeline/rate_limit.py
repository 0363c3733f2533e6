"""Process-wide throttle and cooldown for the inference provider."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces outbound calls and holds a cooldown window after provider throttling.

    One instance is shared by every caller in a process. The clock and sleep
    functions are injectable so tests can drive time by hand.
    """

    def __init__(
        self,
        rate_per_minute: float = 30,
        cooldown_seconds: float = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        self.min_interval = 60.0 / float(rate_per_minute)
        self.cooldown_seconds = float(cooldown_seconds)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None
        self._cooldown_until: float | None = None

    def wait(self) -> float:
        """Block until this caller's slot comes up; return the seconds slept.

        The slot is reserved under the lock and the sleep happens outside it, so
        concurrent callers queue up one interval apart.
        """
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return max(0.0, delay)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)

    def trip(self) -> None:
        """Open the cooldown window (called on HTTP 429)."""
        with self._lock:
            self._cooldown_until = self._clock() + self.cooldown_seconds
        logger.warning("Inference provider throttled; pausing calls for %.0fs", self.cooldown_seconds)

    def cooldown_remaining(self) -> float:
        with self._lock:
            if self._cooldown_until is None:
                return 0.0
            remaining = self._cooldown_until - self._clock()
            if remaining <= 0:
                self._cooldown_until = None
                return 0.0
            return remaining

    def in_cooldown(self) -> bool:
        return self.cooldown_remaining() > 0

    def reset(self) -> None:
        with self._lock:
            self._next_slot = None
            self._cooldown_until = None
