"""
Request pacing with a minimum interval between outbound requests.

Old CGI servers are often single-process and easy to knock over, so every
fetch (page or asset) waits until at least `wait_time` seconds have passed
since the previous one. Uses the monotonic clock, so wall-clock adjustments
do not shorten or stretch the gap.
"""

from __future__ import annotations

import threading
import time
import random
import logging
from typing import Callable, Optional


class RateLimiter:
    def __init__(self,
                 wait_time: float = 1.0,
                 enabled: bool = True,
                 jitter_ms: int = 0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            wait_time: minimum seconds between two requests
            enabled: pacing switch; also off when wait_time is 0
            jitter_ms: random extra delay added after each wait
            clock: monotonic time source
            sleep: sleep function
        """
        self.logger = logging.getLogger(__name__)
        self.wait_time = float(wait_time)
        self.enabled = enabled and self.wait_time > 0
        self.jitter_ms = jitter_ms
        self.last: Optional[float] = None
        self.lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep
        self.logger.info(f"RateLimiter ready: wait_time={self.wait_time}s, enabled={self.enabled}")

    def acquire(self) -> float:
        """
        Block until the next request may be sent.

        Returns:
            Seconds spent waiting
        """
        if not self.enabled:
            return 0.0

        with self.lock:
            waited = 0.0
            if self.last is not None:
                remaining = self.wait_time - (self._clock() - self.last)
                if remaining > 0:
                    self.logger.debug(f"Pacing: waiting {remaining:.2f}s")
                    self._sleep(remaining)
                    waited = remaining
            self.last = self._clock()

        # Apply small jitter outside lock
        if self.jitter_ms > 0:
            jitter = random.uniform(0, self.jitter_ms) / 1000.0
            self._sleep(jitter)
            waited += jitter
        return waited
