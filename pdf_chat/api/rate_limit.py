# pdf_chat/api/rate_limit.py

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pdf_chat.config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> Dict[str, str]:

        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(math.ceil(self.reset_after)),
        }

        if not self.allowed:
            headers["Retry-After"] = str(math.ceil(self.reset_after))

        return headers


class RateLimiter:
    """
    Fixed-window request counter keyed by client address.

    A client's window opens on its first request and lasts
    `window_seconds`; the counter resets when it closes. Expired windows
    are evicted at most once per window, so memory stays proportional
    to the clients active in the last window.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):

        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("Rate limit and window must be positive")

        self._max = max_requests
        self._window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> [window_start, count]
        self._counters: Dict[str, list] = {}
        self._last_sweep = clock()

    def hit(self, key: str) -> RateLimitDecision:

        with self._lock:

            now = self._clock()

            self._sweep(now)

            entry = self._counters.get(key)

            if entry is None or now - entry[0] >= self._window:
                entry = [now, 0]
                self._counters[key] = entry

            entry[1] += 1

            return RateLimitDecision(
                allowed=entry[1] <= self._max,
                limit=self._max,
                remaining=max(self._max - entry[1], 0),
                reset_after=max(entry[0] + self._window - now, 0.0),
            )

    def reset(self, key: Optional[str] = None):

        with self._lock:
            if key is None:
                self._counters.clear()
            else:
                self._counters.pop(key, None)

    def __len__(self) -> int:
        return len(self._counters)

    def _sweep(self, now: float):

        if now - self._last_sweep < self._window:
            return

        expired = [
            key for key, (start, _) in self._counters.items()
            if now - start >= self._window
        ]

        for key in expired:
            del self._counters[key]

        self._last_sweep = now
