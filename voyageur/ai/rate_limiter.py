"""
Sliding-window rate limiter and token usage tracking for Gemini calls.
"""
import threading
import time
from typing import List, Optional

from ..utils.errors import RateLimitError

ONE_MINUTE = 60.0
ONE_DAY = 24 * 60 * 60.0


class RateLimiter:
    """Allows ``rpm`` calls per rolling minute and, optionally, ``daily_cap`` calls per day."""

    def __init__(self, rpm: int = 6, daily_cap: Optional[int] = None, clock=time.monotonic):
        self.rpm = rpm if rpm and rpm > 0 else 6
        self.daily_cap = daily_cap if daily_cap and daily_cap > 0 else None
        self._clock = clock
        self._timestamps: List[float] = []
        self._day_count = 0
        self._day_start = clock()
        self._lock = threading.Lock()

    def acquire(self):
        """Take a slot or raise ``RateLimitError``."""
        with self._lock:
            now = self._clock()
            if now - self._day_start >= ONE_DAY:
                self._day_start = now
                self._day_count = 0

            if self.daily_cap and self._day_count >= self.daily_cap:
                raise RateLimitError("rate_limited_daily_cap")

            cutoff = now - ONE_MINUTE
            self._timestamps = [t for t in self._timestamps if t >= cutoff]
            if len(self._timestamps) >= self.rpm:
                raise RateLimitError("rate_limited_rpm")

            self._timestamps.append(now)
            self._day_count += 1


class UsageTracker:
    def __init__(self):
        self.prompt_tokens = 0
        self.response_tokens = 0
        self.cost = 0.0

    def add(self, prompt_tokens: int, response_tokens: int, price_per_1k: float):
        self.prompt_tokens += prompt_tokens
        self.response_tokens += response_tokens
        total = max(0, prompt_tokens + response_tokens)
        self.cost += (total / 1000) * price_per_1k


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return -(-len(text or "") // 4)
