"""
Rate limiting for the PhaseGate service.

Reviews replay the whole gate over a corpus, so the review and verify
endpoints are limited per client with a sliding window.
"""

import time
import threading
from collections import defaultdict, deque
from typing import Dict, Optional
from dataclasses import dataclass


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window rate limiter, one window per client key.

    Thread-safe; hits older than the window are dropped on each check.
    """

    def __init__(self, rpm: int, window_seconds: int = 60):
        """
        Args:
            rpm: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._limit = max(1, rpm)
        self._window = window_seconds
        self._hits: Dict[str, deque] = defaultdict(deque)
        self._lock = threading.RLock()

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """Record a request for key unless the window is full."""
        now = time.time()

        with self._lock:
            q = self._expire(key, now)

            if len(q) >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    retry_after=max(0.0, q[0] + self._window - now)
                )

            q.append(now)
            return RateLimitResult(allowed=True, remaining=self._limit - len(q))

    def get_stats(self, key: str) -> Dict[str, int]:
        """Current window usage for a key."""
        with self._lock:
            count = len(self._expire(key, time.time()))
            return {
                "current": count,
                "limit": self._limit,
                "remaining": max(0, self._limit - count),
                "window_seconds": self._window
            }

    def reset(self, key: Optional[str] = None) -> None:
        """Reset counters for one key, or all keys."""
        with self._lock:
            if key:
                self._hits.pop(key, None)
            else:
                self._hits.clear()

    def _expire(self, key: str, now: float) -> deque:
        q = self._hits[key]
        window_start = now - self._window
        while q and q[0] < window_start:
            q.popleft()
        return q
