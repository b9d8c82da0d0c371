"""
Fixed-window rate limiting.

One counter per ``<client>:<action>`` key. The limiter is owned by the app
instance; keys beyond ``max_keys`` evict the oldest window first.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: float


RATE_LIMITS = {
    "read": RateLimitRule(max_requests=100, window_seconds=60),
    "write": RateLimitRule(max_requests=20, window_seconds=60),
    "expensive": RateLimitRule(max_requests=5, window_seconds=60),
}


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(self, max_keys: int = 10_000, clock: Callable[[], float] = time.time):
        self.max_keys = max_keys
        self.clock = clock
        self._windows: "OrderedDict[str, _Window]" = OrderedDict()

    def check(self, key: str, rule: RateLimitRule) -> bool:
        """Counts one request against ``key``; False when the window is full."""
        now = self.clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._windows.pop(key, None)
            self._windows[key] = _Window(count=1, reset_at=now + rule.window_seconds)
            while len(self._windows) > self.max_keys:
                self._windows.popitem(last=False)
            return True

        if window.count >= rule.max_requests:
            return False

        window.count += 1
        return True

    def remaining(self, key: str, rule: RateLimitRule) -> int:
        window = self._windows.get(key)
        if window is None or self.clock() > window.reset_at:
            return rule.max_requests
        return max(0, rule.max_requests - window.count)

    def reset_at(self, key: str) -> float:
        window = self._windows.get(key)
        return window.reset_at if window else 0.0

    def cleanup(self):
        now = self.clock()
        for key in [key for key, window in self._windows.items() if now > window.reset_at]:
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)
