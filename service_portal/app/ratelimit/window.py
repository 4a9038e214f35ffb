"""
Fixed-window rate limiter for public submissions.

Counters live in process memory; a restart resets every window. Expired
windows are swept at most once per window length, so the map only holds
clients seen in roughly the last two windows.
"""

import time
from typing import Any, Callable, Dict, Tuple

from shared.errors import RateLimitError
from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Allow ``limit`` requests per client and endpoint in each window."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[Tuple[str, str], Tuple[float, int]] = {}
        self._last_sweep = clock()
        self.logger = get_logger("portal.rate_limiter")

    def check_rate_limit(self, client_id: str, endpoint: str) -> Dict[str, Any]:
        """Count one request and report whether it is within the limit."""
        now = self._clock()
        self._sweep_expired(now)

        key = (client_id, endpoint)
        window_start, count = self._windows.get(key, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0

        reset_in = max(0, int(round(window_start + self.window_seconds - now)))

        if count >= self.limit:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                endpoint=endpoint,
                current_count=count,
                limit=self.limit
            )
            return {
                "allowed": False,
                "current_count": count,
                "limit": self.limit,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in
            }

        count += 1
        self._windows[key] = (window_start, count)
        return {
            "allowed": True,
            "current_count": count,
            "limit": self.limit,
            "remaining": max(0, self.limit - count),
            "reset_in_seconds": reset_in
        }

    def _sweep_expired(self, now: float):
        if now - self._last_sweep < self.window_seconds:
            return
        expired = [
            key for key, (window_start, _) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            self.logger.debug("Expired rate limit windows dropped", count=len(expired))

    def enforce(self, client_id: str, endpoint: str):
        """Raise RateLimitError when the client is over its budget."""
        status = self.check_rate_limit(client_id, endpoint)
        if not status["allowed"]:
            raise RateLimitError(
                "Too many submissions, please try again later",
                details={"retry_after": status["retry_after"], "limit": status["limit"]}
            )
        return status

    def reset(self, client_id: str, endpoint: str) -> bool:
        return self._windows.pop((client_id, endpoint), None) is not None

    @property
    def tracked_windows(self) -> int:
        return len(self._windows)
