"""Simple in-memory sliding-window rate limiter."""

import time
from collections import defaultdict
from threading import Lock


class RateLimiter:
    """In-memory sliding-window rate limiter keyed by an arbitrary string.

    Tracks request timestamps in a rolling window and rejects calls that
    exceed the configured limit. State is per process.
    """

    def __init__(self, max_requests: int, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def is_allowed(self, key: str) -> bool:
        """Return True if the request is within the rate limit, False otherwise."""
        now = time.monotonic()
        cutoff = now - self.window_seconds

        with self._lock:
            timestamps = [t for t in self._requests[key] if t > cutoff]
            if len(timestamps) >= self.max_requests:
                self._requests[key] = timestamps
                return False

            timestamps.append(now)
            self._requests[key] = timestamps
            return True

    def reset(self) -> None:
        """Clear all tracked state (useful for testing)."""
        with self._lock:
            self._requests.clear()
