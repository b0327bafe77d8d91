"""In-memory rate limiting for API clients."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by client (IP address or user id).

    Each key may make `max_requests` calls within any `window_seconds`
    span. State is per process; several workers each keep their own.
    Keys with no hit inside the window are dropped once per window.
    """

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @staticmethod
    def _prune(hits: deque, cutoff: float) -> None:
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._hits):
            hits = self._hits[key]
            self._prune(hits, cutoff)
            if not hits:
                del self._hits[key]

    def allow(self, key: str) -> tuple[bool, int]:
        """Record a hit for `key`.

        Returns `(allowed, retry_after_seconds)`; a rejected hit is not
        recorded.
        """
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            self._prune(hits, cutoff)
            if len(hits) >= self.max_requests:
                return False, max(1, int(self.window_seconds - (now - hits[0])))
            hits.append(now)
        return True, 0

    def tracked_keys(self) -> int:
        """Number of keys currently holding state."""
        with self._lock:
            return len(self._hits)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
