"""In-memory rate limiter for quiz submissions."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class SubmissionRateLimiter:
    """Sliding-window limiter keyed by caller (user id or client host).

    Keys whose hits have all expired are dropped, at most once per window,
    so callers that stop submitting do not stay in memory.
    """

    def __init__(self, clock=time.monotonic):
        self._hits: defaultdict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()
        self._clock = clock
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def check(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for `key`; return `(allowed, retry_after_seconds)`."""
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= max_requests:
                if not hits:
                    del self._hits[key]
                    return False, max(1, int(window_seconds))
                return False, max(1, int(window_seconds - (now - hits[0])))
            hits.append(now)
        return True, 0

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def reset(self, key: str = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
