"""Per-client sliding window rate limiter for the mutating routes."""

import logging
import threading
import time
from collections import deque
from typing import Callable

from fastapi import HTTPException, Request, status

logger = logging.getLogger("urlshort.ratelimit")


class SlidingWindowRateLimiter:
    """
    Allows at most `max_requests` per client in any `window_seconds` span.
    When either bound is 0, rate limiting is disabled.
    """

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self._enabled = max_requests > 0 and window_seconds > 0

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def _cleanup_old(self, hits: deque, now: float) -> None:
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Forget clients whose every hit has left the window."""
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> bool:
        """Record a request for `key`. Returns False if it falls over the limit."""
        if not self._enabled:
            return True

        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._cleanup_old(hits, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limited(request: Request) -> None:
    """FastAPI dependency: 429 once the caller has used up its window."""
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter
    client = client_address(request)
    if not limiter.hit(client):
        logger.warning("Rate limit exceeded for %s on %s %s", client, request.method, request.url.path)
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests, Try again")
