from collections import deque
from time import monotonic

from fastapi import HTTPException, status


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: float = 60) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._buckets: dict[str, deque[float]] = {}
        self._last_sweep = monotonic()

    def _sweep(self, now: float) -> None:
        # keys whose newest hit has left the window hold no state worth keeping
        stale = [key for key, bucket in self._buckets.items() if now - bucket[-1] > self.window_seconds]
        for key in stale:
            del self._buckets[key]
        self._last_sweep = now

    def hit(self, key: str) -> None:
        if self.limit <= 0:
            return
        now = monotonic()
        if now - self._last_sweep > self.window_seconds:
            self._sweep(now)
        bucket = self._buckets.setdefault(key, deque())
        while bucket and (now - bucket[0]) > self.window_seconds:
            bucket.popleft()
        if len(bucket) >= self.limit:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
            )
        bucket.append(now)
