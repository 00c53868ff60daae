"""Per-process fixed-window counters. Each worker keeps its own quota."""
from __future__ import annotations

import threading

from .rate_limiter import current_window


class MemoryRateLimiter:
    def __init__(self) -> None:
        # key -> (window start, count)
        self._buckets: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str, quota: int, per_seconds: int) -> bool:
        start, _ = current_window(per_seconds)
        with self._lock:
            cur = self._buckets.get(key)
            count = 1 if cur is None or cur[0] != start else cur[1] + 1
            self._buckets[key] = (start, count)
        return count <= quota

    def retry_after(self, key: str, per_seconds: int) -> int:
        start, remaining = current_window(per_seconds)
        cur = self._buckets.get(key)
        if cur is None or cur[0] != start:
            return 0
        return remaining

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


__all__ = ["MemoryRateLimiter"]
