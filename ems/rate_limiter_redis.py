"""Shared fixed-window counters in Redis (INCR, EXPIRE on first hit); retry_after via TTL."""
from __future__ import annotations

import redis

from .rate_limiter import current_window


class RedisRateLimiter:
    def __init__(self, url: str, prefix: str = "ems:rl:") -> None:
        self._client = redis.Redis.from_url(url, decode_responses=False)
        self._prefix = prefix

    def _key(self, logical_key: str, per_seconds: int) -> str:
        start, _ = current_window(per_seconds)
        return f"{self._prefix}{logical_key}:{start}"

    def allow(self, key: str, quota: int, per_seconds: int) -> bool:
        rk = self._key(key, per_seconds)
        pipe = self._client.pipeline(transaction=True)
        pipe.incr(rk, 1)
        pipe.ttl(rk)
        count, ttl = pipe.execute()
        if int(count) == 1 or int(ttl) < 0:
            self._client.expire(rk, per_seconds)
        return int(count) <= quota

    def retry_after(self, key: str, per_seconds: int) -> int:
        ttl = self._client.ttl(self._key(key, per_seconds))
        if ttl is None or ttl < 0:
            return current_window(per_seconds)[1]
        return int(ttl)


__all__ = ["RedisRateLimiter"]
