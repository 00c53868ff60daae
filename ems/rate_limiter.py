"""Fixed-window request quotas for the write endpoints.

``build_rate_limiter`` picks the backend named by ``RATE_LIMIT_BACKEND``
(``memory`` | ``redis`` | ``noop``). The app factory attaches the instance as
``app.rate_limiter``; ``http_limits.limit`` consults it on every request.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from .config import Config

log = logging.getLogger("ems.rate_limit")


class RateLimitError(Exception):
    """Quota exhausted; rendered as 429 with ``Retry-After``."""

    def __init__(self, message: str, retry_after: int, limit: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


@runtime_checkable
class RateLimiter(Protocol):
    def allow(self, key: str, quota: int, per_seconds: int) -> bool: ...  # pragma: no cover
    def retry_after(self, key: str, per_seconds: int) -> int: ...  # pragma: no cover


def current_window(per_seconds: int, now: float | None = None) -> tuple[int, int]:
    """Return ``(start, remaining)`` for the epoch-aligned window containing ``now``."""
    t = int(time.time() if now is None else now)
    start = t - t % per_seconds
    return start, start + per_seconds - t


def build_rate_limiter(cfg: Config) -> RateLimiter:
    backend = (cfg.rate_limit_backend or "memory").lower()
    if backend == "noop":
        from .rate_limiter_noop import NoopRateLimiter

        return NoopRateLimiter()
    if backend == "redis":
        try:
            from .rate_limiter_redis import RedisRateLimiter

            return RedisRateLimiter(cfg.redis_url, prefix=cfg.rate_limit_prefix)
        except Exception:
            log.warning("Redis rate limiter unavailable; using per-process counters", exc_info=True)
    from .rate_limiter_memory import MemoryRateLimiter

    return MemoryRateLimiter()


__all__ = ["RateLimiter", "RateLimitError", "build_rate_limiter", "current_window"]
