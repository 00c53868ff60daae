"""Noop backend: always allows."""

from __future__ import annotations


class NoopRateLimiter:
    def allow(self, key: str, quota: int, per_seconds: int) -> bool:
        return True

    def retry_after(self, key: str, per_seconds: int) -> int:
        return 0


__all__ = ["NoopRateLimiter"]
