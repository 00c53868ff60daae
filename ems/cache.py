"""Key-value cache client contract + backend factory.

The cache is a pure optimisation: every backend swallows its own failures,
logs them, and reports a miss (``None``/``False``/``0``) so request handlers
fall back to the database.

Backends are selected by ``CACHE_BACKEND`` (``redis`` | ``memory`` | ``noop``).
The app factory constructs one instance, attaches it as ``app.cache`` and owns
its ``connect``/``disconnect`` lifecycle.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from .config import Config

log = logging.getLogger("ems.cache")

DEFAULT_TTL = 3600
READ_TTL = 300  # list/detail responses


@runtime_checkable
class Cache(Protocol):
    def connect(self) -> bool: ...  # pragma: no cover
    def disconnect(self) -> None: ...  # pragma: no cover
    def is_connected(self) -> bool: ...  # pragma: no cover
    def get(self, key: str) -> Any | None: ...  # pragma: no cover
    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool: ...  # pragma: no cover
    def delete(self, *keys: str) -> bool: ...  # pragma: no cover
    def exists(self, key: str) -> bool: ...  # pragma: no cover
    def delete_pattern(self, pattern: str) -> int: ...  # pragma: no cover


def generate_key(prefix: str, *parts: object) -> str:
    """Colon-delimited cache key: ``generate_key("license", "detail", 7) -> "license:detail:7"``."""
    segments = ["" if p is None else str(p) for p in parts]
    return ":".join([prefix, *segments])


class NoopCache:
    """Never stores anything; every read is a miss."""

    def connect(self) -> bool:
        return True

    def disconnect(self) -> None:
        return None

    def is_connected(self) -> bool:
        return False

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        return False

    def delete(self, *keys: str) -> bool:
        return False

    def exists(self, key: str) -> bool:
        return False

    def delete_pattern(self, pattern: str) -> int:
        return 0


def build_cache(cfg: Config) -> Cache:
    backend = (cfg.cache_backend or "redis").lower()
    if backend == "memory":
        from .cache_memory import MemoryCache

        return MemoryCache(prefix=cfg.cache_prefix)
    if backend == "redis":
        try:
            from .cache_redis import RedisCache  # local import to keep optional dependency boundary

            return RedisCache(cfg.redis_url, prefix=cfg.cache_prefix)
        except Exception:
            log.warning("Redis cache unavailable; falling back to noop cache", exc_info=True)
            return NoopCache()
    return NoopCache()


__all__ = ["Cache", "NoopCache", "generate_key", "build_cache", "DEFAULT_TTL", "READ_TTL"]
