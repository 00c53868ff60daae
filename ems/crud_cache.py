"""Cache-first reads and write-side invalidation shared by the resource blueprints.

Key layout (colon delimited):

    <entity>:list:<role>:<userId>:<page>:<limit>[:<filter>...]
    <entity>:detail:<id>

Invalidation is best effort: failures are logged and the next read simply goes
to the database.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from flask import current_app

from .app_sessions import Caller
from .cache import READ_TTL, Cache, NoopCache, generate_key
from .metrics import increment as metrics_increment
from .pagination import PageRequest
from .scoping import OwnershipScope

log = logging.getLogger("ems.cache")

T = TypeVar("T")

# summary counts derive from every resource
DASHBOARD_PATTERN = "dashboard:stats:*"


def get_cache() -> Cache:
    return getattr(current_app, "cache", None) or NoopCache()


def list_key(entity: str, scope: OwnershipScope | None, caller: Caller, page_req: PageRequest, *filters: object) -> str:
    if scope is None:
        role, user = caller.role.value, "all"
    else:
        role, user = scope.cache_segment(caller)
    return generate_key(entity, "list", role, user, page_req["page"], page_req["limit"], *filters)


def detail_key(entity: str, row_id: object) -> str:
    return generate_key(entity, "detail", row_id)


def cached(key: str, loader: Callable[[], T], ttl: int = READ_TTL) -> T:
    """Return the cached value for ``key`` or compute, store and return it.

    ``None`` results are not cached so absent rows are re-checked next time.
    """
    cache = get_cache()
    entity = key.split(":", 1)[0]
    hit = cache.get(key)
    if hit is not None:
        metrics_increment("cache.hit", {"entity": entity})
        return hit
    metrics_increment("cache.miss", {"entity": entity})
    value = loader()
    if value is not None:
        cache.set(key, value, ttl)
    return value


def invalidate(entity: str, row_id: object | None = None, extra_keys: Iterable[str] = (), extra_patterns: Iterable[str] = ()) -> None:
    cache = get_cache()
    try:
        cache.delete_pattern(f"{entity}:list:*")
        cache.delete_pattern(DASHBOARD_PATTERN)
        for pattern in extra_patterns:
            cache.delete_pattern(pattern)
        keys = list(extra_keys)
        if row_id is not None:
            keys.append(detail_key(entity, row_id))
        if keys:
            cache.delete(*keys)
    except Exception:  # pragma: no cover - backends already swallow their errors
        log.warning("Cache invalidation failed entity=%s id=%s", entity, row_id, exc_info=True)


def serialize_rows(rows: Iterable[Any]) -> list[dict[str, Any]]:
    return [r.to_dict() for r in rows]


__all__ = ["get_cache", "list_key", "detail_key", "cached", "invalidate", "serialize_rows"]
