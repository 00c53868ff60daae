"""Redis cache backend: JSON values with SETEX TTL. Errors are logged and reported as misses."""
from __future__ import annotations

import json
import logging
from typing import Any

import redis

from .cache import DEFAULT_TTL

log = logging.getLogger("ems.cache")


class RedisCache:
    _client: redis.Redis

    def __init__(self, url: str, prefix: str = "", client: redis.Redis | None = None) -> None:
        self._url = url
        self._prefix = prefix
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self._connected = False

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def connect(self) -> bool:
        try:
            self._client.ping()
            self._connected = True
            log.info("Redis cache connected url=%s", self._url.split("@")[-1])
        except redis.RedisError as e:
            self._connected = False
            log.warning("Redis cache connection failed: %s", e)
        return self._connected

    def disconnect(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:  # pragma: no cover
            log.warning("Redis cache disconnect failed: %s", e)
        finally:
            self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def get(self, key: str) -> Any | None:
        if not self._connected:
            return None
        try:
            raw = self._client.get(self._k(key))
            return json.loads(raw) if raw is not None else None
        except (redis.RedisError, ValueError) as e:
            log.warning("Redis GET failed key=%s: %s", key, e)
            return None

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        if not self._connected:
            return False
        try:
            self._client.setex(self._k(key), int(ttl), json.dumps(value, default=str))
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            log.warning("Redis SET failed key=%s: %s", key, e)
            return False

    def delete(self, *keys: str) -> bool:
        if not self._connected or not keys:
            return False
        try:
            self._client.delete(*[self._k(k) for k in keys])
            return True
        except redis.RedisError as e:
            log.warning("Redis DEL failed keys=%s: %s", keys, e)
            return False

    def exists(self, key: str) -> bool:
        if not self._connected:
            return False
        try:
            return bool(self._client.exists(self._k(key)))
        except redis.RedisError as e:
            log.warning("Redis EXISTS failed key=%s: %s", key, e)
            return False

    def delete_pattern(self, pattern: str) -> int:
        if not self._connected:
            return 0
        try:
            keys = list(self._client.scan_iter(match=self._k(pattern), count=500))
            if not keys:
                return 0
            return int(self._client.delete(*keys))
        except redis.RedisError as e:
            log.warning("Redis pattern delete failed pattern=%s: %s", pattern, e)
            return 0


__all__ = ["RedisCache"]
