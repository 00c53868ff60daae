"""In-process memory cache with TTL for tests and single-process dev.
Not for production (single-process only)."""
from __future__ import annotations

import fnmatch
import json
import threading
import time
from typing import Any

from .cache import DEFAULT_TTL


class MemoryCache:
    def __init__(self, prefix: str = "") -> None:
        # key -> (expires_at, json)
        self._data: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._prefix = prefix
        self._connected = False

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def connect(self) -> bool:
        self._connected = True
        return True

    def disconnect(self) -> None:
        with self._lock:
            self._data.clear()
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if time.time() >= expires_at:
            del self._data[key]
            return None
        return raw

    def get(self, key: str) -> Any | None:
        if not self._connected:
            return None
        with self._lock:
            raw = self._live(self._k(key))
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        if not self._connected:
            return False
        try:
            raw = json.dumps(value, default=str)
        except (TypeError, ValueError):
            return False
        with self._lock:
            self._data[self._k(key)] = (time.time() + int(ttl), raw)
        return True

    def delete(self, *keys: str) -> bool:
        if not self._connected or not keys:
            return False
        with self._lock:
            for k in keys:
                self._data.pop(self._k(k), None)
        return True

    def exists(self, key: str) -> bool:
        if not self._connected:
            return False
        with self._lock:
            return self._live(self._k(key)) is not None

    def delete_pattern(self, pattern: str) -> int:
        if not self._connected:
            return 0
        full = self._k(pattern)
        with self._lock:
            doomed = [k for k in self._data if fnmatch.fnmatchcase(k, full)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def keys(self) -> list[str]:
        with self._lock:
            return [k for k in list(self._data) if self._live(k) is not None]


__all__ = ["MemoryCache"]
