"""HTTP rate limiting decorator.

Add ``@limit("ticket_create", quota=10, per_seconds=900)`` to a view to enforce
a fixed-window quota keyed by caller (or client address when anonymous).
"""
from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from functools import wraps
from typing import Any

from flask import current_app, g, request

from .metrics import increment as metrics_increment
from .rate_limiter import RateLimiter, RateLimitError

LimiterKeyFunc = Callable[[], str]


def _default_key() -> str:
    caller = getattr(g, "caller", None)
    if caller is not None:
        return f"user:{caller.id}"
    return f"ip:{request.remote_addr or 'unknown'}"


def limit(
    name: str,
    *,
    quota: int,
    per_seconds: int,
    message: str | None = None,
    key_func: LimiterKeyFunc = _default_key,
):
    def decorator(fn: Callable[..., Any]):
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any):
            logical_key = f"{name}:{key_func()}"
            rl: RateLimiter = current_app.rate_limiter  # type: ignore[attr-defined]
            allowed = rl.allow(logical_key, quota=quota, per_seconds=per_seconds)
            with suppress(Exception):  # pragma: no cover - metrics must not break request
                metrics_increment(
                    "rate_limit.hit",
                    {"name": name, "outcome": "allow" if allowed else "block", "window": str(per_seconds)},
                )
            if not allowed:
                raise RateLimitError(
                    message or "Too many requests, please try again later.",
                    retry_after=rl.retry_after(logical_key, per_seconds=per_seconds),
                    limit=name,
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator


__all__ = ["limit"]
