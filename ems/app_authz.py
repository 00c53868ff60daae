"""Authorization helpers.

``require_auth`` resolves the bearer access token into ``g.caller``;
``require_roles`` additionally checks the caller's role. Failures raise
SessionError (401) or AuthzError (403) for the centralized handlers.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import current_app, g, request

from .app_sessions import Caller, SessionError
from .jwt_utils import JWTError, TokenExpiredError
from .jwt_utils import decode as jwt_decode
from .roles import Role, to_role

P = ParamSpec("P")
R = TypeVar("R")


class AuthzError(Exception):
    """Signals an authorization (403) failure to be caught by centralized handlers."""

    required: tuple[Role, ...]

    def __init__(self, message: str = "Access denied. Insufficient privileges.", required: tuple[Role, ...] = ()):
        super().__init__(message)
        self.required = required


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(None, 1)[1].strip() if " " in auth_header else ""
    return token or None


def authenticate() -> Caller:
    cached = getattr(g, "caller", None)
    if cached is not None:
        return cached
    token = bearer_token()
    if not token:
        raise SessionError("Access denied. No token provided.")
    cfg = current_app.config
    try:
        payload = jwt_decode(
            token,
            secret=cfg.get("JWT_SECRET") or "",
            expected_type="access",
            issuer=cfg.get("JWT_ISSUER"),
            audience=cfg.get("JWT_AUDIENCE"),
            leeway=cfg.get("JWT_LEEWAY_SECONDS", 60),
        )
    except TokenExpiredError as e:
        raise SessionError("Token has expired. Please log in again.") from e
    except JWTError as e:
        raise SessionError("Invalid token.") from e
    caller = Caller.from_payload(payload)
    g.caller = caller
    return caller


def require_auth(fn: Callable[P, R]) -> Callable[P, R]:
    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        authenticate()
        return fn(*args, **kwargs)

    return wrapper


def require_roles(*roles: Role | str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    allowed = tuple(to_role(r) for r in roles)

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            caller = authenticate()
            if caller.role not in allowed:
                raise AuthzError(required=allowed)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def ensure_roles(caller: Caller, *roles: Role) -> None:
    if caller.role not in roles:
        raise AuthzError(required=tuple(roles))


__all__ = ["AuthzError", "authenticate", "bearer_token", "require_auth", "require_roles", "ensure_roles"]
