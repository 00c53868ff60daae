"""Caller identity for the current request.

The API is stateless: identity comes from the bearer access token on every
request and lives on ``flask.g`` for the duration of that request.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import g

from .roles import Role, to_role


@dataclass(frozen=True)
class Caller:
    id: int  # user_role_maps.id
    role: Role
    email: str | None = None
    employee_id: int | None = None  # employees.id
    ms_graph_user_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> Caller:
        employee = payload.get("employee")
        return cls(
            id=int(payload["id"]),
            role=to_role(payload.get("role")),
            email=payload.get("email"),
            employee_id=int(employee) if employee is not None else None,
            ms_graph_user_id=payload.get("msGraphUserId"),
        )


class SessionError(Exception):
    """Signals a 401 unauthorized due to missing/invalid credentials."""

    def __init__(self, message: str = "Access denied. No token provided."):
        super().__init__(message)


def get_caller() -> Caller | None:
    return getattr(g, "caller", None)


def require_caller() -> Caller:
    caller = get_caller()
    if caller is None:
        raise SessionError()
    return caller


__all__ = ["Caller", "SessionError", "get_caller", "require_caller"]
