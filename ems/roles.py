"""Role vocabulary.

Role values are the strings stored in ``user_role_maps.role`` and carried in the
access token. ``to_role`` maps arbitrary input onto the enum (unknown -> EMPLOYEE,
the least privileged role).
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    HR = "hr"
    IT_ADMIN = "it_admin"
    SUPERVISOR = "supervisor"


# Roles that bypass row ownership filters
ADMIN_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.IT_ADMIN})

# Roles allowed to read other people's employee records / team attendance
PEOPLE_MANAGER_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.HR, Role.MANAGER})


def to_role(value: str | Role | None) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role((value or "").strip().lower())
    except ValueError:
        return Role.EMPLOYEE


def is_admin(role: str | Role | None) -> bool:
    return to_role(role) in ADMIN_ROLES


__all__ = ["Role", "ADMIN_ROLES", "PEOPLE_MANAGER_ROLES", "to_role", "is_admin"]
