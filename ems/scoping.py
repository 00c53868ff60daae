"""Role-scoped query predicates.

Each resource declares which of its columns identify the owning employee. The
scope then turns a caller into either "no restriction" (admin roles) or a typed
SQLAlchemy predicate that is added to the ``WHERE`` clause:

    LICENSE_SCOPE = OwnershipScope(License.assigned_to)
    stmt = LICENSE_SCOPE.apply(select(License), caller)

Callers without an employee link never match any owned row.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Select, false, or_
from sqlalchemy.orm import InstrumentedAttribute

from .app_sessions import Caller
from .roles import ADMIN_ROLES, Role


def _value(row: Any, key: str) -> Any:
    # rows come either as ORM instances or as cached dicts
    if isinstance(row, Mapping):
        return row.get(key)
    return getattr(row, key, None)


@dataclass(frozen=True)
class OwnershipScope:
    column: InstrumentedAttribute
    extra_columns: tuple[InstrumentedAttribute, ...] = ()
    # roles that see every row; defaults to the admin roles
    unrestricted: frozenset[Role] = ADMIN_ROLES
    # per-role narrowing: only these columns are checked for that role
    narrowed: dict[Role, tuple[InstrumentedAttribute, ...]] = field(default_factory=dict)

    def columns_for(self, role: Role) -> tuple[InstrumentedAttribute, ...]:
        if role in self.narrowed:
            return self.narrowed[role]
        return (self.column, *self.extra_columns)

    def predicate(self, caller: Caller) -> ColumnElement[bool] | None:
        if caller.role in self.unrestricted:
            return None
        if caller.employee_id is None:
            return false()
        clauses = [col == caller.employee_id for col in self.columns_for(caller.role)]
        return clauses[0] if len(clauses) == 1 else or_(*clauses)

    def apply(self, stmt: Select, caller: Caller) -> Select:
        pred = self.predicate(caller)
        return stmt if pred is None else stmt.where(pred)

    def allows(self, caller: Caller, row: Any) -> bool:
        if caller.role in self.unrestricted:
            return True
        if caller.employee_id is None:
            return False
        return any(_value(row, col.key) == caller.employee_id for col in self.columns_for(caller.role))

    def cache_segment(self, caller: Caller) -> tuple[str, str]:
        """Role/user key segments; admin lists are shared across admin callers."""
        if caller.role in self.unrestricted:
            return caller.role.value, "all"
        return caller.role.value, str(caller.employee_id if caller.employee_id is not None else "none")


__all__ = ["OwnershipScope"]
