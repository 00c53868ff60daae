"""Generic cache-aware CRUD service used by the resource blueprints.

Reads are role scoped and cache-first; writes go to the database and then
invalidate the entity's list keys and the affected detail key.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from .app_sessions import Caller
from .crud_cache import cached, detail_key, invalidate, list_key, serialize_rows
from .errors import NotFoundError, ValidationError
from .models import Base, Employee
from .pagination import PageRequest, make_page_response, offset_of
from .scoping import OwnershipScope


class ResourceService:
    def __init__(
        self,
        model: type[Base],
        entity: str,
        *,
        scope: OwnershipScope | None = None,
        label: str | None = None,
    ) -> None:
        self.model = model
        self.entity = entity
        self.scope = scope
        self.label = label or model.__name__

    # --- reads ---
    def _query(self, caller: Caller, where: Sequence[ColumnElement[bool]]):
        stmt = select(self.model)
        if self.scope is not None:
            stmt = self.scope.apply(stmt, caller)
        for clause in where:
            stmt = stmt.where(clause)
        return stmt

    def list_page(
        self,
        db: Session,
        caller: Caller,
        page_req: PageRequest,
        *,
        where: Sequence[ColumnElement[bool]] = (),
        key_filters: Sequence[object] = (),
    ) -> dict[str, Any]:
        key = list_key(self.entity, self.scope, caller, page_req, *key_filters)

        def load() -> dict[str, Any]:
            stmt = self._query(caller, where)
            total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            rows = db.scalars(
                stmt.order_by(self.model.id.desc()).offset(offset_of(page_req)).limit(page_req["limit"])  # type: ignore[attr-defined]
            ).all()
            return make_page_response(serialize_rows(rows), page_req, int(total))

        return cached(key, load)

    def list_all(self, db: Session, key: str, where: Sequence[ColumnElement[bool]]) -> list[dict[str, Any]]:
        """Unpaginated cached list for secondary lookups (by type, by employee...)."""

        def load() -> list[dict[str, Any]]:
            stmt = select(self.model)
            for clause in where:
                stmt = stmt.where(clause)
            return serialize_rows(db.scalars(stmt.order_by(self.model.id.desc())).all())  # type: ignore[attr-defined]

        return cached(key, load)

    def get_row(self, db: Session, row_id: int) -> Any:
        row = db.get(self.model, row_id)
        if row is None:
            raise NotFoundError(f"{self.label} not found")
        return row

    def get_dict(self, db: Session, caller: Caller, row_id: int) -> dict[str, Any]:
        def load() -> dict[str, Any] | None:
            row = db.get(self.model, row_id)
            return row.to_dict() if row is not None else None

        data = cached(detail_key(self.entity, row_id), load)
        if data is None:
            raise NotFoundError(f"{self.label} not found")
        if self.scope is not None and not self.scope.allows(caller, data):
            raise NotFoundError(f"{self.label} not found")
        return data

    def column_defaults(self) -> dict[str, Any]:
        return {
            c.key: c.default.arg
            for c in self.model.__table__.columns  # type: ignore[attr-defined]
            if c.default is not None and c.default.is_scalar
        }

    def merged(self, values: dict[str, Any], row: Any = None) -> dict[str, Any]:
        """Column values the row holds once ``values`` is written.

        Stored columns (or the column defaults for a new row) overlaid with the
        payload. Cross-field rules run against this on partial updates too.
        """
        out = self.column_defaults()
        if row is not None:
            out.update({c.key: getattr(row, c.key) for c in self.model.__table__.columns})  # type: ignore[attr-defined]
        out.update(values)
        return out

    # --- writes ---
    def create(self, db: Session, values: dict[str, Any]) -> Any:
        row = self.model(**values)
        db.add(row)
        db.commit()
        db.refresh(row)
        self.invalidate(row.id)
        return row

    def update(self, db: Session, row_id: int, values: dict[str, Any]) -> Any:
        row = self.get_row(db, row_id)
        for k, v in values.items():
            setattr(row, k, v)
        db.commit()
        db.refresh(row)
        self.invalidate(row_id)
        return row

    def delete(self, db: Session, row_id: int) -> None:
        row = self.get_row(db, row_id)
        db.delete(row)
        db.commit()
        self.invalidate(row_id)

    def invalidate(self, row_id: int | None = None, extra_keys: Iterable[str] = ()) -> None:
        invalidate(self.entity, row_id, extra_keys=extra_keys)


def ensure_employees_exist(db: Session, values: dict[str, Any], *fields: str) -> None:
    errors = []
    for name in fields:
        emp_id = values.get(name)
        if emp_id is not None and db.get(Employee, emp_id) is None:
            errors.append({"field": name, "message": f"{name} references an unknown employee"})
    if errors:
        raise ValidationError(errors)


def date_order_error(values: dict[str, Any], start: str, end: str, *, strict: bool = False) -> dict[str, str] | None:
    a, b = values.get(start), values.get(end)
    if a is None or b is None:
        return None
    if strict and b <= a:
        return {"field": end, "message": f"{end} must be after {start}"}
    if b < a:
        return {"field": end, "message": f"{end} must not be before {start}"}
    return None


def ensure_date_order(values: dict[str, Any], start: str, end: str, *, strict: bool = False) -> None:
    err = date_order_error(values, start, end, strict=strict)
    if err is not None:
        raise ValidationError([err])


__all__ = ["ResourceService", "date_order_error", "ensure_employees_exist", "ensure_date_order"]
