"""Request body validation.

Each resource declares its accepted fields once; ``parse_payload`` coerces the
JSON body, collects every problem as ``{"field", "message"}`` and raises a
single ValidationError (400). With ``partial=True`` (updates) required fields
may be omitted but supplied values are still checked.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from .errors import ValidationError

_MISSING = object()


@dataclass(frozen=True)
class Field:
    name: str
    kind: str = "str"  # str | int | float | bool | date | datetime | json | object
    required: bool = False
    choices: tuple[str, ...] | None = None
    min_len: int | None = None
    max_len: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    nullable: bool = True
    transform: Callable[[Any], Any] | None = None
    source: str | None = None  # alternate JSON key (camelCase clients)


def _coerce(f: Field, raw: Any) -> Any:
    if f.kind == "str":
        if not isinstance(raw, str | int | float):
            raise ValueError("must be a string")
        val = str(raw).strip()
        if f.min_len is not None and len(val) < f.min_len:
            raise ValueError(f"must be at least {f.min_len} characters")
        if f.max_len is not None and len(val) > f.max_len:
            raise ValueError(f"must be at most {f.max_len} characters")
        return val
    if f.kind == "int":
        if isinstance(raw, bool):
            raise ValueError("must be an integer")
        try:
            val = int(raw)
        except (TypeError, ValueError) as e:
            raise ValueError("must be an integer") from e
        if isinstance(raw, float) and raw != val:
            raise ValueError("must be an integer")
        return val
    if f.kind == "float":
        if isinstance(raw, bool):
            raise ValueError("must be a number")
        try:
            return float(raw)
        except (TypeError, ValueError) as e:
            raise ValueError("must be a number") from e
    if f.kind == "bool":
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.lower() in ("true", "false", "1", "0"):
            return raw.lower() in ("true", "1")
        raise ValueError("must be a boolean")
    if f.kind == "date":
        if isinstance(raw, date) and not isinstance(raw, datetime):
            return raw
        try:
            return date.fromisoformat(str(raw)[:10])
        except ValueError as e:
            raise ValueError("must be a valid ISO 8601 date") from e
    if f.kind == "datetime":
        try:
            val = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError("must be a valid ISO 8601 timestamp") from e
        return val if val.tzinfo is None else val.astimezone(UTC).replace(tzinfo=None)
    if f.kind == "object":
        if not isinstance(raw, dict):
            raise ValueError("must be an object")
        return raw
    return raw  # json: any JSON value


def _check_range(f: Field, val: Any) -> None:
    if f.min_value is not None and val < f.min_value:
        raise ValueError(f"must be >= {f.min_value:g}")
    if f.max_value is not None and val > f.max_value:
        raise ValueError(f"must be <= {f.max_value:g}")


def parse_payload(data: Mapping[str, Any] | None, fields: Iterable[Field], *, partial: bool = False) -> dict[str, Any]:
    if data is None or not isinstance(data, Mapping):
        raise ValidationError([{"field": "body", "message": "JSON object body required"}])
    out: dict[str, Any] = {}
    errors: list[dict[str, str]] = []
    for f in fields:
        raw = data.get(f.name, _MISSING)
        if raw is _MISSING and f.source:
            raw = data.get(f.source, _MISSING)
        if raw is _MISSING or (isinstance(raw, str) and not raw.strip() and f.kind != "str"):
            if f.required and not partial:
                errors.append({"field": f.name, "message": f"{f.name} is required"})
            continue
        if raw is None:
            if f.required or not f.nullable:
                errors.append({"field": f.name, "message": f"{f.name} cannot be null"})
            else:
                out[f.name] = None
            continue
        try:
            val = _coerce(f, raw)
            if f.kind in ("int", "float"):
                _check_range(f, val)
            if f.kind == "str" and f.required and not val:
                raise ValueError("is required")
            if f.choices is not None and val not in f.choices:
                raise ValueError("must be one of: " + ", ".join(f.choices))
            if f.transform is not None:
                val = f.transform(val)
        except ValueError as e:
            errors.append({"field": f.name, "message": f"{f.name} {e}"})
            continue
        out[f.name] = val
    if errors:
        raise ValidationError(errors)
    return out


__all__ = ["Field", "parse_payload"]
