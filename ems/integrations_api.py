from __future__ import annotations

from flask import Blueprint, request

from .app_authz import require_auth, require_roles
from .app_sessions import require_caller
from .cache import generate_key
from .db import get_session
from .errors import ValidationError
from .http_limits import limit
from .models import INTEGRATION_STATUSES, INTEGRATION_TYPES, Integration
from .pagination import parse_page_params
from .resource_service import ResourceService, ensure_employees_exist
from .roles import ADMIN_ROLES
from .validation import Field, parse_payload

bp = Blueprint("integrations_api", __name__, url_prefix="/api/v1/integrations")

service = ResourceService(Integration, "integration", label="Integration")

FIELDS = (
    Field("name", required=True, min_len=2, max_len=100),
    Field("type", required=True, choices=INTEGRATION_TYPES),
    Field("description", max_len=5000),
    Field("endpoint_url", max_len=500, source="endpointUrl"),
    Field("authentication_type", max_len=50, source="authenticationType"),
    Field("credentials", max_len=5000),
    Field("configuration", kind="object"),
    Field("status", choices=INTEGRATION_STATUSES),
    Field("last_sync", kind="datetime", source="lastSync"),
    Field("sync_frequency", max_len=50, source="syncFrequency"),
    Field("managed_by", kind="int", min_value=1, source="managedBy"),
    Field("notes", max_len=5000),
)


def _public(data: dict) -> dict:
    # never echo stored credentials
    return {k: v for k, v in data.items() if k != "credentials"}


def _validate(values: dict, row: Integration | None = None) -> None:
    it = service.merged(values, row)
    errors = []
    if it.get("type") == "API":
        if not it.get("endpoint_url"):
            errors.append({"field": "endpoint_url", "message": "API integrations must have an endpoint_url"})
        if not it.get("authentication_type"):
            errors.append({"field": "authentication_type", "message": "API integrations must have an authentication_type"})
    auth_type = it.get("authentication_type")
    if auth_type and auth_type != "None" and not it.get("credentials"):
        errors.append({"field": "credentials", "message": "credentials are required when authentication_type is set"})
    if it.get("status") == "Active" and it.get("type") != "Webhook" and not it.get("sync_frequency"):
        errors.append({"field": "sync_frequency", "message": "Active integrations must have a sync_frequency"})
    if errors:
        raise ValidationError(errors)


def _invalidate(row_id: int, *rows: dict) -> None:
    keys = []
    for r in rows:
        if r.get("type"):
            keys.append(generate_key("integration", "type", r["type"]))
        if r.get("status"):
            keys.append(generate_key("integration", "status", r["status"]))
    service.invalidate(row_id, extra_keys=keys)


def _by(column: str, value: str, allowed: tuple[str, ...]):
    if value not in allowed:
        raise ValidationError([{"field": column, "message": f"{column} must be one of: " + ", ".join(allowed)}])
    db = get_session()
    try:
        col = getattr(Integration, column)
        data = service.list_all(db, generate_key("integration", column, value), [col == value])
        return {"success": True, "data": [_public(d) for d in data], "count": len(data)}
    finally:
        db.close()


@bp.get("")
@require_auth
def list_integrations():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    db = get_session()
    try:
        page = service.list_page(db, caller, page_req)
        return {**page, "data": [_public(d) for d in page["data"]]}
    finally:
        db.close()


@bp.get("/type/<string:integration_type>")
@require_auth
def integrations_by_type(integration_type: str):
    return _by("type", integration_type, INTEGRATION_TYPES)


@bp.get("/status/<string:status>")
@require_auth
def integrations_by_status(status: str):
    return _by("status", status, INTEGRATION_STATUSES)


@bp.get("/<int:integration_id>")
@require_auth
def get_integration(integration_id: int):
    caller = require_caller()
    db = get_session()
    try:
        return {"success": True, "data": _public(service.get_dict(db, caller, integration_id))}
    finally:
        db.close()


@bp.post("")
@require_roles(*ADMIN_ROLES)
@limit("integration_create", quota=10, per_seconds=900, message="Too many integration creation attempts")
def create_integration():
    caller = require_caller()
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS)
        ensure_employees_exist(db, values, "managed_by")
        _validate(values)
        values["created_by"] = caller.id
        values["updated_by"] = caller.id
        row = service.create(db, values)
        data = row.to_dict()
        _invalidate(row.id, data)
        return {"success": True, "message": "Integration created successfully", "data": _public(data)}, 201
    finally:
        db.close()


@bp.put("/<int:integration_id>")
@require_roles(*ADMIN_ROLES)
def update_integration(integration_id: int):
    caller = require_caller()
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS, partial=True)
        ensure_employees_exist(db, values, "managed_by")
        row = service.get_row(db, integration_id)
        _validate(values, row)
        before = row.to_dict()
        values["updated_by"] = caller.id
        row = service.update(db, integration_id, values)
        data = row.to_dict()
        _invalidate(integration_id, before, data)
        return {"success": True, "message": "Integration updated successfully", "data": _public(data)}
    finally:
        db.close()


@bp.delete("/<int:integration_id>")
@require_roles(*ADMIN_ROLES)
def delete_integration(integration_id: int):
    db = get_session()
    try:
        before = service.get_row(db, integration_id).to_dict()
        service.delete(db, integration_id)
        _invalidate(integration_id, before)
        return {"success": True, "message": "Integration deleted successfully"}
    finally:
        db.close()
