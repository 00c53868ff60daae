from __future__ import annotations

from flask import Blueprint, request

from .app_authz import require_auth, require_roles
from .app_sessions import require_caller
from .db import get_session
from .errors import ValidationError
from .http_limits import limit
from .models import HARDWARE_CATEGORIES, HARDWARE_STATUSES, Hardware
from .pagination import parse_page_params
from .resource_service import ResourceService, ensure_date_order, ensure_employees_exist
from .roles import ADMIN_ROLES
from .scoping import OwnershipScope
from .validation import Field, parse_payload

bp = Blueprint("hardware_api", __name__, url_prefix="/api/v1/hardware")

service = ResourceService(Hardware, "hardware", scope=OwnershipScope(Hardware.assigned_to), label="Hardware")

FIELDS = (
    Field("asset_tag", required=True, max_len=50, transform=str.upper, source="assetTag"),
    Field("name", required=True, max_len=200),
    Field("category", required=True, choices=HARDWARE_CATEGORIES),
    Field("brand", max_len=100),
    Field("model", max_len=100),
    Field("serial_number", max_len=100, source="serialNumber"),
    Field("purchase_date", kind="date", source="purchaseDate"),
    Field("purchase_price", kind="float", min_value=0, source="purchasePrice"),
    Field("warranty_expiry", kind="date", source="warrantyExpiry"),
    Field("status", choices=HARDWARE_STATUSES),
    Field("assigned_to", kind="int", min_value=1, source="assignedTo"),
    Field("location", max_len=200),
    Field("notes", max_len=5000),
    Field("specifications", kind="object"),
)


def _filters():
    status = request.args.get("status") or None
    category = request.args.get("category") or None
    errors = []
    if status and status not in HARDWARE_STATUSES:
        errors.append({"field": "status", "message": "status must be one of: " + ", ".join(HARDWARE_STATUSES)})
    if category and category not in HARDWARE_CATEGORIES:
        errors.append({"field": "category", "message": "category must be one of: " + ", ".join(HARDWARE_CATEGORIES)})
    if errors:
        raise ValidationError(errors)
    where = []
    if status:
        where.append(Hardware.status == status)
    if category:
        where.append(Hardware.category == category)
    return where, (status or "", category or "")


@bp.get("")
@require_auth
def list_hardware():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    where, key_filters = _filters()
    db = get_session()
    try:
        return service.list_page(db, caller, page_req, where=where, key_filters=key_filters)
    finally:
        db.close()


@bp.get("/<int:hardware_id>")
@require_auth
def get_hardware(hardware_id: int):
    caller = require_caller()
    db = get_session()
    try:
        return {"success": True, "data": service.get_dict(db, caller, hardware_id)}
    finally:
        db.close()


@bp.post("")
@require_roles(*ADMIN_ROLES)
@limit("hardware_create", quota=10, per_seconds=900, message="Too many hardware creation attempts")
def create_hardware():
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS)
        ensure_date_order(values, "purchase_date", "warranty_expiry")
        ensure_employees_exist(db, values, "assigned_to")
        if values.get("assigned_to") and "status" not in values:
            values["status"] = "Assigned"
        row = service.create(db, values)
        return {"success": True, "message": "Hardware created successfully", "data": row.to_dict()}, 201
    finally:
        db.close()


@bp.put("/<int:hardware_id>")
@require_roles(*ADMIN_ROLES)
def update_hardware(hardware_id: int):
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS, partial=True)
        row = service.get_row(db, hardware_id)
        ensure_date_order(service.merged(values, row), "purchase_date", "warranty_expiry")
        ensure_employees_exist(db, values, "assigned_to")
        row = service.update(db, hardware_id, values)
        return {"success": True, "message": "Hardware updated successfully", "data": row.to_dict()}
    finally:
        db.close()


@bp.delete("/<int:hardware_id>")
@require_roles(*ADMIN_ROLES)
def delete_hardware(hardware_id: int):
    db = get_session()
    try:
        service.delete(db, hardware_id)
        return {"success": True, "message": "Hardware deleted successfully"}
    finally:
        db.close()
