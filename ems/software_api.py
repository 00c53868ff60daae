from __future__ import annotations

from flask import Blueprint, request

from .app_authz import AuthzError, require_auth, require_roles
from .app_sessions import require_caller
from .cache import generate_key
from .db import get_session
from .http_limits import limit
from .models import SOFTWARE_STATUSES, Software
from .pagination import parse_page_params
from .resource_service import ResourceService, ensure_date_order, ensure_employees_exist
from .roles import ADMIN_ROLES, is_admin
from .scoping import OwnershipScope
from .validation import Field, parse_payload

bp = Blueprint("software_api", __name__, url_prefix="/api/v1/software")

service = ResourceService(Software, "software", scope=OwnershipScope(Software.assigned_to), label="Software")

FIELDS = (
    Field("name", required=True, max_len=200),
    Field("version", max_len=50),
    Field("vendor", max_len=200),
    Field("license_key", max_len=255, source="licenseKey"),
    Field("purchase_date", kind="date", source="purchaseDate"),
    Field("expiry_date", kind="date", source="expiryDate"),
    Field("status", choices=SOFTWARE_STATUSES),
    Field("assigned_to", kind="int", min_value=1, source="assignedTo"),
)


@bp.get("")
@require_auth
def list_software():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    status = request.args.get("status")
    where = [Software.status == status] if status else []
    db = get_session()
    try:
        return service.list_page(db, caller, page_req, where=where, key_filters=(status,) if status else ())
    finally:
        db.close()


@bp.get("/employee/<int:employee_id>")
@require_auth
def software_by_employee(employee_id: int):
    caller = require_caller()
    if not is_admin(caller.role) and caller.employee_id != employee_id:
        raise AuthzError("Access denied. You can only view your own software.")
    db = get_session()
    try:
        key = generate_key("software", "list", "employee", employee_id)
        return {"success": True, "data": service.list_all(db, key, [Software.assigned_to == employee_id])}
    finally:
        db.close()


@bp.get("/<int:software_id>")
@require_auth
def get_software(software_id: int):
    caller = require_caller()
    db = get_session()
    try:
        return {"success": True, "data": service.get_dict(db, caller, software_id)}
    finally:
        db.close()


@bp.post("")
@require_roles(*ADMIN_ROLES)
@limit("software_create", quota=10, per_seconds=900, message="Too many software creation attempts")
def create_software():
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS)
        ensure_date_order(values, "purchase_date", "expiry_date")
        ensure_employees_exist(db, values, "assigned_to")
        row = service.create(db, values)
        return {"success": True, "message": "Software created successfully", "data": row.to_dict()}, 201
    finally:
        db.close()


@bp.put("/<int:software_id>")
@require_roles(*ADMIN_ROLES)
def update_software(software_id: int):
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS, partial=True)
        ensure_date_order(values, "purchase_date", "expiry_date")
        ensure_employees_exist(db, values, "assigned_to")
        row = service.update(db, software_id, values)
        return {"success": True, "message": "Software updated successfully", "data": row.to_dict()}
    finally:
        db.close()


@bp.delete("/<int:software_id>")
@require_roles(*ADMIN_ROLES)
def delete_software(software_id: int):
    db = get_session()
    try:
        service.delete(db, software_id)
        return {"success": True, "message": "Software deleted successfully"}
    finally:
        db.close()
