from __future__ import annotations

from typing import Any

from flask import Blueprint, request

from .app_authz import AuthzError, require_auth, require_roles
from .app_sessions import require_caller
from .cache import generate_key
from .db import get_session
from .errors import ValidationError
from .http_limits import limit
from .models import LICENSE_STATUSES, LICENSE_TYPES, License, Software
from .pagination import parse_page_params
from .resource_service import ResourceService, date_order_error, ensure_employees_exist
from .roles import ADMIN_ROLES, is_admin
from .scoping import OwnershipScope
from .validation import Field, parse_payload

bp = Blueprint("licenses_api", __name__, url_prefix="/api/v1/licenses")

LICENSE_SCOPE = OwnershipScope(License.assigned_to)
service = ResourceService(License, "license", scope=LICENSE_SCOPE, label="License")

FIELDS = (
    Field("license_key", required=True, max_len=255, source="licenseKey"),
    Field("software_id", kind="int", min_value=1, source="softwareId"),
    Field("license_type", choices=LICENSE_TYPES, source="licenseType"),
    Field("max_users", kind="int", min_value=1, source="maxUsers"),
    Field("current_users", kind="int", min_value=0, source="currentUsers"),
    Field("purchase_date", kind="date", required=True, source="purchaseDate"),
    Field("expiry_date", kind="date", source="expiryDate"),
    Field("cost", kind="float", min_value=0),
    Field("status", choices=LICENSE_STATUSES),
    Field("assigned_to", kind="int", min_value=1, source="assignedTo"),
    Field("assigned_date", kind="date", source="assignedDate"),
    Field("vendor", max_len=200),
    Field("notes", max_len=5000),
    Field("renewal_date", kind="date", source="renewalDate"),
    Field("support_level", max_len=50, source="supportLevel"),
    Field("compliance_status", max_len=50, source="complianceStatus"),
)


MULTI_SEAT_TYPES = ("Multi User", "Volume License")


def _validate(db, values: dict[str, Any], row: License | None = None) -> dict[str, Any]:
    ensure_employees_exist(db, values, "assigned_to")
    sw = values.get("software_id")
    if sw is not None and db.get(Software, sw) is None:
        raise ValidationError([{"field": "software_id", "message": "software_id references unknown software"}])

    lic = service.merged(values, row)
    errors = [
        e
        for e in (
            date_order_error(lic, "purchase_date", "expiry_date", strict=True),
            date_order_error(lic, "purchase_date", "assigned_date"),
            date_order_error(lic, "expiry_date", "renewal_date", strict=True),
        )
        if e is not None
    ]
    if lic.get("max_users") and (lic.get("current_users") or 0) > lic["max_users"]:
        errors.append({"field": "current_users", "message": "current_users cannot exceed max_users"})
    if lic.get("license_type") in MULTI_SEAT_TYPES and not lic.get("max_users"):
        errors.append({"field": "max_users", "message": "Multi User and Volume License licenses must specify max_users"})
    if lic.get("status") == "Active" and lic.get("assigned_to") and not lic.get("assigned_date"):
        errors.append({"field": "assigned_date", "message": "Assigned licenses must have an assigned_date"})
    if errors:
        raise ValidationError(errors)
    return values


def _employee_key(employee_id: int) -> str:
    # lives under the list namespace so write invalidation sweeps it
    return generate_key("license", "list", "employee", employee_id)


@bp.get("")
@require_auth
def list_licenses():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    db = get_session()
    try:
        return service.list_page(db, caller, page_req)
    finally:
        db.close()


@bp.get("/employee/<int:employee_id>")
@require_auth
def licenses_by_employee(employee_id: int):
    caller = require_caller()
    if not is_admin(caller.role) and caller.employee_id != employee_id:
        raise AuthzError("Access denied. You can only view your own licenses.")
    db = get_session()
    try:
        data = service.list_all(db, _employee_key(employee_id), [License.assigned_to == employee_id])
        return {"success": True, "data": data}
    finally:
        db.close()


@bp.get("/<int:license_id>")
@require_auth
def get_license(license_id: int):
    caller = require_caller()
    db = get_session()
    try:
        return {"success": True, "data": service.get_dict(db, caller, license_id)}
    finally:
        db.close()


@bp.post("")
@require_roles(*ADMIN_ROLES)
@limit("license_create", quota=5, per_seconds=900, message="Too many license creation attempts")
def create_license():
    db = get_session()
    try:
        values = _validate(db, parse_payload(request.get_json(silent=True), FIELDS))
        row = service.create(db, values)
        return {"success": True, "message": "License created successfully", "data": row.to_dict()}, 201
    finally:
        db.close()


@bp.put("/<int:license_id>")
@require_roles(*ADMIN_ROLES)
def update_license(license_id: int):
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS, partial=True)
        _validate(db, values, service.get_row(db, license_id))
        row = service.update(db, license_id, values)
        return {"success": True, "message": "License updated successfully", "data": row.to_dict()}
    finally:
        db.close()


@bp.delete("/<int:license_id>")
@require_roles(*ADMIN_ROLES)
def delete_license(license_id: int):
    db = get_session()
    try:
        service.delete(db, license_id)
        return {"success": True, "message": "License deleted successfully"}
    finally:
        db.close()
