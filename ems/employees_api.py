from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import func, or_

from .app_authz import require_auth, require_roles
from .app_sessions import require_caller
from .db import get_session
from .errors import ValidationError
from .http_limits import limit
from .models import EMPLOYEE_STATUSES, Department, Employee
from .pagination import parse_page_params
from .resource_service import ResourceService
from .roles import PEOPLE_MANAGER_ROLES, Role
from .scoping import OwnershipScope
from .validation import Field, parse_payload

bp = Blueprint("employees_api", __name__, url_prefix="/api/v1/employees")

# managers, HR and admins see everyone; other roles see their own record
EMPLOYEE_SCOPE = OwnershipScope(Employee.id, unrestricted=PEOPLE_MANAGER_ROLES | {Role.IT_ADMIN})
service = ResourceService(Employee, "employee", scope=EMPLOYEE_SCOPE, label="Employee")

FIELDS = (
    Field("employee_id", required=True, min_len=2, max_len=50, transform=str.upper, source="employeeId"),
    Field("first_name", required=True, max_len=100, source="firstName"),
    Field("last_name", required=True, max_len=100, source="lastName"),
    Field("contact_email", max_len=200, transform=str.lower, source="contactEmail"),
    Field("phone", max_len=50),
    Field("department_id", kind="int", min_value=1, source="departmentId"),
    Field("position", max_len=100),
    Field("hire_date", kind="date", source="hireDate"),
    Field("status", choices=EMPLOYEE_STATUSES),
    Field("ms_graph_user_id", max_len=100, source="msGraphUserId"),
)


def _validate(db, values: dict) -> dict:
    errors = []
    email = values.get("contact_email")
    if email and ("@" not in email or email.startswith("@") or email.endswith("@")):
        errors.append({"field": "contact_email", "message": "contact_email must be a valid email address"})
    dept = values.get("department_id")
    if dept is not None and db.get(Department, dept) is None:
        errors.append({"field": "department_id", "message": "department_id references an unknown department"})
    if errors:
        raise ValidationError(errors)
    return values


@bp.get("")
@require_auth
def list_employees():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    search = (request.args.get("search") or "").strip()
    dept_raw = request.args.get("department_id")
    where = []
    if search:
        like = f"%{search.lower()}%"
        where.append(
            or_(
                func.lower(Employee.first_name).like(like),
                func.lower(Employee.last_name).like(like),
                func.lower(Employee.employee_id).like(like),
                func.lower(Employee.contact_email).like(like),
            )
        )
    if dept_raw:
        if not dept_raw.isdigit():
            raise ValidationError([{"field": "department_id", "message": "department_id must be an integer"}])
        where.append(Employee.department_id == int(dept_raw))
    db = get_session()
    try:
        return service.list_page(db, caller, page_req, where=where, key_filters=(search.lower(), dept_raw or ""))
    finally:
        db.close()


@bp.get("/<int:employee_id>")
@require_auth
def get_employee(employee_id: int):
    caller = require_caller()
    db = get_session()
    try:
        return {"success": True, "data": service.get_dict(db, caller, employee_id)}
    finally:
        db.close()


@bp.post("")
@require_roles(Role.ADMIN, Role.HR)
@limit("employee_create", quota=20, per_seconds=900, message="Too many employee creation attempts")
def create_employee():
    db = get_session()
    try:
        values = _validate(db, parse_payload(request.get_json(silent=True), FIELDS))
        row = service.create(db, values)
        return {"success": True, "message": "Employee created successfully", "data": row.to_dict()}, 201
    finally:
        db.close()


@bp.put("/<int:employee_id>")
@require_roles(Role.ADMIN, Role.HR)
def update_employee(employee_id: int):
    db = get_session()
    try:
        values = _validate(db, parse_payload(request.get_json(silent=True), FIELDS, partial=True))
        row = service.update(db, employee_id, values)
        return {"success": True, "message": "Employee updated successfully", "data": row.to_dict()}
    finally:
        db.close()


@bp.delete("/<int:employee_id>")
@require_roles(Role.ADMIN, Role.HR)
def delete_employee(employee_id: int):
    db = get_session()
    try:
        service.delete(db, employee_id)
        return {"success": True, "message": "Employee deleted successfully"}
    finally:
        db.close()
