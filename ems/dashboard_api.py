"""Dashboard summary counts.

One cached aggregate per caller visibility: admin roles get organisation-wide
numbers, everyone else gets counts over the rows their list endpoints would
show them (same ownership scopes). Any resource write drops the cached copies.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from flask import Blueprint
from sqlalchemy import case, func, or_, select

from .app_authz import require_auth
from .app_sessions import Caller, require_caller
from .cache import generate_key
from .crud_cache import cached
from .db import get_session
from .employees_api import EMPLOYEE_SCOPE
from .hardware_api import service as hardware_service
from .http_limits import limit
from .licenses_api import LICENSE_SCOPE
from .models import Employee, Hardware, License, Software, Ticket, utcnow
from .roles import ADMIN_ROLES
from .scoping import OwnershipScope
from .software_api import service as software_service
from .tickets_api import TICKET_SCOPE

log = logging.getLogger("ems.dashboard")

bp = Blueprint("dashboard_api", __name__, url_prefix="/api/v1/dashboard")

STATS_TTL = 60
EXPIRING_WITHIN_DAYS = 30


def stats_key(caller: Caller) -> str:
    if caller.role in ADMIN_ROLES:
        return generate_key("dashboard", "stats", caller.role.value, "all")
    owner = caller.employee_id if caller.employee_id is not None else "none"
    return generate_key("dashboard", "stats", caller.role.value, owner)


def _tally(db, model, scope: OwnershipScope, caller: Caller, **conditions) -> dict[str, int]:
    columns = [func.count(model.id).label("total")]
    for name, cond in conditions.items():
        columns.append(func.coalesce(func.sum(case((cond, 1), else_=0)), 0).label(name))
    stmt = scope.apply(select(*columns).select_from(model), caller)
    row = db.execute(stmt).one()
    return {name: int(value or 0) for name, value in row._mapping.items()}


def collect_stats(db, caller: Caller, now: datetime) -> dict[str, Any]:
    today = now.date()
    start_of_day = datetime.combine(today, datetime.min.time())
    start_of_week = start_of_day - timedelta(days=(today.weekday() + 1) % 7)  # Sunday
    start_of_month = start_of_day.replace(day=1)
    soon = today + timedelta(days=EXPIRING_WITHIN_DAYS)

    return {
        "employees": _tally(
            db, Employee, EMPLOYEE_SCOPE, caller,
            active=Employee.status == "Active",
            newThisMonth=Employee.created_at >= start_of_month,
            newThisWeek=Employee.created_at >= start_of_week,
        ),
        "assets": _tally(
            db, Hardware, hardware_service.scope, caller,
            assigned=Hardware.status == "Assigned",
            available=Hardware.status == "Available",
            maintenance=Hardware.status == "Maintenance",
        ),
        "software": _tally(
            db, Software, software_service.scope, caller,
            installed=Software.status == "active",
            available=Software.status == "inactive",
        ),
        "licenses": _tally(
            db, License, LICENSE_SCOPE, caller,
            active=License.status == "Active",
            expiringSoon=License.expiry_date.between(today, soon),
            expired=or_(License.status == "Expired", License.expiry_date < today),
        ),
        "tickets": _tally(
            db, Ticket, TICKET_SCOPE, caller,
            open=Ticket.status == "Open",
            inProgress=Ticket.status == "In Progress",
            resolved=Ticket.status.in_(("Resolved", "Closed")),
            newToday=Ticket.created_at >= start_of_day,
        ),
    }


@bp.get("/stats")
@require_auth
@limit("dashboard", quota=100, per_seconds=900, message="Too many dashboard requests")
def dashboard_stats():
    caller = require_caller()
    db = get_session()
    try:

        def load() -> dict[str, Any]:
            now = utcnow()
            log.info("Computing dashboard stats user_id=%s role=%s", caller.id, caller.role.value)
            return {"stats": collect_stats(db, caller, now), "lastUpdated": now.isoformat() + "Z"}

        return {"success": True, "data": cached(stats_key(caller), load, ttl=STATS_TTL)}
    finally:
        db.close()
