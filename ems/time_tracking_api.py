"""Attendance check-in/check-out.

Sessions belong to the caller's role-map account (``time_tracking.user_id``);
the linked employee id is copied onto the row for reporting.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from flask import Blueprint, request
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from .app_authz import require_auth, require_roles
from .app_sessions import Caller, require_caller
from .db import get_session
from .errors import DomainError, ValidationError
from .models import Employee, TimeTracking, utcnow
from .pagination import make_page_response, offset_of, parse_page_params
from .roles import Role
from .validation import Field, parse_payload

bp = Blueprint("time_tracking_api", __name__, url_prefix="/api/v1/time-tracking")

STANDARD_HOURS = 8.0
PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}

CHECK_IN_FIELDS = (
    Field("latitude", kind="float", min_value=-90, max_value=90),
    Field("longitude", kind="float", min_value=-180, max_value=180),
    Field("address", max_len=500),
    Field("notes", max_len=1000),
    Field("device_info", kind="object", source="deviceInfo"),
)

CHECK_OUT_FIELDS = (Field("notes", max_len=1000),)


def _hours(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 3600.0, 2)


def _open_session(db, caller: Caller) -> TimeTracking | None:
    stmt = (
        select(TimeTracking)
        .where(TimeTracking.user_id == caller.id, TimeTracking.status == "checked_in")
        .order_by(TimeTracking.check_in_time.desc())
    )
    return db.scalars(stmt).first()


def _location(values: dict[str, Any]) -> dict[str, Any] | None:
    loc = {k: values[k] for k in ("latitude", "longitude", "address") if values.get(k) is not None}
    return loc or None


def _parse_date(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError([{"field": name, "message": f"{name} must be a valid ISO 8601 date"}]) from e


@bp.post("/check-in")
@require_auth
def check_in():
    caller = require_caller()
    values = parse_payload(request.get_json(silent=True) or {}, CHECK_IN_FIELDS)
    db = get_session()
    try:
        if _open_session(db, caller) is not None:
            raise DomainError(400, "Already checked in")
        now = utcnow()
        row = TimeTracking(
            user_id=caller.id,
            employee_id=caller.employee_id,
            work_date=now.date(),
            check_in_time=now,
            location=_location(values),
            status="checked_in",
            notes=values.get("notes"),
            ip_address=request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip() or None,
            user_agent=(request.user_agent.string or None),
            device_info=values.get("device_info"),
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError as e:
            # a concurrent check-in won the open-session index
            db.rollback()
            raise DomainError(400, "Already checked in") from e
        db.refresh(row)
        return {"success": True, "message": "Checked in successfully", "data": row.to_dict()}, 201
    finally:
        db.close()


@bp.post("/check-out")
@require_auth
def check_out():
    caller = require_caller()
    values = parse_payload(request.get_json(silent=True) or {}, CHECK_OUT_FIELDS)
    db = get_session()
    try:
        row = _open_session(db, caller)
        if row is None:
            raise DomainError(400, "Not checked in")
        now = utcnow()
        total = _hours(row.check_in_time, now)
        row.check_out_time = now
        row.total_hours = total
        row.overtime_hours = round(max(0.0, total - STANDARD_HOURS), 2)
        row.status = "checked_out"
        if values.get("notes"):
            row.notes = values["notes"]
        db.commit()
        db.refresh(row)
        return {"success": True, "message": "Checked out successfully", "data": row.to_dict()}
    finally:
        db.close()


@bp.get("/status")
@require_auth
def status():
    caller = require_caller()
    db = get_session()
    try:
        now = utcnow()
        current = _open_session(db, caller)
        rows = db.scalars(
            select(TimeTracking).where(TimeTracking.user_id == caller.id, TimeTracking.work_date == now.date())
        ).all()
        today = sum(r.total_hours or 0.0 for r in rows if r.status == "checked_out")
        if current is not None:
            today += _hours(current.check_in_time, now)
        return {
            "success": True,
            "data": {
                "status": "checked_in" if current is not None else "checked_out",
                "currentSession": current.to_dict() if current is not None else None,
                "todayHours": round(today, 2),
                "canCheckIn": current is None,
                "canCheckOut": current is not None,
            },
        }
    finally:
        db.close()


@bp.get("/history")
@require_auth
def history():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    start, end = _parse_date("start_date"), _parse_date("end_date")
    if start and end and end < start:
        raise ValidationError([{"field": "end_date", "message": "end_date must not be before start_date"}])
    stmt = select(TimeTracking).where(TimeTracking.user_id == caller.id)
    if start:
        stmt = stmt.where(TimeTracking.work_date >= start)
    if end:
        stmt = stmt.where(TimeTracking.work_date <= end)
    db = get_session()
    try:
        total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = db.scalars(
            stmt.order_by(TimeTracking.check_in_time.desc()).offset(offset_of(page_req)).limit(page_req["limit"])
        ).all()
        return make_page_response([r.to_dict() for r in rows], page_req, int(total))
    finally:
        db.close()


@bp.get("/team")
@require_roles(Role.ADMIN, Role.MANAGER)
def team():
    db = get_session()
    try:
        stmt = (
            select(TimeTracking, Employee)
            .outerjoin(Employee, Employee.id == TimeTracking.employee_id)
            .where(TimeTracking.work_date == utcnow().date())
            .order_by(TimeTracking.check_in_time.desc())
        )
        data = []
        for row, emp in db.execute(stmt).all():
            item = row.to_dict()
            item["employee"] = (
                {"id": emp.id, "employeeId": emp.employee_id, "name": emp.full_name} if emp is not None else None
            )
            data.append(item)
        return {"success": True, "data": data, "count": len(data)}
    finally:
        db.close()


@bp.get("/stats")
@require_auth
def stats():
    caller = require_caller()
    period = request.args.get("period", "week")
    if period not in PERIOD_DAYS:
        raise ValidationError([{"field": "period", "message": "period must be one of: week, month, year"}])
    since = utcnow().date() - timedelta(days=PERIOD_DAYS[period])
    db = get_session()
    try:
        rows = db.scalars(
            select(TimeTracking).where(
                TimeTracking.user_id == caller.id,
                TimeTracking.status == "checked_out",
                TimeTracking.work_date >= since,
            )
        ).all()
        hours = [r.total_hours or 0.0 for r in rows]
        total = round(sum(hours), 2)
        return {
            "success": True,
            "data": {
                "period": period,
                "totalDays": len({r.work_date for r in rows}),
                "totalHours": total,
                "averageHours": round(total / len(hours), 2) if hours else 0,
                "maxHours": max(hours) if hours else 0,
                "minHours": min(hours) if hours else 0,
                "totalOvertime": round(sum(r.overtime_hours or 0.0 for r in rows), 2),
            },
        }
    finally:
        db.close()
