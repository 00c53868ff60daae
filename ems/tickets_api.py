"""Helpdesk tickets.

Visibility: the ``employee`` role sees only tickets it created; admin roles see
everything; any other role sees tickets it created or is assigned to.
Status/priority/assignee changes are journalled as TicketEvent rows.
"""
from __future__ import annotations

import secrets

from flask import Blueprint, request
from sqlalchemy import select

from .app_authz import AuthzError, require_auth, require_roles
from .app_sessions import Caller, require_caller
from .db import get_session
from .errors import DomainError, ValidationError
from .http_limits import limit
from .models import (
    TICKET_CATEGORIES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
    Ticket,
    TicketComment,
    TicketEvent,
    utcnow,
)
from .pagination import parse_page_params
from .resource_service import ResourceService, ensure_employees_exist
from .roles import ADMIN_ROLES, Role
from .scoping import OwnershipScope
from .validation import Field, parse_payload

bp = Blueprint("tickets_api", __name__, url_prefix="/api/v1/tickets")

TICKET_SCOPE = OwnershipScope(
    Ticket.created_by,
    extra_columns=(Ticket.assigned_to,),
    narrowed={Role.EMPLOYEE: (Ticket.created_by,)},
)
service = ResourceService(Ticket, "ticket", scope=TICKET_SCOPE, label="Ticket")

CLOSING_STATUSES = ("Resolved", "Closed")

FIELDS = (
    Field("ticket_number", min_len=3, max_len=50),
    Field("title", required=True, min_len=5, max_len=200),
    Field("description", required=True, min_len=10, max_len=5000),
    Field("category", required=True, choices=TICKET_CATEGORIES),
    Field("priority", choices=TICKET_PRIORITIES),
    Field("status", choices=TICKET_STATUSES),
    Field("assigned_to", kind="int", min_value=1),
    Field("due_date", kind="date"),
    Field("resolution", max_len=5000),
)

COMMENT_FIELDS = (Field("body", required=True, min_len=1, max_len=5000),)


def generate_ticket_number() -> str:
    return f"TKT-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _visible(caller: Caller, ticket: Ticket) -> None:
    if not TICKET_SCOPE.allows(caller, ticket):
        raise AuthzError("Access denied. You can only view your own tickets.")


def _event(db, ticket_id: int, event_type: str, old, new, changed_by: int | None) -> None:
    db.add(
        TicketEvent(
            ticket_id=ticket_id,
            event_type=event_type,
            old_value=None if old is None else str(old),
            new_value=None if new is None else str(new),
            changed_by=changed_by,
        )
    )


@bp.post("")
@require_auth
@limit("ticket_create", quota=10, per_seconds=900, message="Too many ticket creation attempts, please try again later.")
def create_ticket():
    caller = require_caller()
    db = get_session()
    try:
        values = parse_payload(request.get_json(silent=True), FIELDS)
        assigned = values.get("assigned_to")
        if assigned is not None and caller.employee_id is not None and assigned == caller.employee_id:
            raise DomainError(400, "Cannot assign ticket to self.")
        ensure_employees_exist(db, values, "assigned_to")
        values.setdefault("priority", "Medium")
        values.setdefault("status", "Open")
        values["ticket_number"] = values.get("ticket_number") or generate_ticket_number()
        values["created_by"] = caller.employee_id
        ticket = Ticket(**values)
        db.add(ticket)
        db.flush()
        if assigned is not None:
            _event(db, ticket.id, "assigned", None, assigned, caller.employee_id)
        db.commit()
        db.refresh(ticket)
        service.invalidate(ticket.id)
        return {"success": True, "message": "Ticket created successfully", "data": ticket.to_dict()}, 201
    finally:
        db.close()


@bp.get("")
@require_auth
def list_tickets():
    caller = require_caller()
    page_req = parse_page_params(request.args)
    status = request.args.get("status") or None
    if status and status not in TICKET_STATUSES:
        raise ValidationError([{"field": "status", "message": "status must be one of: " + ", ".join(TICKET_STATUSES)}])
    where = [Ticket.status == status] if status else []
    db = get_session()
    try:
        return service.list_page(db, caller, page_req, where=where, key_filters=(status,) if status else ())
    finally:
        db.close()


@bp.get("/<int:ticket_id>")
@require_auth
def get_ticket(ticket_id: int):
    caller = require_caller()
    db = get_session()
    try:
        data = service.get_dict(db, caller, ticket_id) if caller.role in ADMIN_ROLES else None
        if data is None:
            ticket = service.get_row(db, ticket_id)
            _visible(caller, ticket)
            data = ticket.to_dict()
        return {"success": True, "data": data}
    finally:
        db.close()


@bp.put("/<int:ticket_id>")
@require_auth
def update_ticket(ticket_id: int):
    caller = require_caller()
    db = get_session()
    try:
        ticket = service.get_row(db, ticket_id)
        _visible(caller, ticket)
        values = parse_payload(request.get_json(silent=True), FIELDS, partial=True)
        values.pop("ticket_number", None)
        if "assigned_to" in values and values["assigned_to"] is not None:
            ensure_employees_exist(db, values, "assigned_to")
        for field, event_type in (("status", "status_change"), ("priority", "priority_change"), ("assigned_to", "reassigned")):
            if field in values and values[field] != getattr(ticket, field):
                kind = "assigned" if field == "assigned_to" and ticket.assigned_to is None else event_type
                _event(db, ticket.id, kind, getattr(ticket, field), values[field], caller.employee_id)
        if values.get("status") in CLOSING_STATUSES and ticket.resolved_date is None:
            ticket.resolved_date = utcnow()
        for k, v in values.items():
            setattr(ticket, k, v)
        db.commit()
        db.refresh(ticket)
        service.invalidate(ticket_id)
        return {"success": True, "message": "Ticket updated successfully", "data": ticket.to_dict()}
    finally:
        db.close()


@bp.delete("/<int:ticket_id>")
@require_roles(*ADMIN_ROLES)
def delete_ticket(ticket_id: int):
    db = get_session()
    try:
        ticket = service.get_row(db, ticket_id)
        for model in (TicketEvent, TicketComment):
            for child in db.scalars(select(model).where(model.ticket_id == ticket_id)).all():
                db.delete(child)
        db.delete(ticket)
        db.commit()
        service.invalidate(ticket_id)
        return {"success": True, "message": "Ticket deleted successfully"}
    finally:
        db.close()


@bp.get("/<int:ticket_id>/events")
@require_auth
def ticket_events(ticket_id: int):
    caller = require_caller()
    db = get_session()
    try:
        _visible(caller, service.get_row(db, ticket_id))
        rows = db.scalars(select(TicketEvent).where(TicketEvent.ticket_id == ticket_id).order_by(TicketEvent.id)).all()
        return {"success": True, "data": [r.to_dict() for r in rows]}
    finally:
        db.close()


@bp.get("/<int:ticket_id>/comments")
@require_auth
def list_comments(ticket_id: int):
    caller = require_caller()
    db = get_session()
    try:
        _visible(caller, service.get_row(db, ticket_id))
        rows = db.scalars(select(TicketComment).where(TicketComment.ticket_id == ticket_id).order_by(TicketComment.id)).all()
        return {"success": True, "data": [r.to_dict() for r in rows]}
    finally:
        db.close()


@bp.post("/<int:ticket_id>/comments")
@require_auth
def add_comment(ticket_id: int):
    caller = require_caller()
    db = get_session()
    try:
        _visible(caller, service.get_row(db, ticket_id))
        values = parse_payload(request.get_json(silent=True), COMMENT_FIELDS)
        comment = TicketComment(ticket_id=ticket_id, author_id=caller.employee_id, body=values["body"])
        db.add(comment)
        db.commit()
        db.refresh(comment)
        return {"success": True, "message": "Comment added", "data": comment.to_dict()}, 201
    finally:
        db.close()
