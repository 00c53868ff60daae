"""Shared JSON error envelope helpers: ``{"success": false, "message": ...}``."""
from __future__ import annotations

import uuid

from flask import g, jsonify
from werkzeug.wrappers.response import Response


def error_response(status: int, message: str, **extra: object) -> Response:
    payload: dict[str, object] = {"success": False, "message": message}
    rid = getattr(g, "request_id", None)
    if rid:
        payload["request_id"] = rid
    for k, v in extra.items():
        if v is not None:
            payload[k] = v
    resp = jsonify(payload)
    resp.status_code = status
    if rid and "X-Request-Id" not in resp.headers:
        resp.headers["X-Request-Id"] = rid
    return resp


def bad_request(message: str = "Bad request", **extra: object) -> Response:
    return error_response(400, message, **extra)


def unauthorized(message: str = "Access denied. No token provided.", **extra: object) -> Response:
    resp = error_response(401, message, **extra)
    resp.headers["WWW-Authenticate"] = "Bearer"
    return resp


def forbidden(message: str = "Access denied. Insufficient privileges.", **extra: object) -> Response:
    return error_response(403, message, **extra)


def not_found(message: str = "Not Found", **extra: object) -> Response:
    return error_response(404, message, **extra)


def conflict(message: str = "Conflict", **extra: object) -> Response:
    return error_response(409, message, **extra)


def too_many_requests(message: str = "Too many requests, please try again later.", retry_after: int | None = None, **extra: object) -> Response:
    resp = error_response(429, message, retry_after=retry_after, **extra)
    if retry_after is not None:
        resp.headers["Retry-After"] = str(int(retry_after))
    return resp


def bad_gateway(message: str, **extra: object) -> Response:
    return error_response(502, message, **extra)


def internal_server_error(message: str = "Internal server error", incident_id: str | None = None, **extra: object) -> Response:
    if not incident_id:
        incident_id = str(uuid.uuid4())
    return error_response(500, message, incident_id=incident_id, **extra)


__all__ = [
    "error_response", "bad_request", "unauthorized", "forbidden", "not_found", "conflict",
    "too_many_requests", "bad_gateway", "internal_server_error",
]
