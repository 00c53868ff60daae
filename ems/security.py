"""Security middleware.

Features:
 - CORS allow-list (frontend origin by default), including preflight handling.
 - Security headers (nosniff, frame denial, Referrer-Policy, HSTS outside dev/test).

The API is bearer-token only, so no CSRF cookie is issued.
"""

from __future__ import annotations

from flask import Flask, make_response, request

ALLOWED_METHODS = "GET,POST,PUT,PATCH,DELETE,OPTIONS"


def _apply_cors(app: Flask, resp):
    allowed: list[str] = app.config.get("CORS_ALLOWED_ORIGINS", []) or []
    if not allowed:
        return resp  # CORS disabled
    origin = request.headers.get("Origin")
    if not origin or origin not in allowed:
        return resp
    resp.headers.setdefault("Vary", "Origin")
    resp.headers["Access-Control-Allow-Origin"] = origin
    resp.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    req_hdrs = request.headers.get("Access-Control-Request-Headers")
    resp.headers["Access-Control-Allow-Headers"] = req_hdrs or "Authorization,Content-Type,X-Request-Id"
    resp.headers["Access-Control-Allow-Credentials"] = "true"
    resp.headers["Access-Control-Expose-Headers"] = "X-Request-Id,Retry-After"
    resp.headers["Access-Control-Max-Age"] = "600"
    return resp


def init_security(app: Flask) -> Flask:
    @app.after_request
    def _security_after_request(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if not app.config.get("TESTING") and not app.config.get("DEBUG"):
            resp.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
        return _apply_cors(app, resp)

    @app.before_request
    def _cors_preflight():
        if request.method == "OPTIONS":
            return make_response("", 204)
        return None

    return app


__all__ = ["init_security"]
