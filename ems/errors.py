"""Domain error system + JSON envelope handler registration."""
from __future__ import annotations

import traceback
import uuid
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError
from werkzeug.wrappers.response import Response

from .app_authz import AuthzError
from .app_sessions import SessionError
from .graph_client import GraphError
from .http_errors import (
    bad_gateway,
    bad_request,
    conflict,
    error_response,
    forbidden,
    internal_server_error,
    not_found,
    too_many_requests,
    unauthorized,
)
from .identity_client import IdentityError
from .pagination import PaginationError
from .rate_limiter import RateLimitError
from .token_cache import TokenAcquisitionError


class DomainError(Exception):
    def __init__(self, status: int, message: str, **extra: Any):
        self.status = status
        self.message = message
        self.extra = extra
        super().__init__(message)


class ValidationError(DomainError):
    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed", **extra: Any):
        super().__init__(400, message, errors=errors, **extra)
        self.errors = errors


class NotFoundError(DomainError):
    def __init__(self, message: str = "Resource not found", **extra: Any):
        super().__init__(404, message, **extra)


def register_error_handlers(app: Any) -> None:  # pragma: no cover - integration path
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(SessionError)
    def _h_session(err: SessionError) -> Response:
        return unauthorized(str(err) or "Access denied. No token provided.")

    @app.errorhandler(AuthzError)
    def _h_authz(err: AuthzError) -> Response:
        required = [r.value for r in err.required] or None
        return forbidden(str(err), required_roles=required)

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        return error_response(err.status, err.message, **err.extra)

    @app.errorhandler(PaginationError)
    def _h_pagination(err: PaginationError) -> Response:
        return bad_request(str(err) or "Invalid pagination parameters")

    @app.errorhandler(RateLimitError)  # type: ignore[arg-type]
    def _h_rate_limit(ex: RateLimitError) -> Response:
        return too_many_requests(str(ex), retry_after=ex.retry_after, limit=ex.limit)

    @app.errorhandler(IntegrityError)
    def _h_integrity(ex: IntegrityError) -> Response:
        app.logger.warning("Integrity error on %s: %s", request.path, ex.orig)
        return conflict("Resource already exists or violates a constraint")

    @app.errorhandler(GraphError)
    def _h_graph(ex: GraphError) -> Response:
        app.logger.warning("Directory API error operation=%s status=%s", ex.operation, ex.status)
        if ex.status in (404, 429):
            return error_response(ex.status, ex.message)
        return bad_gateway(ex.message)

    @app.errorhandler(TokenAcquisitionError)
    def _h_token(ex: TokenAcquisitionError) -> Response:
        app.logger.error("Token acquisition failed: %s", ex)
        return bad_gateway("Microsoft Graph service is temporarily unavailable.")

    @app.errorhandler(IdentityError)
    def _h_identity(ex: IdentityError) -> Response:
        app.logger.error("Identity provider error: %s", ex)
        return bad_gateway("Authentication service unavailable")

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        if status == 404:
            return not_found("Not Found")
        if status >= 500:
            return internal_server_error()
        return error_response(status, ex.description or ex.name)

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        app.logger.error("Unhandled exception incident_id=%s path=%s\n%s", incident_id, request.path, traceback.format_exc())
        detail = str(ex) if app.config.get("DEBUG") else None
        return internal_server_error(incident_id=incident_id, detail=detail)


__all__ = ["DomainError", "ValidationError", "NotFoundError", "register_error_handlers"]
