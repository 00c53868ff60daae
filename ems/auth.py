from __future__ import annotations

import hmac
import logging
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request
from sqlalchemy import or_, select

from .app_authz import require_auth
from .app_sessions import require_caller
from .db import get_session
from .http_errors import bad_request, error_response, not_found, unauthorized
from .identity_client import LOGIN_SCOPES, IdentityError, is_valid_redirect_uri
from .jwt_utils import JWTError, TokenExpiredError, issue_access_token, issue_token_pair
from .jwt_utils import decode as jwt_decode
from .models import Employee, UserRoleMap, utcnow

log = logging.getLogger("ems.auth")

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# --- Helpers ---


def resolve_email(db, identifier: str) -> str | None:
    """Map a login identifier (email or employee code) to an email address."""
    ident = (identifier or "").strip()
    if not ident:
        return None
    if "@" in ident:
        return ident.lower()
    emp = db.scalars(select(Employee).where(Employee.employee_id == ident.upper())).first()
    if emp is None or not emp.contact_email:
        return None
    return emp.contact_email.lower()


def _frontend_redirect(path: str, **params: str):
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return redirect(f"{base}{path}?{urlencode(params)}", code=302)


def _login_error(error: str):
    return _frontend_redirect("/login", error=error)


def _mint(urm: UserRoleMap) -> tuple[str, str]:
    cfg = current_app.config
    return issue_token_pair(
        user_id=urm.id,
        role=urm.role,
        email=urm.email,
        employee_id=urm.employee_id,
        ms_graph_user_id=urm.ms_graph_user_id,
        secret=cfg["JWT_SECRET"],
        refresh_secret=cfg["JWT_REFRESH_SECRET"],
        issuer=cfg["JWT_ISSUER"],
        audience=cfg["JWT_AUDIENCE"],
        access_ttl=cfg["JWT_ACCESS_TTL_SECONDS"],
        refresh_ttl=cfg["JWT_REFRESH_TTL_SECONDS"],
    )


# --- Routes ---
@bp.get("/login")
def login():
    identifier = (request.args.get("identifier") or "").strip()
    if not identifier:
        return bad_request("Identifier (email or employee code) is required")
    db = get_session()
    try:
        email = resolve_email(db, identifier)
    finally:
        db.close()
    if email is None:
        return not_found("Unknown employee code or email")
    redirect_uri = current_app.config.get("REDIRECT_URI")
    if not is_valid_redirect_uri(redirect_uri):
        log.error("Invalid redirect URI configured: %r", redirect_uri)
        return error_response(500, "Authentication configuration error")
    try:
        auth_req = current_app.identity_client.get_auth_code_url(
            redirect_uri=redirect_uri, scopes=LOGIN_SCOPES, login_hint=email
        )
    except IdentityError as e:
        log.error("Authorization URL failed correlation_id=%s: %s", e.correlation_id, e)
        return error_response(500, "Authentication service unavailable")
    if request.args.get("format") == "json":
        return {"success": True, "data": {"authUrl": auth_req.url}}
    return redirect(auth_req.url, code=302)


@bp.get("/redirect")
def auth_redirect():
    if request.args.get("error"):
        log.warning("Provider returned error=%s", request.args.get("error"))
        return _login_error("auth_failed")
    code = request.args.get("code")
    if not code:
        return _login_error("invalid_request")
    db = get_session()
    try:
        tokens = current_app.identity_client.exchange_code(code, redirect_uri=current_app.config["REDIRECT_URI"])
        profile = current_app.graph_client.get_user_profile(tokens["access_token"])
        graph_id = profile.get("id")
        email = (profile.get("mail") or profile.get("userPrincipalName") or "").lower()
        matches = [UserRoleMap.email == email] if email else []
        if graph_id:
            matches.append(UserRoleMap.ms_graph_user_id == graph_id)
        urm = None
        if matches:
            urm = db.scalars(select(UserRoleMap).where(UserRoleMap.is_active.is_(True), or_(*matches))).first()
        if urm is None:
            log.info("No active role mapping for email=%s", email)
            return _login_error("not_found")
        if graph_id and not urm.ms_graph_user_id:
            urm.ms_graph_user_id = graph_id
        access, refresh = _mint(urm)
        urm.refresh_token = refresh
        urm.last_login = utcnow()
        urm.failed_login_attempts = 0
        db.commit()
        log.info("Login ok user_id=%s role=%s", urm.id, urm.role)
        return _frontend_redirect("/auth/redirect", token=access, refreshToken=refresh)
    except Exception as e:
        db.rollback()
        log.error("Authentication callback failed: %s", e, exc_info=True)
        return _login_error("auth_failed")
    finally:
        db.close()


@bp.post("/logout")
@require_auth
def logout():
    caller = require_caller()
    db = get_session()
    try:
        urm = db.get(UserRoleMap, caller.id)
        if urm is not None:
            urm.refresh_token = None
            db.commit()
        return jsonify({"success": True, "message": "Logged out successfully"})
    finally:
        db.close()


@bp.post("/refresh")
def refresh():
    body = request.get_json(silent=True) or {}
    token = body.get("refreshToken") or body.get("refresh_token")
    if not token:
        return bad_request("Refresh token is required")
    cfg = current_app.config
    try:
        payload = jwt_decode(
            token,
            secret=cfg["JWT_REFRESH_SECRET"],
            expected_type="refresh",
            issuer=cfg.get("JWT_ISSUER"),
            leeway=cfg.get("JWT_LEEWAY_SECONDS", 60),
        )
    except TokenExpiredError:
        return unauthorized("Refresh token has expired. Please log in again.")
    except JWTError:
        return unauthorized("Invalid refresh token")
    db = get_session()
    try:
        urm = db.get(UserRoleMap, payload["id"])
        if urm is None or not urm.is_active or not urm.refresh_token:
            return unauthorized("Invalid refresh token")
        if not hmac.compare_digest(urm.refresh_token, token):
            return unauthorized("Invalid refresh token")
        access = issue_access_token(
            payload={
                "id": urm.id,
                "msGraphUserId": urm.ms_graph_user_id,
                "email": urm.email,
                "role": urm.role,
                "employee": urm.employee_id,
                "iss": cfg["JWT_ISSUER"],
                "aud": cfg["JWT_AUDIENCE"],
            },
            secret=cfg["JWT_SECRET"],
            ttl=cfg["JWT_ACCESS_TTL_SECONDS"],
        )
        return {"success": True, "accessToken": access}
    finally:
        db.close()


@bp.get("/me")
@require_auth
def me():
    caller = require_caller()
    db = get_session()
    try:
        urm = db.get(UserRoleMap, caller.id)
        if urm is None:
            return not_found("User not found")
        employee = db.get(Employee, urm.employee_id) if urm.employee_id is not None else None
        data = urm.to_dict(exclude=("refresh_token",))
        data["employee"] = employee.to_dict() if employee is not None else None
        return {"success": True, "data": data}
    finally:
        db.close()
