from __future__ import annotations

import time
from urllib.parse import parse_qs, urlparse

from ems.db import get_session
from ems.identity_client import IdentityError
from ems.jwt_utils import decode, encode
from ems.models import UserRoleMap

FRONTEND = "http://frontend.test"


def _query(resp) -> dict[str, str]:
    loc = resp.headers["Location"]
    return {k: v[0] for k, v in parse_qs(urlparse(loc).query).items()}


# --- login ---


def test_login_requires_identifier(client):
    r = client.get("/api/v1/auth/login")
    assert r.status_code == 400
    assert r.get_json()["success"] is False


def test_login_unknown_code_is_404(client):
    r = client.get("/api/v1/auth/login?identifier=EMP001")
    assert r.status_code == 404
    body = r.get_json()
    assert body["message"] == "Unknown employee code or email"
    assert body["success"] is False


def test_login_code_resolves_to_contact_email(client, identity):
    r = client.get("/api/v1/auth/login?identifier=emp200")
    assert r.status_code == 302
    assert r.headers["Location"].startswith("https://login.example.test/authorize")
    name, kwargs = identity.calls[-1]
    assert name == "get_auth_code_url"
    assert kwargs["login_hint"] == "bob@example.com"
    assert kwargs["scopes"] == ["User.Read"]


def test_login_email_passes_through_lowercased(client, identity):
    r = client.get("/api/v1/auth/login?identifier=Someone@Example.COM")
    assert r.status_code == 302
    assert identity.calls[-1][1]["login_hint"] == "someone@example.com"


def test_login_json_format(client):
    r = client.get("/api/v1/auth/login?identifier=EMP200&format=json")
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["data"]["authUrl"].startswith("https://login.example.test/")


def test_login_identity_failure_is_500(client, identity):
    identity.fail_auth_url = True
    r = client.get("/api/v1/auth/login?identifier=EMP200")
    assert r.status_code == 500
    assert r.get_json()["message"] == "Authentication service unavailable"


def test_login_bad_redirect_uri_is_500(app, client):
    app.config["REDIRECT_URI"] = "not-a-url"
    r = client.get("/api/v1/auth/login?identifier=EMP200")
    assert r.status_code == 500
    assert r.get_json()["message"] == "Authentication configuration error"


# --- redirect ---


def test_redirect_without_code(client):
    r = client.get("/api/v1/auth/redirect")
    assert r.status_code == 302
    assert r.headers["Location"] == f"{FRONTEND}/login?error=invalid_request"


def test_redirect_unknown_user_is_not_found(app, client, identity):
    r = client.get("/api/v1/auth/redirect?code=abc")
    assert r.status_code == 302
    assert r.headers["Location"] == f"{FRONTEND}/login?error=not_found"
    assert identity.calls[-1] == ("exchange_code", {"code": "abc", "redirect_uri": app.config["REDIRECT_URI"]})


def test_redirect_provider_error_is_auth_failed(client):
    r = client.get("/api/v1/auth/redirect?error=access_denied")
    assert _query(r) == {"error": "auth_failed"}


def test_redirect_exchange_failure_is_auth_failed(client, identity):
    identity.exchange_result = IdentityError("invalid_grant", code="invalid_grant")
    r = client.get("/api/v1/auth/redirect?code=abc")
    assert r.status_code == 302
    assert _query(r) == {"error": "auth_failed"}


def test_redirect_inactive_mapping_is_not_found(client, graph, people):
    db = get_session()
    try:
        db.get(UserRoleMap, people["employee"]["urm"]).is_active = False
        db.commit()
    finally:
        db.close()
    graph.profile = {"id": "graph-bob", "mail": "bob@example.com"}
    r = client.get("/api/v1/auth/redirect?code=abc")
    assert _query(r) == {"error": "not_found"}


def test_redirect_success_issues_tokens(app, client, graph, people):
    graph.profile = {"id": "graph-bob", "mail": None, "userPrincipalName": "Bob@Example.com"}
    r = client.get("/api/v1/auth/redirect?code=abc")
    assert r.status_code == 302
    assert r.headers["Location"].startswith(f"{FRONTEND}/auth/redirect?")
    q = _query(r)
    payload = decode(
        q["token"],
        secret=app.config["JWT_SECRET"],
        issuer=app.config["JWT_ISSUER"],
        audience=app.config["JWT_AUDIENCE"],
    )
    assert payload["id"] == people["employee"]["urm"]
    assert payload["role"] == "employee"
    assert payload["employee"] == people["employee"]["employee"]
    assert payload["msGraphUserId"] == "graph-bob"
    assert graph.tokens_seen == ["user-token"]
    db = get_session()
    try:
        urm = db.get(UserRoleMap, people["employee"]["urm"])
        assert urm.refresh_token == q["refreshToken"]
        assert urm.ms_graph_user_id == "graph-bob"
        assert urm.last_login is not None
    finally:
        db.close()


# --- refresh / logout / me ---


def _login(client, graph) -> dict[str, str]:
    graph.profile = {"id": "graph-bob", "mail": "bob@example.com"}
    return _query(client.get("/api/v1/auth/redirect?code=abc"))


def test_refresh_issues_new_access_token(client, graph):
    tokens = _login(client, graph)
    r = client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert me.status_code == 200


def test_refresh_requires_token(client):
    r = client.post("/api/v1/auth/refresh", json={})
    assert r.status_code == 400


def test_refresh_rejects_garbage_and_access_tokens(client, graph):
    assert client.post("/api/v1/auth/refresh", json={"refreshToken": "x.y.z"}).status_code == 401
    tokens = _login(client, graph)
    # access token is signed with the other secret and has the wrong type
    assert client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["token"]}).status_code == 401


def test_logout_revokes_refresh_token(client, graph):
    tokens = _login(client, graph)
    headers = {"Authorization": f"Bearer {tokens['token']}"}
    r = client.post("/api/v1/auth/logout", headers=headers)
    assert r.status_code == 200
    assert r.get_json() == {"success": True, "message": "Logged out successfully"}
    r = client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert r.status_code == 401


def test_me_returns_mapping_and_employee(client, auth, people):
    r = client.get("/api/v1/auth/me", headers=auth("manager"))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["id"] == people["manager"]["urm"]
    assert data["role"] == "manager"
    assert "refresh_token" not in data
    assert data["employee"]["employee_id"] == "EMP300"


# --- request guard ---


def test_missing_token_is_401(client):
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.get_json()["message"] == "Access denied. No token provided."
    assert r.headers["WWW-Authenticate"] == "Bearer"


def test_invalid_token_is_401(client):
    r = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.get_json()["message"] == "Invalid token."


def test_expired_token_is_401(app, client, people):
    now = int(time.time())
    token = encode(
        {
            "id": people["admin"]["urm"],
            "role": "admin",
            "employee": people["admin"]["employee"],
            "type": "access",
            "iss": app.config["JWT_ISSUER"],
            "aud": app.config["JWT_AUDIENCE"],
            "iat": now - 7200,
            "exp": now - 3600,
        },
        secret=app.config["JWT_SECRET"],
        ttl=3600,
    )
    r = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.get_json()["message"] == "Token has expired. Please log in again."


def test_wrong_audience_is_401(app, client, people):
    token = encode(
        {"id": people["admin"]["urm"], "role": "admin", "type": "access", "iss": app.config["JWT_ISSUER"], "aud": "other"},
        secret=app.config["JWT_SECRET"],
        ttl=600,
    )
    r = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
