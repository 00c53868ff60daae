"""JWT utilities (HS256 only).

Access tokens carry the caller identity used by the request guard; refresh
tokens only carry the role-map id and are signed with a separate secret so a
leaked access secret cannot mint refresh tokens.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Literal, TypedDict


class JWTError(Exception):
    pass


class TokenExpiredError(JWTError):
    pass


DEFAULT_ACCESS_TTL = 3600  # 1h
DEFAULT_REFRESH_TTL = 604800  # 7d
SKEW_SECS = 60

ALG_HS256 = "HS256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)


def _sign(msg: bytes, secret: str) -> str:
    sig = hmac.new(secret.encode(), msg, hashlib.sha256).digest()
    return _b64url(sig)


def encode(payload: dict[str, Any], *, secret: str, ttl: int) -> str:
    if not secret:
        raise JWTError("no signing secret available")
    now = int(time.time())
    header = {"alg": ALG_HS256, "typ": "JWT"}
    pl = payload.copy()
    pl.setdefault("iat", now)
    pl.setdefault("exp", now + ttl)
    header_b = _b64url(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64url(json.dumps(pl, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    return f"{header_b}.{payload_b}.{_sign(msg, secret)}"


class AccessTokenPayload(TypedDict):
    id: int
    msGraphUserId: str | None
    email: str | None
    role: str
    employee: int | None
    type: Literal["access"]
    iss: str
    aud: str
    iat: int
    exp: int


class RefreshTokenPayload(TypedDict):
    id: int
    type: Literal["refresh"]
    iss: str
    iat: int
    exp: int


def decode(
    token: str,
    *,
    secret: str,
    expected_type: Literal["access", "refresh"] = "access",
    issuer: str | None = None,
    audience: str | None = None,
    leeway: int = SKEW_SECS,
    verify_exp: bool = True,
) -> dict[str, Any]:
    try:
        header_b, payload_b, sig = token.split(".")
    except ValueError as e:
        raise JWTError("malformed token") from e
    try:
        header_raw = json.loads(_b64url_decode(header_b))
    except Exception as e:
        raise JWTError("bad header") from e
    if not isinstance(header_raw, dict) or header_raw.get("alg") != ALG_HS256:
        raise JWTError("alg")
    expected = _sign(f"{header_b}.{payload_b}".encode(), secret)
    if not hmac.compare_digest(expected, sig):
        raise JWTError("bad signature")
    try:
        raw = json.loads(_b64url_decode(payload_b))
    except Exception as e:
        raise JWTError("bad payload") from e
    if not isinstance(raw, dict):
        raise JWTError("bad payload type")
    if raw.get("type") != expected_type:
        raise JWTError("unexpected token type")
    if not isinstance(raw.get("id"), int):
        raise JWTError("missing claim id")
    if expected_type == "access" and not isinstance(raw.get("role"), str):
        raise JWTError("missing claim role")
    exp = raw.get("exp")
    if not isinstance(exp, int):
        raise JWTError("missing claim exp")
    now = int(time.time())
    if verify_exp and now > exp + leeway:
        raise TokenExpiredError("token expired")
    if issuer and raw.get("iss") != issuer:
        raise JWTError("iss")
    if audience:
        aud_val = raw.get("aud")
        if isinstance(aud_val, list):
            ok = audience in aud_val
        else:
            ok = aud_val == audience
        if not ok:
            raise JWTError("aud")
    return raw


def issue_token_pair(
    *,
    user_id: int,
    role: str,
    email: str | None,
    employee_id: int | None,
    ms_graph_user_id: str | None,
    secret: str,
    refresh_secret: str,
    issuer: str,
    audience: str,
    access_ttl: int = DEFAULT_ACCESS_TTL,
    refresh_ttl: int = DEFAULT_REFRESH_TTL,
) -> tuple[str, str]:
    now = int(time.time())
    access_payload: dict[str, Any] = {
        "id": user_id,
        "msGraphUserId": ms_graph_user_id,
        "email": email,
        "role": role,
        "employee": employee_id,
        "type": "access",
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + access_ttl,
    }
    refresh_payload: dict[str, Any] = {"id": user_id, "type": "refresh", "iss": issuer, "iat": now, "exp": now + refresh_ttl}
    return (
        encode(access_payload, secret=secret, ttl=access_ttl),
        encode(refresh_payload, secret=refresh_secret, ttl=refresh_ttl),
    )


def issue_access_token(*, payload: dict[str, Any], secret: str, ttl: int = DEFAULT_ACCESS_TTL) -> str:
    now = int(time.time())
    pl = {**payload, "type": "access", "iat": now, "exp": now + ttl}
    return encode(pl, secret=secret, ttl=ttl)
