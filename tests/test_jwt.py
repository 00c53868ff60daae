import time

import pytest

from ems.jwt_utils import JWTError, TokenExpiredError, decode, encode, issue_access_token, issue_token_pair

SECRET = "access-secret"
REFRESH = "refresh-secret"


def _pair(**kw):
    params = dict(
        user_id=7,
        role="manager",
        email="m@example.com",
        employee_id=3,
        ms_graph_user_id="g-7",
        secret=SECRET,
        refresh_secret=REFRESH,
        issuer="iss",
        audience="aud",
    )
    params.update(kw)
    return issue_token_pair(**params)


def test_pair_roundtrip_claims():
    access, refresh = _pair()
    a = decode(access, secret=SECRET, issuer="iss", audience="aud")
    assert a["id"] == 7 and a["role"] == "manager" and a["employee"] == 3
    assert a["msGraphUserId"] == "g-7"
    assert a["exp"] - a["iat"] == 3600
    r = decode(refresh, secret=REFRESH, expected_type="refresh", issuer="iss")
    assert r["id"] == 7
    assert "role" not in r
    assert r["exp"] - r["iat"] == 604800


def test_secrets_are_not_interchangeable():
    access, refresh = _pair()
    with pytest.raises(JWTError):
        decode(refresh, secret=SECRET, expected_type="refresh")
    with pytest.raises(JWTError):
        decode(access, secret=REFRESH)


def test_type_is_checked():
    access, _ = _pair()
    with pytest.raises(JWTError):
        decode(access, secret=SECRET, expected_type="refresh")


def test_tampered_signature_rejected():
    access, _ = _pair()
    head, body, sig = access.split(".")
    with pytest.raises(JWTError):
        decode(f"{head}.{body}.{sig[:-2]}xx", secret=SECRET)


def test_malformed_token_rejected():
    with pytest.raises(JWTError):
        decode("not-a-token", secret=SECRET)


def test_expiry_honours_leeway():
    now = int(time.time())
    tok = encode({"id": 1, "role": "admin", "type": "access", "exp": now - 30}, secret=SECRET, ttl=60)
    assert decode(tok, secret=SECRET)["id"] == 1
    with pytest.raises(TokenExpiredError):
        decode(tok, secret=SECRET, leeway=0)


def test_issuer_and_audience_checked():
    access, _ = _pair()
    with pytest.raises(JWTError):
        decode(access, secret=SECRET, issuer="other")
    with pytest.raises(JWTError):
        decode(access, secret=SECRET, audience="other")


def test_issue_access_token_resets_times():
    tok = issue_access_token(payload={"id": 2, "role": "hr", "iat": 1, "exp": 2}, secret=SECRET, ttl=120)
    claims = decode(tok, secret=SECRET)
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == 120


def test_encode_requires_secret():
    with pytest.raises(JWTError):
        encode({"id": 1}, secret="", ttl=60)
