"""Identity provider (Microsoft Entra ID) client wrapper.

Wraps ``msal.ConfidentialClientApplication`` for the authorization-code flow:
building the authorization URL, exchanging codes and silent renewal. Every
operation is tagged with a correlation id in the logs.

The msal application is created lazily because construction performs authority
discovery over the network.
"""
from __future__ import annotations

import logging
import secrets
import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import msal
import requests

log = logging.getLogger("ems.identity")

AUTHORITY_BASE = "https://login.microsoftonline.com"
DEFAULT_SCOPES: tuple[str, ...] = ("User.Read", "User.ReadBasic.All")
LOGIN_SCOPES: tuple[str, ...] = ("User.Read",)
REQUEST_TIMEOUT = 30


class IdentityError(Exception):
    def __init__(self, message: str, code: str | None = None, correlation_id: str | None = None):
        super().__init__(message)
        self.code = code
        self.correlation_id = correlation_id


@dataclass(frozen=True)
class AuthRequest:
    url: str
    state: str
    nonce: str
    correlation_id: str


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    return secrets.token_urlsafe(16)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def is_valid_redirect_uri(uri: str | None) -> bool:
    if not uri:
        return False
    parsed = urlparse(uri)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class IdentityClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        tenant_id: str,
        app: Any | None = None,
        http: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._tenant_id = tenant_id
        self._app = app
        self._http = http or requests.Session()
        self._timeout = timeout
        self._lock = threading.Lock()
        self._stats = {"auth_urls": 0, "code_exchanges": 0, "silent_hits": 0, "silent_misses": 0, "errors": 0}

    @property
    def authority(self) -> str:
        return f"{AUTHORITY_BASE}/{self._tenant_id}"

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    def _application(self) -> Any:
        with self._lock:
            if self._app is None:
                self._app = msal.ConfidentialClientApplication(
                    self._client_id,
                    authority=self.authority,
                    client_credential=self._client_secret,
                    timeout=self._timeout,
                )
            return self._app

    def _bump(self, name: str) -> None:
        with self._lock:
            self._stats[name] += 1

    def get_auth_code_url(
        self,
        *,
        redirect_uri: str,
        scopes: Sequence[str] = DEFAULT_SCOPES,
        login_hint: str | None = None,
        state: str | None = None,
        prompt: str = "select_account",
    ) -> AuthRequest:
        correlation_id = generate_correlation_id()
        state = state or generate_state()
        nonce = generate_nonce()
        try:
            url = self._application().get_authorization_request_url(
                list(scopes),
                login_hint=login_hint,
                state=state,
                redirect_uri=redirect_uri,
                prompt=prompt,
                nonce=nonce,
            )
        except Exception as e:
            self._bump("errors")
            log.error("Failed to build authorization URL correlation_id=%s: %s", correlation_id, e)
            raise IdentityError("Failed to generate authorization URL", correlation_id=correlation_id) from e
        self._bump("auth_urls")
        log.info("Authorization URL generated correlation_id=%s scopes=%s", correlation_id, list(scopes))
        return AuthRequest(url=url, state=state, nonce=nonce, correlation_id=correlation_id)

    def acquire_token_by_code(
        self, code: str, *, redirect_uri: str, scopes: Sequence[str] = DEFAULT_SCOPES
    ) -> dict[str, Any]:
        correlation_id = generate_correlation_id()
        result = self._application().acquire_token_by_authorization_code(
            code, scopes=list(scopes), redirect_uri=redirect_uri
        )
        if not result or "access_token" not in result:
            self._bump("errors")
            err = (result or {}).get("error")
            log.error("Code exchange failed correlation_id=%s error=%s", correlation_id, err)
            raise IdentityError(
                (result or {}).get("error_description") or "Token acquisition failed",
                code=err,
                correlation_id=correlation_id,
            )
        self._bump("code_exchanges")
        log.info("Code exchanged for tokens correlation_id=%s", correlation_id)
        return result

    def exchange_code(
        self, code: str, *, redirect_uri: str, scopes: Sequence[str] = LOGIN_SCOPES
    ) -> dict[str, Any]:
        """Exchange an authorization code with a direct POST to the token endpoint."""
        correlation_id = generate_correlation_id()
        try:
            resp = self._http.post(
                self.token_endpoint,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                    "scope": " ".join(scopes),
                },
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "client-request-id": correlation_id,
                },
                timeout=self._timeout,
            )
            body = resp.json() if resp.content else {}
        except (requests.RequestException, ValueError) as e:
            self._bump("errors")
            log.error("Token endpoint unreachable correlation_id=%s: %s", correlation_id, e)
            raise IdentityError("Token endpoint unreachable", correlation_id=correlation_id) from e
        if resp.status_code >= 400 or "access_token" not in body:
            self._bump("errors")
            log.error(
                "Code exchange rejected correlation_id=%s status=%s error=%s",
                correlation_id, resp.status_code, body.get("error"),
            )
            raise IdentityError(
                body.get("error_description") or "Token acquisition failed",
                code=body.get("error"),
                correlation_id=correlation_id,
            )
        self._bump("code_exchanges")
        log.info("Code exchanged via token endpoint correlation_id=%s", correlation_id)
        return body

    def acquire_token_silent(self, *, scopes: Sequence[str] = DEFAULT_SCOPES, account: dict | None = None) -> dict[str, Any] | None:
        app = self._application()
        if account is None:
            accounts = app.get_accounts()
            if not accounts:
                self._bump("silent_misses")
                return None
            account = accounts[0]
        result = app.acquire_token_silent(list(scopes), account=account)
        if result and "access_token" in result:
            self._bump("silent_hits")
            return result
        self._bump("silent_misses")
        return None

    def clear_cache(self) -> int:
        app = self._application()
        accounts = app.get_accounts()
        for account in accounts:
            app.remove_account(account)
        log.info("Identity token cache cleared accounts=%s", len(accounts))
        return len(accounts)

    def configuration(self) -> dict[str, Any]:
        return {
            "client_id": (self._client_id[:8] + "...") if self._client_id else None,
            "authority": self.authority,
            "timeout": self._timeout,
            "default_scopes": list(DEFAULT_SCOPES),
        }

    def stats(self) -> dict[str, int]:
        with self._lock:
            return dict(self._stats)


__all__ = [
    "IdentityClient",
    "IdentityError",
    "AuthRequest",
    "DEFAULT_SCOPES",
    "LOGIN_SCOPES",
    "generate_state",
    "generate_nonce",
    "generate_correlation_id",
    "is_valid_redirect_uri",
]
