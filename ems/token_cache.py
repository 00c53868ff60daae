"""Application (client-credentials) token cache for the directory API.

Holds one bearer token plus its absolute expiry. A token is served only while
``now + buffer < expires_at`` so it cannot lapse mid-request.

Concurrent callers that find no usable token share a single in-flight
acquisition: the first caller installs a ``concurrent.futures.Future`` under the
lock (check-then-set) and performs the network call outside it; everyone else
waits on that future and receives the same token or the same exception. The
marker is cleared in ``finally`` whatever the outcome.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

import requests

from .metrics import increment as metrics_increment

log = logging.getLogger("ems.token_cache")

TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
BUFFER_SECONDS = 300  # 5 minutes
TOKEN_TIMEOUT = 30
MAX_RETRIES = 3
RETRY_DELAY = 1.0


class TokenAcquisitionError(Exception):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, requests.HTTPError):
        resp = exc.response
        return resp is not None and resp.status_code >= 500
    return isinstance(exc, requests.ConnectionError | requests.Timeout)


class TokenCache:
    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str = GRAPH_DEFAULT_SCOPE,
        timeout: float = TOKEN_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        buffer_seconds: int = BUFFER_SECONDS,
        http: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._buffer = buffer_seconds
        self._http = http or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: float | None = None
        self._inflight: Future[str] | None = None

    # --- state ---
    def _valid_locked(self) -> bool:
        return (
            self._token is not None
            and self._expires_at is not None
            and self._clock() + self._buffer < self._expires_at
        )

    def is_valid(self) -> bool:
        with self._lock:
            return self._valid_locked()

    def store(self, token: str, expires_in: float) -> None:
        with self._lock:
            self._token = token
            self._expires_at = self._clock() + float(expires_in)

    def invalidate(self, reason: str = "manual") -> None:
        with self._lock:
            self._token = None
            self._expires_at = None
            self._inflight = None
        log.info("Token cache cleared reason=%s", reason)

    def info(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            return {
                "has_token": self._token is not None,
                "expires_at": self._expires_at,
                "is_valid": self._valid_locked(),
                "is_refreshing": self._inflight is not None,
                "time_until_expiry": max(0.0, self._expires_at - now) if self._expires_at else 0.0,
            }

    # --- acquisition ---
    def _request_token(self) -> dict[str, Any]:
        resp = self._http.post(
            TOKEN_URL.format(tenant=self._tenant_id),
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "scope": self._scope,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def acquire(self, retry_count: int = 0) -> str:
        """Fetch a new token, retrying transient failures with linearly growing delay."""
        attempt = retry_count
        while True:
            try:
                body = self._request_token()
                token = body.get("access_token")
                if not token:
                    raise TokenAcquisitionError("Unable to fetch Microsoft Graph API access token: empty response")
                self.store(token, body.get("expires_in", 3600))
                metrics_increment("token.acquire", {"outcome": "ok", "attempt": str(attempt)})
                log.info("Directory API token acquired attempt=%s expires_in=%s", attempt, body.get("expires_in"))
                return token
            except (requests.RequestException, ValueError) as e:
                if attempt < self._max_retries and _is_transient(e):
                    delay = self._retry_delay * (attempt + 1)
                    log.warning("Token request failed (attempt %s), retrying in %.1fs: %s", attempt + 1, delay, e)
                    self._sleep(delay)
                    attempt += 1
                    continue
                status = None
                if isinstance(e, requests.HTTPError) and e.response is not None:
                    status = e.response.status_code
                metrics_increment("token.acquire", {"outcome": "error", "attempt": str(attempt)})
                log.error("Failed to acquire directory API token after %s attempt(s): %s", attempt + 1, e)
                raise TokenAcquisitionError(f"Unable to fetch Microsoft Graph API access token: {e}", status) from e

    def get_valid_token(self) -> str:
        with self._lock:
            if self._valid_locked():
                return self._token  # type: ignore[return-value]
            fut = self._inflight
            owner = fut is None
            if fut is None:
                fut = Future()
                self._inflight = fut
        if not owner:
            return fut.result(timeout=self._timeout * (self._max_retries + 2))
        try:
            token = self.acquire()
            fut.set_result(token)
            return token
        except BaseException as e:
            fut.set_exception(e)
            raise
        finally:
            with self._lock:
                if self._inflight is fut:
                    self._inflight = None

    def refresh(self) -> str:
        self.invalidate("manual refresh")
        return self.get_valid_token()


__all__ = ["TokenCache", "TokenAcquisitionError", "BUFFER_SECONDS"]
