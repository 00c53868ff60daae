"""Authenticated HTTP client for the Microsoft Graph directory API.

- Requests without a caller-supplied bearer token use the application token
  from :class:`~ems.token_cache.TokenCache`.
- A 401 on a cache-supplied token invalidates the cache and replays the request
  exactly once with a fresh token; a second 401 is final.
- 5xx/429 (and network failures) are retried by :meth:`GraphClient.with_retry`
  with exponential backoff; other 4xx fail immediately.
- Failures surface as :class:`GraphError` carrying a user-facing message, the
  upstream status code and the operation name.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import requests

from .config import is_guid, is_tenant
from .metrics import increment as metrics_increment
from .token_cache import TokenCache

log = logging.getLogger("ems.graph")

T = TypeVar("T")

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_BETA_URL = "https://graph.microsoft.com/beta"
DEFAULT_TIMEOUT = 10
MAX_RETRIES = 3
RETRY_DELAY = 1.0

PROFILE_FIELDS = (
    "id,displayName,mail,userPrincipalName,jobTitle,department,officeLocation,"
    "mobilePhone,businessPhones,givenName,surname"
)

_MESSAGES = {
    401: "Authentication failed. Please check your access token.",
    403: "Access denied. Insufficient permissions for this operation.",
    404: "Resource not found.",
    429: "Rate limit exceeded. Please try again later.",
}
_UNAVAILABLE = "Microsoft Graph service is temporarily unavailable."


class GraphError(Exception):
    def __init__(self, status: int, message: str, operation: str, upstream: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.operation = operation
        self.upstream = upstream

    @property
    def retryable(self) -> bool:
        return self.status == 429 or self.status >= 500


def error_message(status: int, operation: str) -> str:
    if status in _MESSAGES:
        return _MESSAGES[status]
    if status >= 500:
        return _UNAVAILABLE
    return f"Failed to {operation}"


def validate_environment(*, client_id: str, client_secret: str, tenant_id: str) -> list[str]:
    problems: list[str] = []
    for name, value in (("TENANT_ID", tenant_id), ("CLIENT_ID", client_id), ("CLIENT_SECRET", client_secret)):
        if not value:
            problems.append(f"{name} is required")
    if client_id and not is_guid(client_id):
        problems.append("CLIENT_ID must be a valid GUID")
    if tenant_id and not is_tenant(tenant_id):
        problems.append("TENANT_ID must be a valid GUID or domain")
    return problems


class GraphClient:
    def __init__(
        self,
        token_cache: TokenCache,
        *,
        http: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.tokens = token_cache
        self._http = http or requests.Session()
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    def with_retry(self, fn: Callable[[], T], *, max_retries: int | None = None, delay: float | None = None) -> T:
        retries = self._max_retries if max_retries is None else max_retries
        wait = self._retry_delay if delay is None else delay
        attempt = 0
        while True:
            try:
                return fn()
            except GraphError as e:
                if not e.retryable or attempt >= retries:
                    raise
                log.warning(
                    "Directory API %s failed status=%s (attempt %s/%s), retrying in %.1fs",
                    e.operation, e.status, attempt + 1, retries, wait,
                )
                metrics_increment("graph.retry", {"operation": e.operation, "status": str(e.status)})
                self._sleep(wait)
                wait *= 2
                attempt += 1

    def _send(
        self,
        method: str,
        url: str,
        token: str,
        *,
        data: Any,
        params: dict[str, Any] | None,
        timeout: float,
        operation: str,
    ) -> requests.Response:
        try:
            return self._http.request(
                method,
                url,
                json=data,
                params=params,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise GraphError(503, _UNAVAILABLE, operation) from e

    def _raise_for(self, resp: requests.Response, operation: str) -> None:
        upstream: Any = None
        try:
            upstream = resp.json().get("error")
        except ValueError:
            upstream = None
        log.error("Directory API %s failed status=%s upstream=%s", operation, resp.status_code, upstream)
        raise GraphError(resp.status_code, error_message(resp.status_code, operation), operation, upstream)

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Any = None,
        params: dict[str, Any] | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        use_beta: bool = False,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        operation: str | None = None,
    ) -> Any:
        base = GRAPH_BETA_URL if use_beta else GRAPH_BASE_URL
        url = f"{base}/{endpoint.lstrip('/')}"
        op = operation or f"{method.upper()} {endpoint}"
        tmo = self._timeout if timeout is None else timeout

        def once() -> Any:
            supplied = token is not None
            bearer = token if supplied else self.tokens.get_valid_token()
            resp = self._send(method, url, bearer, data=data, params=params, timeout=tmo, operation=op)
            if resp.status_code == 401 and not supplied:
                self.tokens.invalidate("401 from directory API")
                bearer = self.tokens.get_valid_token()
                resp = self._send(method, url, bearer, data=data, params=params, timeout=tmo, operation=op)
            if resp.status_code >= 400:
                self._raise_for(resp, op)
            if resp.status_code == 204 or not resp.content:
                return None
            return resp.json()

        return self.with_retry(once, max_retries=max_retries, delay=retry_delay)

    # --- directory operations ---
    def get_user_profile(self, token: str | None = None, user_id: str = "me") -> dict[str, Any]:
        path = "me" if user_id == "me" else f"users/{user_id}"
        return self.request(path, params={"$select": PROFILE_FIELDS}, token=token, operation="get user profile")

    def get_user_manager(self, user_id: str, token: str | None = None) -> dict[str, Any] | None:
        try:
            return self.request(f"users/{user_id}/manager", token=token, operation="get user manager")
        except GraphError as e:
            if e.status == 404:
                return None
            raise

    def get_user_direct_reports(self, user_id: str, token: str | None = None) -> list[dict[str, Any]]:
        body = self.request(f"users/{user_id}/directReports", token=token, operation="get direct reports")
        return (body or {}).get("value", [])

    def get_user_groups(self, user_id: str, token: str | None = None) -> list[dict[str, Any]]:
        body = self.request(f"users/{user_id}/memberOf", token=token, operation="get user groups")
        return (body or {}).get("value", [])

    def search_users(self, query: str, top: int = 10, token: str | None = None) -> list[dict[str, Any]]:
        safe = query.replace("'", "''")
        params = {
            "$filter": f"startswith(displayName,'{safe}') or startswith(mail,'{safe}') or startswith(userPrincipalName,'{safe}')",
            "$top": top,
            "$select": PROFILE_FIELDS,
        }
        body = self.request("users", params=params, token=token, operation="search users")
        return (body or {}).get("value", [])

    def create_user(self, user: dict[str, Any], token: str | None = None) -> dict[str, Any]:
        return self.request("users", method="POST", data=user, token=token, operation="create user")

    def update_user(self, user_id: str, changes: dict[str, Any], token: str | None = None) -> None:
        self.request(f"users/{user_id}", method="PATCH", data=changes, token=token, operation="update user")

    def delete_user(self, user_id: str, token: str | None = None) -> None:
        self.request(f"users/{user_id}", method="DELETE", token=token, operation="delete user")

    def assign_license(self, user_id: str, sku_id: str, token: str | None = None) -> dict[str, Any]:
        data = {"addLicenses": [{"skuId": sku_id, "disabledPlans": []}], "removeLicenses": []}
        return self.request(f"users/{user_id}/assignLicense", method="POST", data=data, token=token, operation="assign license")

    def remove_license(self, user_id: str, sku_id: str, token: str | None = None) -> dict[str, Any]:
        data = {"addLicenses": [], "removeLicenses": [sku_id]}
        return self.request(f"users/{user_id}/assignLicense", method="POST", data=data, token=token, operation="remove license")

    def get_user_licenses(self, user_id: str, token: str | None = None) -> list[dict[str, Any]]:
        body = self.request(f"users/{user_id}/licenseDetails", token=token, operation="get user licenses")
        return (body or {}).get("value", [])

    def get_organization(self, token: str | None = None) -> dict[str, Any] | None:
        body = self.request("organization", token=token, operation="get organization")
        values = (body or {}).get("value", [])
        return values[0] if values else None

    def get_available_skus(self, token: str | None = None) -> list[dict[str, Any]]:
        body = self.request("subscribedSkus", token=token, operation="get available SKUs")
        return (body or {}).get("value", [])


__all__ = ["GraphClient", "GraphError", "error_message", "validate_environment", "GRAPH_BASE_URL", "GRAPH_BETA_URL"]
