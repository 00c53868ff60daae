from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$")

REQUIRED_ENV = ("JWT_SECRET", "JWT_REFRESH_SECRET", "CLIENT_ID", "CLIENT_SECRET", "TENANT_ID")


class ConfigError(Exception):
    """Raised at startup when required configuration is missing or malformed."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("invalid configuration: " + "; ".join(problems))


def _redis_url_from_parts() -> str:
    host = os.getenv("REDIS_HOST", "localhost")
    port = os.getenv("REDIS_PORT", "6379")
    password = os.getenv("REDIS_PASSWORD")
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/0"


def is_guid(value: str) -> bool:
    return bool(_GUID_RE.match(value or ""))


def is_tenant(value: str) -> bool:
    return is_guid(value) or bool(_DOMAIN_RE.match(value or ""))


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///ems.db"
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_issuer: str = "wellness-extract-auth"
    jwt_audience: str = "ems-api"
    jwt_access_ttl_seconds: int = 3600  # 1h
    jwt_refresh_ttl_seconds: int = 604800  # 7d
    jwt_leeway_seconds: int = 60
    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = ""
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:5000"
    redirect_uri: str = ""
    cors_allowed_origins: list[str] = field(default_factory=list)
    cache_backend: str = "redis"
    cache_prefix: str = ""
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_backend: str = "memory"
    rate_limit_prefix: str = "ems:rl:"
    graph_timeout_seconds: float = 10.0
    graph_token_timeout_seconds: float = 30.0
    graph_max_retries: int = 3
    graph_retry_delay_seconds: float = 1.0
    metrics_backend: str = "noop"

    @classmethod
    def from_env(cls) -> Config:
        frontend = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
        backend = os.getenv("BACKEND_URL", "http://localhost:5000").rstrip("/")
        cors = os.getenv("CORS_ALLOW_ORIGINS", "")
        origins = [o for o in [c.strip() for c in cors.split(",")] if o]
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///ems.db"),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", ""),
            jwt_issuer=os.getenv("JWT_ISSUER", "wellness-extract-auth"),
            jwt_audience=os.getenv("JWT_AUDIENCE", "ems-api"),
            jwt_access_ttl_seconds=int(os.getenv("JWT_ACCESS_TTL_SECONDS", "3600")),
            jwt_refresh_ttl_seconds=int(os.getenv("JWT_REFRESH_TTL_SECONDS", "604800")),
            jwt_leeway_seconds=int(os.getenv("JWT_LEEWAY_SECONDS", "60")),
            client_id=os.getenv("CLIENT_ID", ""),
            client_secret=os.getenv("CLIENT_SECRET", ""),
            tenant_id=os.getenv("TENANT_ID", ""),
            frontend_url=frontend,
            backend_url=backend,
            redirect_uri=os.getenv("REDIRECT_URI") or f"{backend}/api/v1/auth/redirect",
            cors_allowed_origins=origins,
            cache_backend=os.getenv("CACHE_BACKEND", "redis").strip().lower() or "redis",
            cache_prefix=os.getenv("CACHE_PREFIX", ""),
            redis_url=os.getenv("REDIS_URL") or _redis_url_from_parts(),
            rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "memory").strip().lower() or "memory",
            rate_limit_prefix=os.getenv("RATE_LIMIT_PREFIX", "ems:rl:"),
            graph_timeout_seconds=float(os.getenv("GRAPH_TIMEOUT_SECONDS", "10")),
            graph_token_timeout_seconds=float(os.getenv("GRAPH_TOKEN_TIMEOUT_SECONDS", "30")),
            graph_max_retries=int(os.getenv("GRAPH_MAX_RETRIES", "3")),
            graph_retry_delay_seconds=float(os.getenv("GRAPH_RETRY_DELAY_SECONDS", "1.0")),
            metrics_backend=os.getenv("METRICS_BACKEND", "noop").strip().lower() or "noop",
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def problems(self) -> list[str]:
        """Return every configuration problem; empty list means startable."""
        out: list[str] = []
        values = {
            "JWT_SECRET": self.jwt_secret,
            "JWT_REFRESH_SECRET": self.jwt_refresh_secret,
            "CLIENT_ID": self.client_id,
            "CLIENT_SECRET": self.client_secret,
            "TENANT_ID": self.tenant_id,
        }
        missing = [name for name in REQUIRED_ENV if not values[name]]
        if missing:
            out.append("missing required environment variables: " + ", ".join(missing))
        if self.client_id and not is_guid(self.client_id):
            out.append("CLIENT_ID must be a GUID")
        if self.tenant_id and not is_tenant(self.tenant_id):
            out.append("TENANT_ID must be a GUID or domain name")
        return out

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigError(problems)

    def redacted(self) -> dict[str, object]:
        return {
            "client_id": (self.client_id[:8] + "...") if self.client_id else None,
            "tenant_id": self.tenant_id or None,
            "authority": f"https://login.microsoftonline.com/{self.tenant_id}",
            "redirect_uri": self.redirect_uri,
            "frontend_url": self.frontend_url,
            "cache_backend": self.cache_backend,
            "rate_limit_backend": self.rate_limit_backend,
        }

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "CORS_ALLOWED_ORIGINS": self.cors_allowed_origins or [self.frontend_url],
            "JWT_SECRET": self.jwt_secret,
            "JWT_REFRESH_SECRET": self.jwt_refresh_secret,
            "JWT_ISSUER": self.jwt_issuer,
            "JWT_AUDIENCE": self.jwt_audience,
            "JWT_ACCESS_TTL_SECONDS": self.jwt_access_ttl_seconds,
            "JWT_REFRESH_TTL_SECONDS": self.jwt_refresh_ttl_seconds,
            "JWT_LEEWAY_SECONDS": self.jwt_leeway_seconds,
            "FRONTEND_URL": self.frontend_url,
            "BACKEND_URL": self.backend_url,
            "REDIRECT_URI": self.redirect_uri,
            "METRICS_BACKEND": self.metrics_backend,
            "JSON_SORT_KEYS": False,
        }
