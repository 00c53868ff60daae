"""Flask application factory.

Provides:
 - App factory with configuration override (dataclass fields, Flask config keys,
   and pre-built collaborators: ``cache``, ``rate_limiter``, ``token_cache``,
   ``identity_client``, ``graph_client``)
 - Startup configuration validation (skipped when TESTING)
 - DB engine initialization
 - Cache connection with disconnect at interpreter exit
 - Unified JSON error envelope {success: false, message}
 - Request id / timing headers and one structured log line per request
 - Blueprint registration
"""

from __future__ import annotations

import atexit
import logging
import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.wrappers.response import Response

from .auth import bp as auth_bp
from .dashboard_api import bp as dashboard_bp
from .cache import build_cache
from .config import Config
from .db import init_engine, remove_session
from .employees_api import bp as employees_bp
from .errors import register_error_handlers
from .graph_client import GraphClient
from .hardware_api import bp as hardware_bp
from .health_api import bp as health_bp
from .identity_client import IdentityClient
from .integrations_api import bp as integrations_bp
from .licenses_api import bp as licenses_bp
from .logging_setup import install_support_log_handler
from .metrics import reset_metrics, set_metrics
from .metrics_logging import LoggingMetrics
from .rate_limiter import build_rate_limiter
from .security import init_security
from .software_api import bp as software_bp
from .tickets_api import bp as tickets_bp
from .time_tracking_api import bp as time_tracking_bp
from .token_cache import TokenCache

log = logging.getLogger("ems")

SERVICE_KEYS = ("cache", "rate_limiter", "token_cache", "identity_client", "graph_client")


def _build_services(app: Flask, cfg: Config, provided: dict[str, Any]) -> None:
    cache = provided["cache"] if "cache" in provided else build_cache(cfg)
    if not cache.connect():
        log.warning("Cache backend %s not connected; reads will go to the database", cfg.cache_backend)
    atexit.register(cache.disconnect)
    app.cache = cache  # type: ignore[attr-defined]
    app.rate_limiter = provided.get("rate_limiter") or build_rate_limiter(cfg)  # type: ignore[attr-defined]

    tokens = provided["token_cache"] if "token_cache" in provided else TokenCache(
        tenant_id=cfg.tenant_id,
        client_id=cfg.client_id,
        client_secret=cfg.client_secret,
        timeout=cfg.graph_token_timeout_seconds,
        max_retries=cfg.graph_max_retries,
        retry_delay=cfg.graph_retry_delay_seconds,
    )
    app.token_cache = tokens  # type: ignore[attr-defined]
    app.identity_client = provided.get("identity_client") or IdentityClient(  # type: ignore[attr-defined]
        client_id=cfg.client_id,
        client_secret=cfg.client_secret,
        tenant_id=cfg.tenant_id,
    )
    app.graph_client = provided.get("graph_client") or GraphClient(  # type: ignore[attr-defined]
        tokens,
        timeout=cfg.graph_timeout_seconds,
        max_retries=cfg.graph_max_retries,
        retry_delay=cfg.graph_retry_delay_seconds,
    )


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    overrides = dict(config_override or {})
    provided = {k: overrides.pop(k) for k in SERVICE_KEYS if k in overrides}

    # --- Configuration ---
    cfg = Config.from_env()
    known = {k: v for k, v in overrides.items() if hasattr(cfg, k)}
    if known:
        cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    for k, v in overrides.items():  # also allow direct Flask config keys
        if k.isupper():
            app.config[k] = v
    if not app.config.get("TESTING"):
        cfg.validate()
    app.config["EMS_CONFIG_SUMMARY"] = cfg.redacted()
    log.info({"startup": True, **cfg.redacted()})

    # --- DB setup ---
    init_engine(cfg.database_url, force=bool(app.config.get("FORCE_DB_REINIT")))

    @app.teardown_appcontext
    def _remove_session(_exc: BaseException | None) -> None:
        remove_session()

    # --- Collaborators ---
    _build_services(app, cfg, provided)

    # --- Security middleware (CORS, headers) ---
    init_security(app)

    # --- Metrics backend wiring ---
    if cfg.metrics_backend == "log":
        set_metrics(LoggingMetrics())
        log.info("Metrics backend initialized: log")
    else:
        reset_metrics()

    install_support_log_handler()

    # --- Error handling ---
    register_error_handlers(app)

    # --- Request id + timing ---
    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        caller = getattr(g, "caller", None)
        log.info(
            {
                "request_id": rid,
                "user_id": caller.id if caller else None,
                "role": caller.role.value if caller else None,
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
            }
        )
        return resp

    # --- Blueprints ---
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(licenses_bp)
    app.register_blueprint(software_bp)
    app.register_blueprint(hardware_bp)
    app.register_blueprint(integrations_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(time_tracking_bp)
    app.register_blueprint(dashboard_bp)

    return app


__all__ = ["create_app"]
