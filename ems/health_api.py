from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .crud_cache import get_cache
from .db import get_session
from .models import utcnow

log = logging.getLogger("ems")

bp = Blueprint("health_api", __name__)


def _database_ok() -> bool:
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        log.warning("Health check: database unreachable", exc_info=True)
        return False
    finally:
        db.close()


@bp.get("/health")
@bp.get("/api/v1/health")
def health() -> tuple[dict[str, Any], int]:
    database = _database_ok()
    body = {
        "success": True,
        "status": "ok" if database else "degraded",
        "cache": get_cache().is_connected(),
        "database": database,
        "timestamp": utcnow().isoformat() + "Z",
    }
    if current_app.config.get("DEBUG"):
        body["config"] = current_app.config.get("EMS_CONFIG_SUMMARY")
    return body, 200
