"""Support log ring buffer.

Captures WARN+ log records with the associated request_id (if in a request
context) into an in-memory deque for troubleshooting without external log
aggregation.
"""

from __future__ import annotations

import collections
import logging
import time

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=500)


class SupportLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        if has_request_context():
            rid = getattr(g, "request_id", "-")
            path = request.path
        else:
            rid = path = "-"
        LOG_BUFFER.append(
            {
                "ts": time.time(),
                "level": record.levelname,
                "logger": record.name,
                "msg": self.format(record),
                "request_id": rid,
                "path": path,
            }
        )


def install_support_log_handler() -> None:
    root = logging.getLogger()
    # Avoid duplicate attachment across create_app calls
    if any(isinstance(h, SupportLogHandler) for h in root.handlers):
        return
    h = SupportLogHandler(level=logging.WARNING)
    h.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(h)


def recent(level: str | None = None, limit: int = 100) -> list[dict]:
    rows = [r for r in LOG_BUFFER if level is None or r["level"] == level.upper()]
    return rows[-limit:]


__all__ = ["LOG_BUFFER", "install_support_log_handler", "recent"]
