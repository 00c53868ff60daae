from __future__ import annotations

import logging
from collections.abc import Mapping

logger = logging.getLogger("ems.metrics")


class LoggingMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:  # pragma: no cover - trivial
        ordered = dict(sorted((tags or {}).items()))
        logger.info("metric name=%s tags=%s", name, ordered)
