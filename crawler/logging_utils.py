"""
Structured logging helpers for crawl workflows.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging for CLI entry points.
    """

    resolved = (level or os.getenv("CRAWLER_LOG_LEVEL", "INFO")).strip().upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=DEFAULT_LOG_FORMAT,
    )
