"""
CareBundle Logging Setup

Library modules log through `logging.getLogger(__name__)` and never
configure handlers themselves. Applications (and the CLI) call
configure_logging() once.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from .settings import Settings, get_settings


ROOT_LOGGER = "carebundle"

# Extra record attributes copied into JSON output when present
EXTRA_FIELDS: tuple[str, ...] = (
    "algorithm",
    "cap_name",
    "axis",
    "category",
    "path",
    "error",
    "patient_id",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """
    Install a single stream handler on the carebundle logger.

    Calling it again replaces the handler instead of stacking another.

    Args:
        level: Logging level name
        fmt: "json" for JSONFormatter, anything else for plain text

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for existing in list(logger.handlers):
        if getattr(existing, "_carebundle_handler", False):
            logger.removeHandler(existing)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    handler._carebundle_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


def configure_from_settings(settings: Optional[Settings] = None) -> logging.Logger:
    """Configure logging from CB_LOG_LEVEL and CB_LOG_FORMAT."""
    settings = settings or get_settings()
    return configure_logging(settings.log_level, settings.log_format)
