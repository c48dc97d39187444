"""
OpsGuard Structured Logging

Provides a configured logger for the OpsGuard engine using stdlib logging
with structured context.

Usage:
    from opsguard.logging import get_logger

    logger = get_logger("opsguard.engine")
    logger.info("Tool executed", extra={"tool_name": "get_delivery", "actor_id": "7"})

For production, configure with JSON output:
    from opsguard.logging import configure_logging
    configure_logging(json_output=True, level="INFO")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any

# Structured fields lifted from `extra=` into the rendered record
CONTEXT_FIELDS = (
    "request_id",
    "actor_id",
    "role",
    "tool_name",
    "error_kind",
    "duration_ms",
    "iteration",
    "status",
    "provider",
)


class OpsGuardFormatter(logging.Formatter):
    """Structured log formatter.

    Outputs either human-readable or JSON format depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = getattr(value, "value", value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_keys = {
            k: v
            for k, v in log_data.items()
            if k not in ("timestamp", "level", "logger", "message", "exception")
        }
        extra_str = ""
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        line = (
            f"[{log_data['timestamp']}] {record.levelname:8s} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )
        if "exception" in log_data:
            line += "\n" + log_data["exception"]
        return line


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Configure OpsGuard logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to OPSGUARD_LOG_LEVEL or INFO.
        json_output: Emit one JSON object per line. Defaults to
            OPSGUARD_LOG_JSON.
    """
    if level is None:
        level = os.environ.get("OPSGUARD_LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("OPSGUARD_LOG_JSON", "").lower() in ("1", "true", "yes")

    root_logger = logging.getLogger("opsguard")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(OpsGuardFormatter(json_output=json_output))
    root_logger.addHandler(handler)

    root_logger.propagate = False


def get_logger(name: str = "opsguard") -> logging.Logger:
    """Get an OpsGuard logger instance.

    Args:
        name: Logger name (usually module path like "opsguard.engine").
    """
    return logging.getLogger(name)


configure_logging()
