"""Structured logging configuration (JSON or text format)."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .config import LoggingConfig

_EXTRA_FIELDS = (
    "instance_id", "target_group", "port", "elapsed_seconds",
    "status_code", "attempts", "signal",
)


class JSONFormatter(logging.Formatter):
    """Emits log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge structured extra fields
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val

        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for interactive use."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class ContextFilter(logging.Filter):
    """Stamps the registrar's fixed context (target group, port) on every record that lacks it."""

    def __init__(self, **fields) -> None:
        super().__init__()
        self._fields = {key: val for key, val in fields.items() if val}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, val in self._fields.items():
            if getattr(record, key, None) is None:
                setattr(record, key, val)
        return True


def configure_logging(
    config: LoggingConfig,
    *,
    target_group: str | None = None,
    port: int | None = None,
) -> None:
    """Set up the root logger based on configuration.

    target_group and port, when given, are attached to every record so JSON
    output from all modules can be filtered by the target being managed.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if config.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())
    handler.addFilter(ContextFilter(target_group=target_group, port=port))

    root.addHandler(handler)

    # Suppress noisy loggers
    for noisy in ("boto3", "botocore", "urllib3", "s3transfer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
