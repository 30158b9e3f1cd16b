"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .config import get_settings


class MinimalJSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string."""

    _RESERVED_KEYS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z")
        )

        log_record: dict[str, Any] = {
            "ts": timestamp,
            "level": record.levelname,
            "logger": record.name,
        }

        if isinstance(record.msg, dict):
            log_record.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                log_record["message"] = message

        if record.exc_info and "exc" not in log_record:
            log_record["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._RESERVED_KEYS or key.startswith("_"):
                continue
            log_record[key] = value

        return json.dumps(log_record, ensure_ascii=False, default=str)


def build_logging_config(level: str = "INFO", log_dir: Optional[str] = None) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for the service."""

    handlers: dict[str, Any] = {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    }
    audit_handlers = ["default"]
    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handlers["generation_audit"] = {
            "class": "logging.FileHandler",
            "filename": str(directory / "generation_audit.log"),
            "mode": "a",
            "encoding": "utf-8",
            "formatter": "json",
        }
        audit_handlers = ["generation_audit"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": handlers,
        "root": {
            "level": level,
            "handlers": ["default"],
        },
        "loggers": {
            "examgen.generation.audit": {
                "level": "INFO",
                "handlers": audit_handlers,
                "propagate": False,
            }
        },
    }


def configure_logging() -> None:
    """Configure application logging with JSON formatting."""

    settings = get_settings()
    logging.config.dictConfig(build_logging_config(settings.log_level, settings.log_dir))


__all__ = ["MinimalJSONFormatter", "build_logging_config", "configure_logging"]
