"""Structured logging configuration for agentcore.

Records are rendered as one JSON object per line. Agent and execution ids
bound through ``bind_context`` are lifted to top-level keys so log shippers
can index them; any other context keys stay under ``context``.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

ROOT_LOGGER_NAME = "agentcore"

CORRELATION_KEYS = ("agent_id", "execution_id", "workflow_name", "job_id")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON document per record, with correlation ids at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = dict(getattr(record, "context", None) or {})
        for key in CORRELATION_KEYS:
            if key in context:
                entry[key] = context.pop(key)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its bound context into the ``context`` extra."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["context"] = {**self.extra, **extra.get("context", {})}
        return msg, kwargs


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure the root logger for a worker process.

    Args:
        log_level: Level name. Defaults to LOG_LEVEL, then INFO.
        log_file: Rotating log file. Defaults to LOG_FILE, then logs/agentcore.log.
            Pass an empty string to log to stdout only.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if log_file is None:
        log_file = os.getenv("LOG_FILE", str(DEFAULT_LOG_PATH))

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JSONFormatter}},
            "handlers": handlers,
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            "root": {"level": level, "handlers": list(handlers)},
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def bind_context(logger: logging.Logger, **context) -> ContextAdapter:
    """Return an adapter that tags every record with ``context``."""
    return ContextAdapter(logger, context)
