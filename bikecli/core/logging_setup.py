from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any

# Libraries that log every request at INFO; the CLI only wants their warnings.
_CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn", "uvicorn.error", "alembic")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One compact JSON object per line, ``extra`` fields included."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_extras(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class ConsoleFormatter(logging.Formatter):
    """Short terminal lines: ``warning: message (key=value ...)``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()}: {record.getMessage()}"
        extras = record_extras(record)
        if extras:
            line += " (" + " ".join(f"{k}={v}" for k, v in extras.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "WARNING", fmt: str = "text") -> None:
    """Route all logging to stderr so command output on stdout stays clean."""
    level_name = (level or "WARNING").upper()
    library_level = "DEBUG" if level_name == "DEBUG" else "WARNING"
    formatter = "json" if (fmt or "").lower() == "json" else "console"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "bikecli.core.logging_setup.JsonFormatter"},
                "console": {"()": "bikecli.core.logging_setup.ConsoleFormatter"},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": formatter,
                    "level": level_name,
                }
            },
            "loggers": {name: {"level": library_level} for name in _CHATTY_LOGGERS},
            "root": {"handlers": ["stderr"], "level": level_name},
        }
    )
