"""Structured logging configuration for the DailyBalance Answer Engine."""

import logging
import sys
from typing import Any

# Per-turn fields promoted to top-level keys when passed via `extra=`
CONTEXT_FIELDS = ("turn_id", "user_id", "session_id", "stage")


class StructuredFormatter(logging.Formatter):
    """Render records as key=value pairs, context fields first."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
        }
        for field_name in CONTEXT_FIELDS:
            value = getattr(record, field_name, None)
            if value is not None:
                log_data[field_name] = value

        log_data["message"] = record.getMessage()
        log_data.update(getattr(record, "extra_data", None) or {})

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_for_env() -> int:
    try:
        from app.core.config import get_settings

        return logging.DEBUG if get_settings().ENGINE_ENV == "dev" else logging.INFO
    except Exception:
        # Settings can be incomplete at import time (missing keys in a shell)
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the structured stdout handler attached once.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())
    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with per-turn context.

    Keys in CONTEXT_FIELDS become top-level fields; anything else is appended
    as extra key=value data.
    """
    extra: dict[str, Any] = {name: kwargs.pop(name) for name in CONTEXT_FIELDS if name in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
