"""Structured logging configuration."""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict


# Extra attributes copied onto the JSON line when passed via `extra=`
CONTEXT_FIELDS = ("tenant_id", "user_id", "vehicle_id", "event_type", "request_id")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console handler with JSON formatter
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def context_extra(ctx=None, **fields: Any) -> Dict[str, Any]:
    """`extra=` mapping for a log call made on behalf of a tenant context.

    ``ctx`` is anything with ``tenant_id`` and ``user_id`` attributes; None
    values in ``fields`` are dropped.
    """
    extra: Dict[str, Any] = {}
    if ctx is not None:
        extra["tenant_id"] = ctx.tenant_id
        extra["user_id"] = ctx.user_id
    extra.update({key: value for key, value in fields.items() if value is not None})
    return extra


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
