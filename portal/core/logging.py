"""Structured logging configuration for the school portal.

Provides JSON-formatted logs for production with request and user context,
and a human-readable format for local development.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


# Record attributes copied into the JSON payload when present
CONTEXT_FIELDS = (
    "request_id", "user_id", "role", "path", "method", "status_code",
    "duration_ms", "error_type", "collection", "resource_id", "component",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation.

    Includes timestamp, level, message, module, function and any context
    fields passed through ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_obj[attr] = getattr(record, attr)

        return json.dumps(log_obj, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges a fixed context into every record.

    Example:
        >>> logger = ContextLogger(base_logger, {"component": "gateway"})
        >>> logger.info("Fetching classes")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use the JSON formatter (True for production)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        formatter = logging.Formatter(fmt)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Get a logger, wrapped in a ContextLogger when context is given.

    Example:
        >>> logger = get_logger(__name__, {"component": "client"})
        >>> logger.info("Session restored", extra={"user_id": "42"})
    """
    logger = logging.getLogger(name)

    if context:
        return ContextLogger(logger, context)

    return logger


class LogTimer:
    """Context manager for timing an operation and logging its duration.

    Example:
        >>> with LogTimer(logger, "list_assignments"):
        ...     docs = store.find("assignments")
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            duration = (datetime.now(timezone.utc) - self.start_time).total_seconds() * 1000

            if exc_type:
                # Expected portal errors (403, 404...) are not failures of the operation
                level = logging.INFO if getattr(exc_val, "status_code", 500) < 500 else logging.ERROR
                self.logger.log(
                    level,
                    f"{self.operation} aborted after {duration:.1f}ms: {exc_val}",
                    extra={"duration_ms": round(duration, 2), "error_type": exc_type.__name__},
                    exc_info=level >= logging.ERROR,
                )
            else:
                self.logger.debug(
                    f"{self.operation} completed in {duration:.1f}ms",
                    extra={"duration_ms": round(duration, 2)}
                )


# Initialize logging on module import (reconfigured by main.py)
setup_logging(
    level="INFO",
    json_format=False
)
