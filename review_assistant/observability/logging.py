"""
Structured logging configuration.

Provides JSON-formatted logging with context management for
better observability in production environments.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from review_assistant.config import Settings


# Context variable for storing request/operation context
log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Formats log records as JSON with additional context fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = log_context.get()
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        # Add source location for errors and above
        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """
    Human-readable formatter with context.

    Used for development/debugging with better readability.
    """

    def format(self, record: logging.LogRecord) -> str:
        base_msg = super().format(record)

        context = log_context.get()
        if context:
            context_str = " ".join(f"{k}={v}" for k, v in context.items())
            base_msg = f"{base_msg} [{context_str}]"

        return base_msg


def setup_logging(settings: Settings) -> None:
    """
    Configure application logging.

    Sets up structured JSON logging for production or human-readable
    logging for development.

    Args:
        settings: Application settings
    """
    log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = ContextFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set levels for noisy libraries
    for noisy in ("httpx", "httpcore", "urllib3", "boto3", "botocore", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        f"Logging configured: level={settings.LOG_LEVEL}, "
        f"environment={settings.ENVIRONMENT}"
    )


class LogContext:
    """
    Context manager for adding structured context to logs.

    Usage:
        with LogContext(session_id="abc", operation="review"):
            logger.info("Reviewing code")  # Includes context in log
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self.token = None

    def __enter__(self):
        current = log_context.get().copy()
        current.update(self.context)
        self.token = log_context.set(current)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token:
            log_context.reset(self.token)


def add_log_context(**kwargs) -> None:
    """Add fields to the current log context."""
    current = log_context.get().copy()
    current.update(kwargs)
    log_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return log_context.get().copy()
