"""Structured JSON logging configuration."""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for per-event tracing
event_id_var: ContextVar[str | None] = ContextVar("event_id", default=None)
conversation_id_var: ContextVar[str | None] = ContextVar("conversation_id", default=None)
user_var: ContextVar[str | None] = ContextVar("user", default=None)
platform_var: ContextVar[str | None] = ContextVar("platform", default=None)

EXTRA_FIELDS = (
    "event_id",
    "conversation_id",
    "user",
    "platform",
    "plugin_id",
    "trigger_id",
    "action",
    "capability",
    "provider",
    "attempt",
    "max_retries",
    "queue_length",
    "phase",
    "state",
    "steps",
    "step_index",
    "pipeline_length",
    "explanation",
    "error",
    "error_code",
    "status",
    "duration_ms",
    "operation",
    "event_type",
    "metadata",
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add service from extra or derive from logger name
        log_data["service"] = getattr(record, "service", record.name.split(".")[0])

        # Add context from context variables
        if event_id := event_id_var.get():
            log_data["event_id"] = event_id
        if conversation_id := conversation_id_var.get():
            log_data["conversation_id"] = conversation_id
        if user := user_var.get():
            log_data["user"] = user
        if platform := platform_var.get():
            log_data["platform"] = platform

        for field in EXTRA_FIELDS:
            if hasattr(record, field) and getattr(record, field) is not None:
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class NamespaceFilter(logging.Filter):
    """Filter that enables debug logging for specific namespaces."""

    def __init__(self, debug_namespaces: list[str]):
        super().__init__()
        self.debug_namespaces = set(debug_namespaces)

    def filter(self, record: logging.LogRecord) -> bool:
        """Allow all INFO+ logs, but only DEBUG for enabled namespaces."""
        if record.levelno >= logging.INFO:
            return True
        namespace = record.name.split(".")[0]
        return namespace in self.debug_namespaces


def setup_logging(log_level: str = "INFO", debug_namespaces: list[str] | None = None) -> None:
    """Configure structured logging for the runtime.

    Args:
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR)
        debug_namespaces: List of namespaces to enable DEBUG logging for
    """

    debug_namespaces = debug_namespaces or []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(NamespaceFilter(debug_namespaces))
    handler.setLevel(logging.DEBUG if debug_namespaces else log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)  # Let handler level and filter decide

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("logging")
    logger.info(
        "Logging configured",
        extra={
            "service": "logging",
            "metadata": {"log_level": log_level, "debug_namespaces": debug_namespaces},
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically the component namespace)

    Returns:
        Configured logger instance
    """

    return logging.getLogger(name)


def set_event_context(
    event_id: str | None = None,
    conversation_id: str | None = None,
    user: str | None = None,
    platform: str | None = None,
) -> None:
    """Set context variables for the event currently being processed."""

    if event_id is not None:
        event_id_var.set(event_id)
    if conversation_id is not None:
        conversation_id_var.set(conversation_id)
    if user is not None:
        user_var.set(user)
    if platform is not None:
        platform_var.set(platform)


def clear_event_context() -> None:
    """Clear all event context variables."""

    event_id_var.set(None)
    conversation_id_var.set(None)
    user_var.set(None)
    platform_var.set(None)


__all__ = [
    "StructuredFormatter",
    "NamespaceFilter",
    "setup_logging",
    "get_logger",
    "set_event_context",
    "clear_event_context",
    "event_id_var",
    "conversation_id_var",
    "user_var",
    "platform_var",
]
