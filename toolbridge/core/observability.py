"""
Observability module for the tool bridge.

Provides:
- Structured logging with JSON format
- Compile context (the operation whose schema is being compiled)
- Prometheus metrics collection (schema compiler, tool catalog)

Usage:
    from toolbridge.core.observability import (
        compiling_operation,
        configure_structured_logging,
        metrics,
    )
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# ============================================================================
# Context Variables for Compile Tracking
# ============================================================================

# Operation whose parameter rules are being compiled or validated
_operation_ctx: ContextVar[str] = ContextVar("operation", default="")


def get_operation() -> str:
    """Get the current operation name from context."""
    return _operation_ctx.get()


def set_operation(operation: str) -> None:
    """Set the operation name for the current context."""
    _operation_ctx.set(operation)


@contextmanager
def compiling_operation(operation: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``operation``."""
    token = _operation_ctx.set(operation)
    try:
        yield
    finally:
        _operation_ctx.reset(token)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
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
        "getMessage",
        "message",
        "asctime",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - operation: Operation being compiled (if available)
    - exception: Exception type and message (if any)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python logging LogRecord

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        operation = get_operation()
        if operation:
            log_entry["operation"] = operation

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        extra_keys = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS}
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection.

    Metrics groups:
    - Compiler: compile outcomes, duration, schema size, field failures
    - Catalog: registered tools, argument validation outcomes
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize all metrics with proper labels."""
        self.registry = registry

        # -------------------------------------------------------------------
        # Compiler Metrics
        # -------------------------------------------------------------------

        self.schema_compilations_total = Counter(
            "schema_compilations_total",
            "Total schema compilations",
            ["status"],
            registry=self.registry,
        )

        self.schema_compile_duration_seconds = Histogram(
            "schema_compile_duration_seconds",
            "Schema compilation duration in seconds",
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self.registry,
        )

        self.schema_fields_compiled = Histogram(
            "schema_fields_compiled",
            "Number of top-level fields in a compiled schema",
            buckets=(1, 2, 5, 10, 25, 50, 100),
            registry=self.registry,
        )

        self.schema_field_errors_total = Counter(
            "schema_field_errors_total",
            "Fields that failed to compile",
            ["error_type"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Tool Catalog Metrics
        # -------------------------------------------------------------------

        self.tool_catalog_tools = Gauge(
            "tool_catalog_tools",
            "Tools currently registered in the catalog",
            registry=self.registry,
        )

        self.tool_argument_validations_total = Counter(
            "tool_argument_validations_total",
            "Tool argument validations",
            ["status"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)
