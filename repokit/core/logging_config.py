"""
Structured JSON logging configuration.

This module sets up JSON logging for applications embedding repokit:
- Consistent field names across all logs
- Backend and collection/table tracking
- Operation names and latencies for primitive calls
- Transaction correlation IDs

Library modules only call ``get_logger(__name__)``; handlers are installed
by the application through ``setup_logging()``, which reads
``REPOKIT_LOG_LEVEL`` and ``REPOKIT_LOG_JSON`` when called without arguments.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from repokit.core.config import settings


# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Outputs log records as single-line JSON objects with consistent fields:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - message: Log message
    - logger: Logger name (module path)
    - backend: "mongo" or "postgres" (if available)
    - collection / table: Target of the operation (if available)
    - operation: Repository primitive name (if available)
    - transaction_id: Transaction correlation ID (if available)
    - latency_ms: Primitive latency in milliseconds (if available)
    - exception: Exception details (if exception occurred)

    Example output:
        {"timestamp": "2026-10-17T10:30:00.123456+00:00", "level": "DEBUG",
         "message": "find_many", "logger": "repokit.repositories.sql",
         "backend": "postgres", "table": "users", "latency_ms": 1.8}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        # Fields passed via logger.debug("msg", extra={...})
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in log_data:
                continue
            if value is not None:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None
) -> None:
    """
    Configure application logging.

    Sets up the root logger with a single stdout handler, replacing any
    existing handlers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            defaults to settings.log_level
        json_format: Use JSON formatter (True) or simple formatter (False);
            defaults to settings.log_json

    Example:
        setup_logging()  # REPOKIT_LOG_LEVEL / REPOKIT_LOG_JSON
        setup_logging(level="DEBUG", json_format=False)
    """
    if level is None:
        level = settings.log_level
    if json_format is None:
        json_format = settings.log_json

    root_logger = logging.getLogger()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Suppress noisy driver loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance with given name.

    Args:
        name: Logger name (usually __name__ of the module)
    """
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    backend: Optional[str] = None,
    operation: Optional[str] = None,
    collection: Optional[str] = None,
    table: Optional[str] = None,
    transaction_id: Optional[str] = None,
    latency_ms: Optional[float] = None,
    **extra_fields: Any
) -> None:
    """
    Log message with structured repository context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        backend: "mongo" or "postgres"
        operation: Primitive or repository operation name
        collection: Mongo collection name
        table: SQL table name
        transaction_id: Transaction correlation ID
        latency_ms: Latency in milliseconds
        **extra_fields: Additional fields to include

    Example:
        log_with_context(
            logger,
            "debug",
            "primitive completed",
            backend="postgres",
            operation="update_many",
            table="users",
            latency_ms=3.2,
        )
    """
    extra: Dict[str, Any] = {}

    if backend is not None:
        extra["backend"] = backend
    if operation is not None:
        extra["operation"] = operation
    if collection is not None:
        extra["collection"] = collection
    if table is not None:
        extra["table"] = table
    if transaction_id is not None:
        extra["transaction_id"] = transaction_id
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms

    extra.update(extra_fields)

    log_method = getattr(logger, level.lower())
    log_method(message, extra=extra)
