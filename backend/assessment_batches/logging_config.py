"""
Structured JSON logging configuration (Monolog-style).

Provides structured logging with channels (http, db, batches, edits, commit,
delete, export), request ID tracking, and context-rich log entries. All log
output is valid JSON written to stdout for container log aggregation.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from assessment_batches.config import LOG_LEVEL

# ──────────────────────────────────────────────────────────────
# Context variable to track request ID across async operations.
# Each incoming HTTP request gets a unique UUID, which is then
# attached to every log entry produced during that request.
# ──────────────────────────────────────────────────────────────
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# ──────────────────────────────────────────────────────────────
# Log channels. Every service module logs through exactly one.
# ──────────────────────────────────────────────────────────────
CHANNELS = ["http", "db", "batches", "edits", "commit", "delete", "export"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Custom logging formatter that outputs Monolog-style JSON log entries.

    Each log line is a single JSON object containing:
    - timestamp: ISO 8601 timestamp in UTC
    - level: Log severity (INFO, WARNING, ERROR, DEBUG)
    - message: Human-readable log message
    - channel: Log source category (http, db, batches, edits, commit, delete, export)
    - context: Business context (request_id, batch_key, record_id, session_id)
    - extra: Additional metadata (ip, duration_ms, counts)
    - exception: Formatted traceback, only when one was attached
    """

    def format(self, record: logging.LogRecord) -> str:
        # Build the structured log entry
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """
    Configure the root logger and all channel-specific loggers.

    Sets up:
    - Root logger with structured JSON formatter
    - Channel loggers: http, db, batches, edits, commit, delete, export
    - All output directed to stdout (container-friendly)
    """
    # Create the JSON formatter
    formatter = StructuredJsonFormatter()

    # Configure stdout handler
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    # Channel loggers inherit the root handler but keep distinct names
    # so log entries can be filtered by channel
    for channel in CHANNELS:
        logger = logging.getLogger(f"batches_app.{channel}")
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """
    Get a channel-specific logger.

    Args:
        channel: Log channel name (http, db, batches, edits, commit, delete, export)

    Returns:
        Logger instance for the specified channel
    """
    return logging.getLogger(f"batches_app.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None, exc_info: bool = False):
    """
    Emit a structured log entry with business context and extra metadata.

    This is the primary logging function used throughout the application.
    It attaches business context (batch_key, record_id, session_id) and
    extra metadata (duration_ms, counts) to each log entry.

    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business context dict (batch_key, record_id, session_id)
        extra_data: Additional metadata dict (duration_ms, counts)
        exc_info: Attach the exception currently being handled
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    # Use the `extra` parameter to pass structured data to the formatter
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
