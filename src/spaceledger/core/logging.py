# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for spaceledger.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Correlation IDs for request tracing
- Field redaction for key material, signatures, tokens and session ids

Structured fields are passed as ``extra={"extra_data": {...}}``. Every
handler installed by :func:`configure_logging` carries a
:class:`RedactingFilter`, so callers never have to sanitize by hand.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for correlation ID (thread/async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

REDACTED = "[REDACTED]"

# Field names whose values are secret and never logged
SECRET_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "private_key",
        "key_material",
        "principal_key",
        "signature",
        "challenge_text",
        "payload",
    }
)

# Field names whose values are bearer identifiers, logged truncated
IDENTIFIER_FIELDS = frozenset({"session_id"})


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for correlation ID scope.

    Args:
        correlation_id: Optional correlation ID to use. If None, generates a new one.

    Yields:
        The correlation ID being used.
    """
    cid = correlation_id or str(uuid.uuid4())
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def mask_identifier(value: Any) -> Any:
    """Shorten a bearer identifier so it can be correlated but not replayed."""
    if isinstance(value, str) and len(value) > 8:
        return value[:8] + "…"
    return value


def redact(data: Any) -> Any:
    """Recursively redact sensitive fields from structured log data.

    Args:
        data: Data to sanitize

    Returns:
        Sanitized copy of data
    """
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if lowered in IDENTIFIER_FIELDS:
                result[key] = mask_identifier(value)
            elif any(s in lowered for s in SECRET_FIELDS):
                result[key] = REDACTED
            else:
                result[key] = redact(value)
        return result
    elif isinstance(data, (list, tuple)):
        return [redact(item) for item in data]
    elif isinstance(data, bytes):
        return f"<{len(data)} bytes>"
    elif isinstance(data, str) and len(data) > 500:
        return data[:500] + "..."
    return data


class RedactingFilter(logging.Filter):
    """Filter that sanitizes ``extra_data`` before any formatter sees it."""

    def filter(self, record: logging.LogRecord) -> bool:
        extra = getattr(record, "extra_data", None)
        if extra is not None:
            record.extra_data = redact(extra)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments.

    Produces structured logs that can be parsed by log aggregation tools.
    Includes correlation ID when present in context.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        # Add source location for errors
        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Standard log formatter for development.

    Human-readable format with colors for terminal output.
    Structured fields are appended as ``key=value`` pairs.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    CORRELATION_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)
        record.msg = record.getMessage()
        record.args = None

        extra = getattr(record, "extra_data", None)
        if extra:
            pairs = " ".join(f"{k}={v}" for k, v in extra.items())
            record.msg = f"{record.msg} [{pairs}]"

        correlation_id = get_correlation_id()
        if correlation_id:
            short_cid = correlation_id[:8]
            if self.use_colors:
                cid_str = f"{self.CORRELATION_COLOR}[{short_cid}]{self.RESET} "
            else:
                cid_str = f"[{short_cid}] "
            record.msg = cid_str + record.msg

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for spaceledger processes.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); config if None
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to

    Environment variables:
        SPACELEDGER_LOG_LEVEL: Default log level
        SPACELEDGER_LOG_FORMAT: Log format ("json" or "text", auto-detect if unset)
        SPACELEDGER_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            # Auto-detect: use JSON if not in a terminal
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter = JSONFormatter() if json_format else StandardFormatter()
    redactor = RedactingFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redactor)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # Always use JSON for file output
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(redactor)
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

