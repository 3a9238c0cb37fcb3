# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for Tribunal.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Correlation IDs so every step of one dispute action shares a tag
- Sanitized audit action logging
"""

from __future__ import annotations

import functools
import json
import logging
import sys
import uuid
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from .config import CoreSettings

F = TypeVar("F", bound=Callable[..., Any])

# Context variable for correlation ID (thread/async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Generate a new unique correlation ID."""
    return str(uuid.uuid4())


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for correlation ID scope.

    Args:
        correlation_id: Optional correlation ID to use. If None, generates a new one.

    Yields:
        The correlation ID being used.

    Example:
        with correlation_context() as cid:
            service.cast_jury_vote(...)  # every log line carries cid
    """
    cid = correlation_id or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def correlated(func: F) -> F:
    """Run ``func`` under a correlation ID.

    An ID already in scope is kept, so nested service calls and sweep
    items share the tag of the outermost action.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if _correlation_id.get() is not None:
            return func(*args, **kwargs)
        with correlation_context():
            return func(*args, **kwargs)

    return cast(F, wrapper)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments.

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

        # Source location for warnings and errors
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

        correlation_id = get_correlation_id()
        if correlation_id:
            short_cid = correlation_id[:8]
            if self.use_colors:
                cid_str = f"{self.CORRELATION_COLOR}[{short_cid}]{self.RESET} "
            else:
                cid_str = f"[{short_cid}] "
            record.msg = cid_str + str(record.msg)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int = "INFO",
    json_format: bool | None = None,
    log_file: str | None = None,
    config: CoreSettings | None = None,
) -> None:
    """Configure logging for Tribunal services.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to
        config: Settings to read overrides from (defaults to the cached
            process settings)

    Environment variables:
        TRIBUNAL_LOG_LEVEL: Override log level
        TRIBUNAL_LOG_FORMAT: Log format ("json" or "text", auto-detect if unset)
        TRIBUNAL_LOG_FILE: Log file path
    """
    if config is None:
        from .config import get_config

        config = get_config()

    level = config.log_level if level == "INFO" else level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # Always use JSON for file output
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


class AuditLogger:
    """Logger for dispute audit actions.

    Sanitizes action details before they are logged and persisted so
    credentials and oversized free text never reach the audit trail.
    """

    SENSITIVE_KEYS = {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "auth",
        "credential",
    }
    MAX_TEXT_LENGTH = 500

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("tribunal.audit")

    def log_action(
        self,
        dispute_id: str,
        action: str,
        actor_id: str | None,
        details: dict[str, Any] | None = None,
        level: int = logging.INFO,
    ) -> dict[str, Any]:
        """Log an audit action and return the sanitized details.

        Args:
            dispute_id: Dispute the action applies to
            action: Action name (e.g. ``escalated_to_tier2``)
            actor_id: User or system actor, None for scheduled sweeps
            details: Free-form action details (will be sanitized)
            level: Log level

        Returns:
            The sanitized details, suitable for persisting.
        """
        sanitized = self.sanitize(details or {})
        self.logger.log(
            level,
            f"Dispute {dispute_id}: {action}",
            extra={
                "extra_data": {
                    "dispute_id": dispute_id,
                    "action": action,
                    "actor_id": actor_id,
                    "details": sanitized,
                }
            },
        )
        return sanitized

    def sanitize(self, data: Any) -> Any:
        """Recursively redact sensitive keys and truncate long strings."""
        if isinstance(data, dict):
            result = {}
            for key, value in data.items():
                if any(s in str(key).lower() for s in self.SENSITIVE_KEYS):
                    result[key] = "[REDACTED]"
                else:
                    result[key] = self.sanitize(value)
            return result
        elif isinstance(data, list):
            return [self.sanitize(item) for item in data]
        elif isinstance(data, str) and len(data) > self.MAX_TEXT_LENGTH:
            return data[: self.MAX_TEXT_LENGTH] + "..."
        else:
            return data


# Default audit logger
audit_logger = AuditLogger()
