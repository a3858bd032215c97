"""
Structured logging for TA Chain.

Provides:
- JSON and human-readable log formats
- Contextual metadata and correlation IDs
- Log categories for different components
- Rotating file handler
- TRACE level logging for per-binding detail
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from uuid import uuid4


# =============================================================================
# TRACE Level Logging (below DEBUG)
# =============================================================================

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log at TRACE: option and input bindings, provider windows, loaded records."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore[attr-defined]


class LogCategory(str, Enum):
    """Log categories for different components."""

    SYSTEM = "SYSTEM"
    DATA = "DATA"
    INDICATOR = "INDICATOR"
    CHART = "CHART"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


# Record attributes set through ContextLogger, in output order.
CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "computation", "symbol")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, category: LogCategory = LogCategory.SYSTEM) -> None:
        super().__init__()
        self.category = category

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "category": getattr(record, "category", self.category.value),
            "message": record.getMessage(),
            "logger": record.name,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for field in CONTEXT_FIELDS + ("extra_data",):
            value = getattr(record, field, None)
            if value:
                log_data[field] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text for terminals.

    Example:
        2024-01-02 10:00:00.123 [INFO    ] [INDICATOR] [1f0c2a9e] [SMA] Computed SMA ...
    """

    def __init__(self, category: LogCategory = LogCategory.SYSTEM) -> None:
        super().__init__()
        self.category = category

    def format(self, record: logging.LogRecord) -> str:
        category = getattr(record, "category", self.category.value)
        parts = [
            _record_time(record).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"[{record.levelname:8s}]",
            f"[{category:9s}]",
        ]
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                # Correlation ids show their first eight characters.
                parts.append(f"[{value[:8] if field == 'correlation_id' else value}]")
        parts.append(record.getMessage())
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            parts.append(f"| {extra_data}")

        message = " ".join(parts)
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter with context support."""

    def __init__(
        self,
        logger: logging.Logger,
        category: LogCategory = LogCategory.SYSTEM,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the context logger.

        Args:
            logger: Base logger instance.
            category: Log category.
            correlation_id: Optional correlation ID for tracing one run.
            context: Fixed record attributes, e.g. ``computation``.
        """
        super().__init__(logger, {})
        self.category = category
        self.correlation_id = correlation_id or str(uuid4())
        self.context = dict(context or {})

    def process(
        self,
        msg: str,
        kwargs: dict[str, Any],
    ) -> tuple[str, dict[str, Any]]:
        """Attach category, correlation id and fixed context to the record."""
        extra = kwargs.get("extra", {})
        extra["category"] = self.category.value
        extra["correlation_id"] = self.correlation_id
        for key, value in self.context.items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(
        self,
        computation: str | None = None,
        symbol: str | None = None,
        **extra_data: Any,
    ) -> "ContextLogger":
        """Create a new logger with additional context.

        Args:
            computation: Computation name.
            symbol: Data symbol or file label.
            **extra_data: Additional context data.

        Returns:
            New ContextLogger sharing the correlation ID.
        """
        context = dict(self.context)
        if computation:
            context["computation"] = computation
        if symbol:
            context["symbol"] = symbol
        if extra_data:
            context["extra_data"] = {**context.get("extra_data", {}), **extra_data}
        return ContextLogger(self.logger, self.category, self.correlation_id, context)

    def trace(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log at TRACE level with context."""
        if self.isEnabledFor(TRACE):
            msg, kwargs = self.process(message, kwargs)
            self.logger.log(TRACE, msg, *args, **kwargs)


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level: {level}")
    return number


def setup_logging(
    level: str = "INFO",
    log_format: LogFormat = LogFormat.TEXT,
    log_file: str | Path | None = None,
) -> None:
    """Route all records to stderr, and to a rotating file when given.

    Replaces any handlers already on the root logger.

    Args:
        level: TRACE, DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_format: ``json`` or ``text``.
        log_file: Optional log file; parent directories are created.
    """
    formatter: logging.Formatter = (
        JsonFormatter() if LogFormat(log_format) == LogFormat.JSON else TextFormatter()
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3))

    root_logger = logging.getLogger()
    root_logger.setLevel(_level_number(level))
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


@lru_cache(maxsize=32)
def get_logger(
    name: str,
    category: LogCategory = LogCategory.SYSTEM,
    correlation_id: str | None = None,
) -> ContextLogger:
    """Get a context logger for a component.

    Args:
        name: Logger name.
        category: Log category.
        correlation_id: Optional correlation ID.

    Returns:
        ContextLogger instance.
    """
    base_logger = logging.getLogger(name)
    return ContextLogger(base_logger, category, correlation_id)


def log_trace(
    category: LogCategory,
    message: str,
    **kwargs: Any,
) -> None:
    """Log a trace-level message for per-binding debugging.

    Args:
        category: Log category.
        message: Log message.
        **kwargs: Additional context data.
    """
    logger = get_logger(f"ta_chain.{category.value.lower()}", category)
    logger.trace(message, extra={"extra_data": kwargs})
