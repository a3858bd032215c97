"""
Monitoring module: structured logging.
"""

from .logger import (
    TRACE,
    ContextLogger,
    JsonFormatter,
    LogCategory,
    LogFormat,
    TextFormatter,
    get_logger,
    log_trace,
    setup_logging,
)

__all__ = [
    "TRACE",
    "ContextLogger",
    "JsonFormatter",
    "LogCategory",
    "LogFormat",
    "TextFormatter",
    "get_logger",
    "log_trace",
    "setup_logging",
]
