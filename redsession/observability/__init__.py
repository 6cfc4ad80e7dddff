"""
Observability module: structured logging.
"""

from redsession.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    LogLevel,
    setup_logging,
    configure_from,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "LogLevel",
    "setup_logging",
    "configure_from",
]
