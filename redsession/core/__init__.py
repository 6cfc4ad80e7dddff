"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the session store:
- Result/Either monad for configuration loading
- Error hierarchy with error codes and context
- Configuration management with validation
"""

from redsession.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from redsession.core.errors import (
    ErrorCode,
    SessionError,
    InvalidArgument,
    InvalidPath,
    PreconditionFailed,
    LockContention,
    SerializationError,
    BackendUnavailable,
    ConfigurationError,
)
from redsession.core.config import ArrayCompat, SessionConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ErrorCode",
    "SessionError",
    "InvalidArgument",
    "InvalidPath",
    "PreconditionFailed",
    "LockContention",
    "SerializationError",
    "BackendUnavailable",
    "ConfigurationError",
    "ArrayCompat",
    "SessionConfig",
]
