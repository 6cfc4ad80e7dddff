"""
Error Hierarchy for redsession

Design Principles:
- Lock contention is expected and frequent, so it is a boolean result,
  not an exception (LockContention is only raised by context managers)
- Argument and precondition errors fail fast at the API boundary
- Backend and serialization errors propagate unmodified to the caller
- Carry error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with logs

Usage:
    try:
        await session.write("profile.name", "Alice")
    except BackendUnavailable as exc:
        logger.warning("session store down", error=exc.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from redsession.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by concern:
    - 1xxx: Caller errors
    - 2xxx: Session lifecycle errors
    - 3xxx: Locking errors
    - 4xxx: Storage errors
    - 9xxx: Internal/configuration errors
    """

    # Caller errors (1xxx)
    INVALID_ARGUMENT = 1001
    INVALID_PATH = 1002
    UNKNOWN_KEY_TEMPLATE = 1003

    # Session lifecycle (2xxx)
    SESSION_NOT_ACTIVE = 2001
    SESSION_NOT_CONFIGURED = 2002

    # Locking (3xxx)
    LOCK_CONTENTION = 3001

    # Storage (4xxx)
    STORAGE_SERIALIZATION = 4001
    STORAGE_UNAVAILABLE = 4002
    STORAGE_TIMEOUT = 4003

    # Internal (9xxx)
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionError(Exception):
    """
    Base class for all redsession errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Initialize Exception base class with message
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> SessionError:
        """Add context to error (returns new instance of the same type)."""
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CALLER ERRORS
# =============================================================================
@dataclass
class InvalidArgument(SessionError):
    """Empty or malformed key, path or identifier. Never retried."""

    @classmethod
    def empty(cls, name: str = "key") -> InvalidArgument:
        return cls(
            code=ErrorCode.INVALID_ARGUMENT,
            message=f"{name.capitalize()} cannot be empty",
            context={"argument": name},
        )

    @classmethod
    def empty_session_identity(cls) -> InvalidArgument:
        return cls(
            code=ErrorCode.INVALID_ARGUMENT,
            message="Empty session name or session id",
        )

    @classmethod
    def unknown_key_template(cls, template: str) -> InvalidArgument:
        return cls(
            code=ErrorCode.UNKNOWN_KEY_TEMPLATE,
            message=f"Key template '{template}' doesn't exist",
            context={"template": template},
        )

    @classmethod
    def wrong_type(cls, name: str, expected: str, got: Any) -> InvalidArgument:
        return cls(
            code=ErrorCode.INVALID_ARGUMENT,
            message=f"Invalid {name}: expected {expected}, got {type(got).__name__}",
            context={"argument": name, "expected": expected},
        )


@dataclass
class InvalidPath(InvalidArgument):
    """Path cannot be resolved to a field or node."""

    @classmethod
    def for_path(cls, path: Any, reason: str = "") -> InvalidPath:
        message = f"Invalid path specified '{path if path is not None else ''}'"
        if reason:
            message = f"{message}: {reason}"
        return cls(
            code=ErrorCode.INVALID_PATH,
            message=message,
            context={"path": path},
        )


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================
@dataclass
class PreconditionFailed(SessionError):
    """Operation invoked without an active session context."""

    @classmethod
    def session_not_active(cls, operation: str) -> PreconditionFailed:
        return cls(
            code=ErrorCode.SESSION_NOT_ACTIVE,
            message=f"Cannot {operation}: no active session",
            context={"operation": operation},
        )

    @classmethod
    def not_configured(cls) -> PreconditionFailed:
        return cls(
            code=ErrorCode.SESSION_NOT_CONFIGURED,
            message="Default session has not been configured",
        )


# =============================================================================
# LOCKING ERRORS
# =============================================================================
@dataclass
class LockContention(SessionError):
    """
    Lock acquisition exhausted its attempts.

    `LockService.acquire` reports contention as False. This exception is
    only raised by context-manager helpers that cannot return a value.
    """

    @classmethod
    def exhausted(cls, key: str, attempts: int) -> LockContention:
        return cls(
            code=ErrorCode.LOCK_CONTENTION,
            message=f"Could not acquire lock '{key}' after {attempts} attempts",
            context={"key": key, "attempts": attempts},
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class SerializationError(SessionError):
    """Stored field could not be decoded, or a value could not be encoded."""

    @classmethod
    def decode_failed(
        cls,
        field_name: str,
        record_key: str,
        cause: Optional[Exception] = None,
    ) -> SerializationError:
        return cls(
            code=ErrorCode.STORAGE_SERIALIZATION,
            message=f"Failed to decode field '{field_name}' of {record_key}",
            cause=cause,
            context={"field": field_name, "record_key": record_key},
        )

    @classmethod
    def encode_failed(
        cls,
        field_name: str,
        cause: Optional[Exception] = None,
    ) -> SerializationError:
        return cls(
            code=ErrorCode.STORAGE_SERIALIZATION,
            message=f"Failed to encode value for field '{field_name}'",
            cause=cause,
            context={"field": field_name},
        )


@dataclass
class BackendUnavailable(SessionError):
    """The remote key-value store is unreachable."""

    @classmethod
    def connection_failed(
        cls,
        host: str,
        port: int,
        cause: Optional[Exception] = None,
    ) -> BackendUnavailable:
        return cls(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=f"Failed to reach key-value store at {host}:{port}",
            cause=cause,
            context={"host": host, "port": port},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        cause: Optional[Exception] = None,
    ) -> BackendUnavailable:
        return cls(
            code=ErrorCode.STORAGE_TIMEOUT,
            message=f"Key-value operation '{operation}' timed out",
            cause=cause,
            context={"operation": operation},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(SessionError):
    """Invalid configuration value."""

    @classmethod
    def invalid(cls, option: str, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Invalid configuration '{option}': {reason}",
            context={"option": option},
        )
