"""
Core Type Definitions for redsession

Implements a small Result/Either monad used where failure is an expected,
value-level outcome (configuration loading, parsing), and a nanosecond
timestamp used to stamp errors for log correlation.

Design Principles:
- Expected, recoverable failures are values (Ok/Err or bool)
- Caller and infrastructure failures are exceptions (see core.errors)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import (
    Any,
    Generic,
    Literal,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable, hashable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Immutable container for error information.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision wall-clock timestamp.

    Stores nanoseconds since Unix epoch. Carried by every SessionError.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current time with nanosecond precision."""
        return cls(nanos=time.time_ns())

    @property
    def seconds(self) -> float:
        """Convert to floating-point seconds."""
        return self.nanos / 1_000_000_000

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"
