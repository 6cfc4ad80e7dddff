"""
Configuration Management for redsession

Provides validated configuration with sensible defaults.
Supports a settings mapping merged over defaults and environment
variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from redsession.core import constants as C
from redsession.core.errors import ConfigurationError
from redsession.core.types import Result, Ok, Err
from redsession.storage.config import RedisConfig


class ArrayCompat(Enum):
    """
    How a host integration exposes session data to legacy code.

    Not interpreted by the core; carried so host adapters can read it.
    """
    OBJECT = "object"
    POPULATE = "populate"

    @classmethod
    def parse(cls, value: Any) -> Optional[ArrayCompat]:
        if value in (None, "", False):
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError.invalid(
                "session_array_compat", f"expected 'object' or 'populate', got {value!r}"
            ) from None


@dataclass(frozen=True)
class SessionConfig:
    """Root configuration for a session store."""

    # Backend connection
    redis_host: str = C.REDIS_DEFAULT_HOST
    redis_port: int = C.REDIS_DEFAULT_PORT
    redis_database: int = C.REDIS_DEFAULT_DATABASE

    # Session namespace and lifecycle
    session_name: Optional[str] = None
    session_start: bool = False
    session_ttl_seconds: int = C.SESSION_DEFAULT_TTL_SECONDS
    session_array_compat: Optional[ArrayCompat] = None

    # Locking
    lock_timeout: int = C.LOCK_DEFAULT_TIMEOUT
    lock_max_attempts: int = C.LOCK_DEFAULT_MAX_ATTEMPTS
    lock_retry_interval: float = C.LOCK_RETRY_SLEEP

    # Serialization
    compress_threshold: int = C.COMPRESSION_THRESHOLD

    # Diagnostics
    logfile: Optional[Path] = None
    debug: bool = False

    def __post_init__(self) -> None:
        if self.session_ttl_seconds <= 0:
            raise ConfigurationError.invalid("session_ttl_seconds", "must be > 0")
        if self.lock_timeout < 0:
            raise ConfigurationError.invalid("lock_timeout", "must be >= 0")
        if self.lock_max_attempts < 1:
            raise ConfigurationError.invalid("lock_max_attempts", "must be >= 1")
        if self.lock_retry_interval < 0:
            raise ConfigurationError.invalid("lock_retry_interval", "must be >= 0")
        if self.compress_threshold < 0:
            raise ConfigurationError.invalid("compress_threshold", "must be >= 0")

    @classmethod
    def from_mapping(cls, settings: Optional[Mapping[str, Any]] = None) -> SessionConfig:
        """
        Merge a settings mapping over the defaults.

        Unknown keys raise ConfigurationError.
        """
        settings = dict(settings or {})
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(settings) - known)
        if unknown:
            raise ConfigurationError.invalid(unknown[0], "unknown option")

        if "session_array_compat" in settings:
            settings["session_array_compat"] = ArrayCompat.parse(settings["session_array_compat"])
        if settings.get("logfile"):
            settings["logfile"] = Path(settings["logfile"])
        else:
            settings.pop("logfile", None)
        if not settings.get("session_name"):
            settings.pop("session_name", None)
        return cls(**settings)

    @classmethod
    def from_env(cls) -> Result[SessionConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with REDSESSION_.
        Example: REDSESSION_REDIS_HOST, REDSESSION_SESSION_NAME
        """
        def _get(key: str, default: str = "") -> str:
            return os.getenv(f"{C.ENV_PREFIX}{key}", default)

        try:
            return Ok(cls(
                redis_host=_get("REDIS_HOST", C.REDIS_DEFAULT_HOST),
                redis_port=int(_get("REDIS_PORT", str(C.REDIS_DEFAULT_PORT))),
                redis_database=int(_get("REDIS_DATABASE", str(C.REDIS_DEFAULT_DATABASE))),
                session_name=_get("SESSION_NAME") or None,
                session_start=_get("SESSION_START").lower() in ("1", "true", "yes"),
                session_ttl_seconds=int(
                    _get("SESSION_TTL_SECONDS", str(C.SESSION_DEFAULT_TTL_SECONDS))
                ),
                session_array_compat=ArrayCompat.parse(_get("SESSION_ARRAY_COMPAT")),
                lock_timeout=int(_get("LOCK_TIMEOUT", str(C.LOCK_DEFAULT_TIMEOUT))),
                lock_max_attempts=int(
                    _get("LOCK_MAX_ATTEMPTS", str(C.LOCK_DEFAULT_MAX_ATTEMPTS))
                ),
                lock_retry_interval=float(
                    _get("LOCK_RETRY_INTERVAL", str(C.LOCK_RETRY_SLEEP))
                ),
                logfile=Path(_get("LOGFILE")) if _get("LOGFILE") else None,
                debug=_get("DEBUG").lower() in ("1", "true", "yes"),
            ))
        except (ValueError, TypeError, ConfigurationError) as e:
            return Err(f"Configuration error: {e}")

    def with_overrides(self, **kwargs: Any) -> SessionConfig:
        """Return a copy with the given options replaced (validated again)."""
        return dataclasses.replace(self, **kwargs)

    def redis_config(self) -> RedisConfig:
        """Backend connection settings derived from this config."""
        return RedisConfig(
            host=self.redis_host,
            port=self.redis_port,
            db=self.redis_database,
        )
