"""
Redis-Backed Session Store with Per-Field Advisory Locking

A session-state store layered on Redis:
- One hash per session, one packed value per top-level field
- Per-field distributed advisory locks (SETNX with steal-on-expiry)
- Nested path addressing ("profile.addresses.0.city") over field values
- Local mirror of top-level fields for cached reads

Example:
    >>> from redsession import SessionConfig, StaticSessionHost, create_session
    >>> session = create_session(SessionConfig(), StaticSessionHost())
    >>> await session.write("profile.name", "Alice")
    >>> await session.read("profile")
    {'name': 'Alice'}

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from redsession.core.types import (
    Result,
    Ok,
    Err,
)
from redsession.core.errors import (
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

from redsession.session import (
    SessionKey,
    LockService,
    LockTable,
    FieldStore,
    NOT_FOUND,
    SessionHost,
    StaticSessionHost,
    SessionCoordinator,
    MsgpackCodec,
    JsonCodec,
)
from redsession.storage import (
    KVBackendProtocol,
    InMemoryKVBackend,
    RedisConfig,
    create_kv_backend,
)
from redsession.default import (
    create_session,
    configure,
    get_session,
    set_session,
    shutdown,
)

__all__ = [
    # Version
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Errors
    "SessionError",
    "InvalidArgument",
    "InvalidPath",
    "PreconditionFailed",
    "LockContention",
    "SerializationError",
    "BackendUnavailable",
    "ConfigurationError",
    # Config
    "ArrayCompat",
    "SessionConfig",
    "RedisConfig",
    # Session
    "SessionKey",
    "LockService",
    "LockTable",
    "FieldStore",
    "NOT_FOUND",
    "SessionHost",
    "StaticSessionHost",
    "SessionCoordinator",
    "MsgpackCodec",
    "JsonCodec",
    # Storage
    "KVBackendProtocol",
    "InMemoryKVBackend",
    "create_kv_backend",
    # Default instance
    "create_session",
    "configure",
    "get_session",
    "set_session",
    "shutdown",
]
