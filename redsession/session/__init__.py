"""
Session Module: Lock-Aware, Path-Addressed Session State

Provides:
- paths: nested reads and writes by dotted path
- SessionKey: record and lock key derivation
- LockService: SETNX advisory locks with steal-on-expiry
- FieldStore: hash-per-session record of packed fields
- SessionCoordinator: the user-facing session API with a local mirror

Architecture:
- Storage: one Redis hash per session, one string key per held lock
- Coordination: per-field advisory locks, polled at a fixed interval
- Hot Path: local mirror for cached reads, no I/O
"""

from redsession.session import paths
from redsession.session.keys import (
    SessionKey,
    name_digest,
    session_key,
    lock_key,
)
from redsession.session.lock import (
    LockService,
    LockTable,
    format_lock_value,
    parse_lock_value,
)
from redsession.session.codec import (
    Codec,
    CodecError,
    MsgpackCodec,
    JsonCodec,
    create_codec,
)
from redsession.session.fields import (
    FieldStore,
    FieldStats,
    NOT_FOUND,
)
from redsession.session.host import (
    SessionHost,
    StaticSessionHost,
    generate_session_id,
)
from redsession.session.coordinator import SessionCoordinator

__all__ = [
    # Paths
    "paths",
    # Keys
    "SessionKey",
    "name_digest",
    "session_key",
    "lock_key",
    # Locks
    "LockService",
    "LockTable",
    "format_lock_value",
    "parse_lock_value",
    # Codecs
    "Codec",
    "CodecError",
    "MsgpackCodec",
    "JsonCodec",
    "create_codec",
    # Fields
    "FieldStore",
    "FieldStats",
    "NOT_FOUND",
    # Host
    "SessionHost",
    "StaticSessionHost",
    "generate_session_id",
    # Coordinator
    "SessionCoordinator",
]
