"""
Key-Value Backend Protocol Definitions
======================================

Structural subtyping protocols (PEP 544) for the key-value capability the
lock service and field store require. The surface is enumerated: backends
expose exactly these operations and nothing else.

String operations (locks):
    get, set_if_absent, get_set, delete, exists, expire

Hash operations (session records):
    hash_get, hash_get_all, hash_set, hash_delete, hash_set_if_absent

Batched execution:
    pipeline() -> async context manager yielding a KVPipelineProtocol.
    Queued commands are submitted as one atomic unit on execute().

Value conventions:
    - String values are returned decoded as `str`
    - Hash values are returned as raw `bytes`
    - Hash field names are returned as `str`
"""

from __future__ import annotations

from typing import (
    AsyncContextManager,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

# Values accepted for writes; str is UTF-8 encoded by the backend
Value = Union[bytes, str, int]


@runtime_checkable
class KVPipelineProtocol(Protocol):
    """
    Queue of write commands submitted together.

    Queue methods return immediately; nothing reaches the store until
    `execute()`.
    """

    def hash_set(self, key: str, field: str, value: Value) -> None: ...

    def hash_set_if_absent(self, key: str, field: str, value: Value) -> None: ...

    def hash_delete(self, key: str, field: str) -> None: ...

    def expire(self, key: str, seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    async def execute(self) -> list[object]:
        """Submit all queued commands; returns their raw replies in order."""
        ...


@runtime_checkable
class KVBackendProtocol(Protocol):
    """
    Key-value capability consumed by LockService and FieldStore.

    Implementations raise `BackendUnavailable` when the store cannot be
    reached. No other exception translation happens at this layer.
    """

    # -------------------------------------------------------------------------
    # STRING OPERATIONS
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """Value of `key`, or None when absent."""
        ...

    async def set_if_absent(self, key: str, value: Value) -> bool:
        """Atomically set `key` only if it does not exist (SETNX)."""
        ...

    async def get_set(self, key: str, value: Value) -> Optional[str]:
        """Atomically replace `key`, returning the previous value (GETSET)."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove `key`; True when it existed."""
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Apply a TTL to `key`; False when the key does not exist."""
        ...

    # -------------------------------------------------------------------------
    # HASH OPERATIONS
    # -------------------------------------------------------------------------

    async def hash_get(self, key: str, field: str) -> Optional[bytes]:
        ...

    async def hash_get_all(self, key: str) -> dict[str, bytes]:
        ...

    async def hash_set(self, key: str, field: str, value: Value) -> int:
        """Set one field; returns 1 if the field is new, 0 if updated."""
        ...

    async def hash_delete(self, key: str, field: str) -> int:
        """Remove one field; returns the number of fields removed."""
        ...

    async def hash_set_if_absent(self, key: str, field: str, value: Value) -> bool:
        """Set one field only if it does not exist (HSETNX)."""
        ...

    # -------------------------------------------------------------------------
    # BATCHING AND LIFECYCLE
    # -------------------------------------------------------------------------

    def pipeline(self) -> AsyncContextManager[KVPipelineProtocol]:
        """Transactional pipeline; see KVPipelineProtocol."""
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
