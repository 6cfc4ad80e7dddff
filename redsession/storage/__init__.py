"""
Storage Module: Key-Value Backend Abstraction
==============================================

Provides:
- Protocol definitions for the key-value capability (KVBackendProtocol)
- In-memory implementation for development/testing
- Redis implementation for production
- Factory function for backend selection

Example:
    >>> # Development (in-memory)
    >>> backend = create_kv_backend()

    >>> # Production (configured)
    >>> from redsession.storage.config import RedisConfig
    >>> backend = create_kv_backend(RedisConfig(host="redis.prod"))
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

from redsession.storage.protocols import (
    KVBackendProtocol,
    KVPipelineProtocol,
    Value,
)
from redsession.storage.backends import (
    InMemoryKVBackend,
    InMemoryPipeline,
)
from redsession.storage.config import (
    RedisConfig,
)

# Lazy import for the production backend
if TYPE_CHECKING:
    from redsession.storage.redis_store import RedisKVBackend


def create_kv_backend(config: Optional[RedisConfig] = None) -> KVBackendProtocol:
    """
    Create a key-value backend.

    Args:
        config: Redis configuration; None selects the in-memory backend.

    Returns:
        Backend implementing KVBackendProtocol.
    """
    if config is None:
        return InMemoryKVBackend()

    from redsession.storage.redis_store import RedisKVBackend
    return RedisKVBackend(config)


__all__ = [
    # Protocols
    "KVBackendProtocol",
    "KVPipelineProtocol",
    "Value",
    # Backends
    "InMemoryKVBackend",
    "InMemoryPipeline",
    "RedisKVBackend",
    # Configuration
    "RedisConfig",
    # Factory
    "create_kv_backend",
]


def __getattr__(name: str):
    if name == "RedisKVBackend":
        from redsession.storage.redis_store import RedisKVBackend
        return RedisKVBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
