"""
In-Memory Key-Value Backend: Development and Testing Implementation

Provides a Redis-compatible in-memory implementation of KVBackendProtocol:
- String keys with SETNX / GETSET semantics (lock records)
- Hash keys with HSETNX / HGETALL semantics (session records)
- Per-key TTL with lazy expiry on access
- Transactional pipeline applied atomically under one lock

Design Principles:
    - Full protocol compliance for seamless swap with RedisKVBackend
    - Safe under asyncio concurrency via a single asyncio.Lock
    - Optional simulated latency so tests can force interleavings
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Union

from redsession.storage.protocols import Value


# =============================================================================
# CONSTANTS
# =============================================================================
DEFAULT_SIMULATED_LATENCY_NS: int = 50_000  # 50 microseconds


def _to_bytes(value: Value) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


@dataclass
class _Entry:
    """Stored value plus optional absolute expiry (epoch seconds)."""
    value: Union[bytes, Dict[str, bytes]]
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryKVBackend:
    """
    In-memory key-value store with Redis semantics.

    Example:
        backend = InMemoryKVBackend()
        await backend.set_if_absent("lock:abc", "1700000000-owner")
        await backend.hash_set("sess:1a2b3c4d:xyz", "profile", b"...")
    """

    __slots__ = ("_data", "_lock", "_simulate_latency", "_clock")

    def __init__(
        self,
        simulate_latency: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize in-memory store.

        Args:
            simulate_latency: If True, yield to the event loop on every call
            clock: Wall-clock source used for TTL expiry
        """
        self._data: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._simulate_latency = simulate_latency
        self._clock = clock

    async def _simulate_network_latency(self) -> None:
        if self._simulate_latency:
            await asyncio.sleep(DEFAULT_SIMULATED_LATENCY_NS / 1_000_000_000)

    # -------------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # -------------------------------------------------------------------------

    def _entry(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is not None and entry.is_expired(self._clock()):
            del self._data[key]
            return None
        return entry

    def _string(self, key: str) -> Optional[bytes]:
        entry = self._entry(key)
        if entry is None:
            return None
        if not isinstance(entry.value, bytes):
            raise TypeError(f"WRONGTYPE key '{key}' holds a hash")
        return entry.value

    def _hash(self, key: str, create: bool = False) -> Optional[Dict[str, bytes]]:
        entry = self._entry(key)
        if entry is None:
            if not create:
                return None
            entry = self._data[key] = _Entry(value={})
        if not isinstance(entry.value, dict):
            raise TypeError(f"WRONGTYPE key '{key}' holds a string")
        return entry.value

    def _hset(self, key: str, field: str, value: Value) -> int:
        fields = self._hash(key, create=True)
        is_new = field not in fields
        fields[field] = _to_bytes(value)
        return 1 if is_new else 0

    def _hsetnx(self, key: str, field: str, value: Value) -> bool:
        fields = self._hash(key, create=True)
        if field in fields:
            return False
        fields[field] = _to_bytes(value)
        return True

    def _hdel(self, key: str, field: str) -> int:
        fields = self._hash(key)
        if fields is None or field not in fields:
            return 0
        del fields[field]
        if not fields:
            # Redis removes a hash once its last field is gone
            del self._data[key]
        return 1

    def _expire(self, key: str, seconds: int) -> bool:
        entry = self._entry(key)
        if entry is None:
            return False
        entry.expires_at = self._clock() + seconds
        return True

    def _delete(self, key: str) -> bool:
        return self._entry(key) is not None and self._data.pop(key, None) is not None

    # -------------------------------------------------------------------------
    # String operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        await self._simulate_network_latency()
        async with self._lock:
            value = self._string(key)
            return value.decode("utf-8") if value is not None else None

    async def set_if_absent(self, key: str, value: Value) -> bool:
        await self._simulate_network_latency()
        async with self._lock:
            if self._entry(key) is not None:
                return False
            self._data[key] = _Entry(value=_to_bytes(value))
            return True

    async def get_set(self, key: str, value: Value) -> Optional[str]:
        await self._simulate_network_latency()
        async with self._lock:
            previous = self._string(key)
            # GETSET discards any TTL on the key
            self._data[key] = _Entry(value=_to_bytes(value))
            return previous.decode("utf-8") if previous is not None else None

    async def delete(self, key: str) -> bool:
        await self._simulate_network_latency()
        async with self._lock:
            return self._delete(key)

    async def exists(self, key: str) -> bool:
        await self._simulate_network_latency()
        async with self._lock:
            return self._entry(key) is not None

    async def expire(self, key: str, seconds: int) -> bool:
        await self._simulate_network_latency()
        async with self._lock:
            return self._expire(key, seconds)

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -1 without TTL, -2 when absent (for testing)."""
        async with self._lock:
            entry = self._entry(key)
            if entry is None:
                return -2
            if entry.expires_at is None:
                return -1
            return max(0, int(round(entry.expires_at - self._clock())))

    # -------------------------------------------------------------------------
    # Hash operations
    # -------------------------------------------------------------------------

    async def hash_get(self, key: str, field: str) -> Optional[bytes]:
        await self._simulate_network_latency()
        async with self._lock:
            fields = self._hash(key)
            return None if fields is None else fields.get(field)

    async def hash_get_all(self, key: str) -> Dict[str, bytes]:
        await self._simulate_network_latency()
        async with self._lock:
            fields = self._hash(key)
            return dict(fields) if fields else {}

    async def hash_set(self, key: str, field: str, value: Value) -> int:
        await self._simulate_network_latency()
        async with self._lock:
            return self._hset(key, field, value)

    async def hash_delete(self, key: str, field: str) -> int:
        await self._simulate_network_latency()
        async with self._lock:
            return self._hdel(key, field)

    async def hash_set_if_absent(self, key: str, field: str, value: Value) -> bool:
        await self._simulate_network_latency()
        async with self._lock:
            return self._hsetnx(key, field, value)

    # -------------------------------------------------------------------------
    # Batching and lifecycle
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def pipeline(self) -> AsyncIterator[InMemoryPipeline]:
        yield InMemoryPipeline(self)

    async def _apply(self, commands: List[Callable[[], object]]) -> List[object]:
        await self._simulate_network_latency()
        async with self._lock:
            return [command() for command in commands]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        """Nothing to release; data survives so tests can inspect it."""

    async def clear(self) -> None:
        """Clear all data (for testing)."""
        async with self._lock:
            self._data.clear()

    async def keys(self) -> List[str]:
        """Live keys (for testing)."""
        async with self._lock:
            now = self._clock()
            return sorted(k for k, e in self._data.items() if not e.is_expired(now))


class InMemoryPipeline:
    """Queued commands applied under the backend lock in one step."""

    __slots__ = ("_backend", "_commands")

    def __init__(self, backend: InMemoryKVBackend) -> None:
        self._backend = backend
        self._commands: List[Callable[[], object]] = []

    def hash_set(self, key: str, field: str, value: Value) -> None:
        self._commands.append(lambda: self._backend._hset(key, field, value))

    def hash_set_if_absent(self, key: str, field: str, value: Value) -> None:
        self._commands.append(lambda: self._backend._hsetnx(key, field, value))

    def hash_delete(self, key: str, field: str) -> None:
        self._commands.append(lambda: self._backend._hdel(key, field))

    def expire(self, key: str, seconds: int) -> None:
        self._commands.append(lambda: self._backend._expire(key, seconds))

    def delete(self, key: str) -> None:
        self._commands.append(lambda: self._backend._delete(key))

    async def execute(self) -> List[object]:
        commands, self._commands = self._commands, []
        return await self._backend._apply(commands)

    def __len__(self) -> int:
        return len(self._commands)
