"""
Redis Key-Value Backend
=======================

Production Redis/Valkey implementation of KVBackendProtocol over
`redis.asyncio`.

Design Principles:
------------------
1. **Enumerated surface**: only the operations the lock service and field
   store need; no generic passthrough to the client
2. **Connection Pooling**: one pooled client per backend instance
3. **Pipeline Batching**: MULTI/EXEC pipeline for identifier rotation
4. **Error translation**: connection failures and timeouts surface as
   BackendUnavailable; everything else propagates untouched

Memory Model:
-------------
- Session record: one Redis hash per session, one field per session field
- Lock record: one Redis string per lock, "<expiry>-<owner>"

Thread Safety:
--------------
- Connection pool is safe for concurrent tasks (redis-py internal locking)
- SETNX / GETSET / HSETNX execute atomically on the server
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, TypeVar

import redis.asyncio as aioredis
from redis import exceptions as redis_exceptions

from redsession.core.errors import BackendUnavailable
from redsession.observability.logging import StructuredLogger
from redsession.storage.config import RedisConfig
from redsession.storage.protocols import Value

logger = StructuredLogger(__name__)

T = TypeVar("T")


def _decode(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

@dataclass(slots=True)
class RedisMetrics:
    """Command and error counters for one backend instance."""
    command_count: int = 0
    pipeline_count: int = 0
    connection_errors: int = 0
    timeout_errors: int = 0


# =============================================================================
# REDIS KV BACKEND
# =============================================================================

class RedisKVBackend:
    """
    Redis backend implementing KVBackendProtocol.

    Example:
        >>> backend = RedisKVBackend(RedisConfig(host="redis.example.com"))
        >>> await backend.set_if_absent("lock:abc", "1700000020-owner")
        >>> await backend.close()

    A pre-built client may be injected (e.g. a test double speaking the
    redis-py asyncio API); the backend then does not own a pool of its own.
    """

    __slots__ = ("_config", "_client", "_metrics")

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self._config = config or RedisConfig()
        self._client = client
        self._metrics = RedisMetrics()

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis(**self._config.get_connection_kwargs())
        return self._client

    @property
    def metrics(self) -> RedisMetrics:
        return self._metrics

    async def _run(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await one client call, translating transport failures."""
        self._metrics.command_count += 1
        try:
            return await awaitable
        except (redis_exceptions.TimeoutError, asyncio.TimeoutError) as e:
            self._metrics.timeout_errors += 1
            logger.warning("Redis timeout", operation=operation)
            raise BackendUnavailable.timeout(operation, cause=e) from e
        except redis_exceptions.ConnectionError as e:
            self._metrics.connection_errors += 1
            logger.warning("Redis connection failed", operation=operation, error=str(e))
            raise BackendUnavailable.connection_failed(
                self._config.host, self._config.port, cause=e
            ) from e

    async def ping(self) -> bool:
        """True when the server answers, False when it is unreachable."""
        try:
            return bool(await self._run("ping", self.client.ping()))
        except BackendUnavailable:
            return False

    async def close(self) -> None:
        """
        Close the connection pool.

        Safe to call multiple times.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> Dict[str, Any]:
        """Ping the server and report local counters."""
        connected = await self.ping()
        return {
            "connected": connected,
            "host": self._config.host,
            "port": self._config.port,
            "db": self._config.db,
            "metrics": {
                "command_count": self._metrics.command_count,
                "pipeline_count": self._metrics.pipeline_count,
                "connection_errors": self._metrics.connection_errors,
                "timeout_errors": self._metrics.timeout_errors,
            },
        }

    # -------------------------------------------------------------------------
    # STRING OPERATIONS
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        return _decode(await self._run("get", self.client.get(key)))

    async def set_if_absent(self, key: str, value: Value) -> bool:
        return bool(await self._run("setnx", self.client.setnx(key, value)))

    async def get_set(self, key: str, value: Value) -> Optional[str]:
        return _decode(await self._run("getset", self.client.getset(key, value)))

    async def delete(self, key: str) -> bool:
        return await self._run("delete", self.client.delete(key)) > 0

    async def exists(self, key: str) -> bool:
        return await self._run("exists", self.client.exists(key)) > 0

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._run("expire", self.client.expire(key, seconds)))

    # -------------------------------------------------------------------------
    # HASH OPERATIONS
    # -------------------------------------------------------------------------

    async def hash_get(self, key: str, field: str) -> Optional[bytes]:
        return await self._run("hget", self.client.hget(key, field))

    async def hash_get_all(self, key: str) -> Dict[str, bytes]:
        raw = await self._run("hgetall", self.client.hgetall(key))
        return {_decode(name): value for name, value in raw.items()}

    async def hash_set(self, key: str, field: str, value: Value) -> int:
        return int(await self._run("hset", self.client.hset(key, field, value)))

    async def hash_delete(self, key: str, field: str) -> int:
        return int(await self._run("hdel", self.client.hdel(key, field)))

    async def hash_set_if_absent(self, key: str, field: str, value: Value) -> bool:
        return bool(await self._run("hsetnx", self.client.hsetnx(key, field, value)))

    # -------------------------------------------------------------------------
    # BATCH OPERATIONS (Pipelined)
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def pipeline(self) -> AsyncIterator[RedisPipeline]:
        """
        MULTI/EXEC pipeline.

        Commands are buffered client-side and submitted in one round-trip;
        the server applies them without interleaving other clients.
        """
        async with self.client.pipeline(transaction=True) as pipe:
            yield RedisPipeline(self, pipe)


class RedisPipeline:
    """KVPipelineProtocol adapter over a redis-py asyncio pipeline."""

    __slots__ = ("_backend", "_pipe")

    def __init__(self, backend: RedisKVBackend, pipe: Any) -> None:
        self._backend = backend
        self._pipe = pipe

    def hash_set(self, key: str, field: str, value: Value) -> None:
        self._pipe.hset(key, field, value)

    def hash_set_if_absent(self, key: str, field: str, value: Value) -> None:
        self._pipe.hsetnx(key, field, value)

    def hash_delete(self, key: str, field: str) -> None:
        self._pipe.hdel(key, field)

    def expire(self, key: str, seconds: int) -> None:
        self._pipe.expire(key, seconds)

    def delete(self, key: str) -> None:
        self._pipe.delete(key)

    async def execute(self) -> List[object]:
        self._backend.metrics.pipeline_count += 1
        return await self._backend._run("pipeline", self._pipe.execute())
