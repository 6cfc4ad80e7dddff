"""
Backend Configuration Module
============================

Type-safe, immutable configuration for the Redis key-value backend.

Design Principles:
------------------
1. **Immutability**: Configs are frozen to prevent runtime mutation
2. **Validation**: Pre-conditions checked at construction time
3. **Defaults**: Sensible defaults for development; explicit for production
4. **Environment**: Supports loading from environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from redsession.core import constants as C
from redsession.core.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Redis/Valkey connection configuration.

    Values are stored as raw bytes (session fields are packed binary), so
    `decode_responses` is off; the backend decodes string values itself.

    Attributes:
        host: Redis server hostname or IP address.
        port: Redis server port (1-65535).
        db: Logical database index (0-15).
        password: Optional authentication password.
        max_connections: Connection pool size. Must be > 0.
        connect_timeout_ms: TCP connection timeout in milliseconds.
        socket_timeout_ms: Socket read/write timeout in milliseconds.
        ssl: Enable TLS encryption for connections.

    Example:
        >>> config = RedisConfig.from_env()
        >>> config = RedisConfig(host="redis.example.com", password="secret")
    """
    host: str = C.REDIS_DEFAULT_HOST
    port: int = C.REDIS_DEFAULT_PORT
    db: int = C.REDIS_DEFAULT_DATABASE
    password: Optional[str] = None
    max_connections: int = 50
    connect_timeout_ms: int = 2000
    socket_timeout_ms: int = 5000
    ssl: bool = False

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ConfigurationError: If any invariant is violated.
        """
        if not (1 <= self.port <= 65535):
            raise ConfigurationError.invalid("redis_port", f"must be in [1, 65535], got {self.port}")
        if not (0 <= self.db <= 15):
            raise ConfigurationError.invalid("redis_database", f"must be in [0, 15], got {self.db}")
        if self.max_connections <= 0:
            raise ConfigurationError.invalid(
                "max_connections", f"must be > 0, got {self.max_connections}"
            )
        if self.connect_timeout_ms <= 0 or self.socket_timeout_ms <= 0:
            raise ConfigurationError.invalid("timeouts", "must be > 0")

    @classmethod
    def from_env(cls, prefix: str = "REDIS") -> RedisConfig:
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_HOST: Server hostname (default: 127.0.0.1)
        - {prefix}_PORT: Server port (default: 6379)
        - {prefix}_PASSWORD: Authentication password
        - {prefix}_DB: Database index (default: 0)
        - {prefix}_SSL: Enable TLS (default: false)
        - {prefix}_MAX_CONNECTIONS: Pool size (default: 50)
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        return cls(
            host=_get("HOST", C.REDIS_DEFAULT_HOST),
            port=_get_int("PORT", C.REDIS_DEFAULT_PORT),
            password=_get("PASSWORD") or None,
            db=_get_int("DB", C.REDIS_DEFAULT_DATABASE),
            max_connections=_get_int("MAX_CONNECTIONS", 50),
            connect_timeout_ms=_get_int("CONNECT_TIMEOUT_MS", 2000),
            socket_timeout_ms=_get_int("SOCKET_TIMEOUT_MS", 5000),
            ssl=_get("SSL").lower() in ("true", "1", "yes"),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Generate kwargs for redis-py connection.

        Returns:
            Dict suitable for redis.asyncio.Redis().
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "max_connections": self.max_connections,
            "socket_connect_timeout": self.connect_timeout_ms / 1000.0,
            "socket_timeout": self.socket_timeout_ms / 1000.0,
            "decode_responses": False,
            "ssl": self.ssl,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs
