"""
Default Session Instance

Explicit wiring of backend, lock service, field store and coordinator,
plus an optional process-wide default for code that cannot pass the
coordinator around.

Usage:
    session = await configure({"redis_host": "redis.internal", "session_start": True})
    ...
    await get_session().write("cart.total", 42)
    ...
    await shutdown()   # releases held locks, closes the connection pool
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from redsession.core import constants as C
from redsession.core.config import SessionConfig
from redsession.core.errors import InvalidArgument, PreconditionFailed
from redsession.observability.logging import StructuredLogger, configure_from
from redsession.session.codec import Codec, MsgpackCodec
from redsession.session.coordinator import SessionCoordinator
from redsession.session.fields import FieldStore
from redsession.session.host import SessionHost, StaticSessionHost
from redsession.session.lock import LockService
from redsession.storage import KVBackendProtocol, create_kv_backend

logger = StructuredLogger(__name__)

_default: Optional[SessionCoordinator] = None


def create_session(
    config: Optional[SessionConfig] = None,
    host: Optional[SessionHost] = None,
    backend: Optional[KVBackendProtocol] = None,
    codec: Optional[Codec] = None,
) -> SessionCoordinator:
    """
    Wire a coordinator from its collaborators.

    Missing collaborators are built from `config`: a Redis backend for its
    connection settings, a MessagePack codec and an in-process host.
    """
    config = config or SessionConfig()
    if host is None:
        host = StaticSessionHost(session_name=config.session_name or C.SESSION_DEFAULT_NAME)
    if backend is None:
        backend = create_kv_backend(config.redis_config())
    if codec is None:
        codec = MsgpackCodec(compress_threshold=config.compress_threshold)

    locks = LockService(backend, retry_interval=config.lock_retry_interval)
    fields = FieldStore(backend, codec, ttl_seconds=config.session_ttl_seconds)
    return SessionCoordinator(host, locks, fields, config)


async def configure(
    settings: Optional[Mapping[str, Any]] = None,
    host: Optional[SessionHost] = None,
    backend: Optional[KVBackendProtocol] = None,
) -> SessionCoordinator:
    """
    Build the default coordinator from a settings mapping.

    Settings are merged over the defaults; `debug` and `logfile` configure
    logging, and `session_start` starts the session immediately. A
    previously configured default is shut down first.
    """
    config = SessionConfig.from_mapping(settings)
    configure_from(config.debug, config.logfile)

    if _default is not None:
        await shutdown()

    session = create_session(config, host=host, backend=backend)
    if config.session_start:
        await session.start()
    set_session(session)
    logger.debug("Default session configured", redis_host=config.redis_host)
    return session


def get_session() -> SessionCoordinator:
    """
    The default coordinator.

    Raises:
        PreconditionFailed: configure() or set_session() was never called.
    """
    if _default is None:
        raise PreconditionFailed.not_configured()
    return _default


def set_session(session: SessionCoordinator) -> None:
    """Install `session` as the default coordinator."""
    global _default
    if not isinstance(session, SessionCoordinator):
        raise InvalidArgument.wrong_type("session", "SessionCoordinator", session)
    _default = session


async def shutdown() -> None:
    """Tear down the default coordinator, if any."""
    global _default
    session, _default = _default, None
    if session is not None:
        await session.close()
