"""
Session Coordinator: Path-Addressed, Lock-Aware Session Access

Composes the lock service, field store and path addressing into the
user-facing session API, keeping a local mirror of top-level fields.

Write protocol (per top-level field):
    1. field = basename(path)
    2. Lock already held locally (or locks not honoured): mutate and persist
    3. Otherwise acquire the field lock; on success mutate, persist, release
       and return the release outcome; on contention return False

The mirror is updated only after the field has been persisted, so a
backend failure leaves it unchanged. Storage stays authoritative; cached
reads never touch it.
"""

from __future__ import annotations

import copy
import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from redsession.core.config import SessionConfig
from redsession.core.errors import InvalidArgument, PreconditionFailed
from redsession.observability.logging import StructuredLogger
from redsession.session import paths
from redsession.session.fields import NOT_FOUND, FieldStore
from redsession.session.host import SessionHost
from redsession.session.keys import SessionKey
from redsession.session.lock import LockService
from redsession.session.paths import PathLike

logger = StructuredLogger(__name__)

LockCallback = Callable[[], Union[Any, Awaitable[Any]]]


def _is_empty_container(value: Any) -> bool:
    return isinstance(value, (dict, list)) and not value


class SessionCoordinator:
    """
    Path-addressed session API.

    Usage:
        session = SessionCoordinator(host, LockService(backend), FieldStore(backend))

        await session.write("profile.name", "Alice")
        await session.write("profile.age", 30)
        await session.read("profile")           # {"name": "Alice", "age": 30}

        await session.delete("profile.age")
        await session.check("profile.age")      # False

        async with session.locked_field("cart"):
            await session.write("cart.items.0", {"sku": "A1"})

    Every public operation starts the session first.
    """

    __slots__ = ("_host", "_locks", "_fields", "_config", "_skey", "_mirror", "_started")

    def __init__(
        self,
        host: SessionHost,
        lock_service: LockService,
        field_store: FieldStore,
        config: Optional[SessionConfig] = None,
    ) -> None:
        self._host = host
        self._locks = lock_service
        self._fields = field_store
        self._config = config or SessionConfig()
        self._skey: Optional[SessionKey] = None
        self._mirror: dict[str, Any] = {}
        self._started = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def id(self) -> Optional[str]:
        return self._skey.session_id if self._skey else self._host.session_id

    @property
    def name(self) -> Optional[str]:
        return self._skey.name if self._skey else None

    @property
    def session_key(self) -> Optional[SessionKey]:
        return self._skey

    @property
    def mirror(self) -> dict[str, Any]:
        """Snapshot of the locally mirrored fields."""
        return copy.deepcopy(self._mirror)

    @property
    def lock_service(self) -> LockService:
        return self._locks

    @property
    def field_store(self) -> FieldStore:
        return self._fields

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Bind to the host's active session and load its record.

        Raises:
            PreconditionFailed: the host has no active session after start.
        """
        if self._started:
            return True

        await self._host.start()
        if not self._host.is_active() or not self._host.session_id:
            raise PreconditionFailed.session_not_active("start session")

        name = self._config.session_name or self._host.session_name
        self._skey = SessionKey(name=name, session_id=self._host.session_id)
        await self._initialize()
        self._started = True
        logger.debug("Session started", session_key=self._skey.record_key)
        return True

    async def _initialize(self) -> None:
        if await self._fields.initialize_if_absent(self._skey):
            self._mirror = {}
        else:
            self._mirror = await self._fields.read_all(self._skey)

    async def _rotate(self) -> SessionKey:
        old = self._skey
        new_id = await self._host.regenerate_id()
        self._skey = old.rotated(new_id)
        logger.info(
            "Session id rotated",
            session_key=self._skey.record_key,
            previous_key=old.record_key,
        )
        return self._skey

    async def set_id(self, session_id: str) -> None:
        """Point this coordinator at another session id and reload."""
        if not session_id:
            raise InvalidArgument.empty("session id")
        await self.start()
        self._host.set_id(session_id)
        self._skey = self._skey.rotated(session_id)
        await self._initialize()

    async def destroy(self) -> bool:
        """
        Delete the whole record and continue under a fresh identifier.

        Returns False when the session was never started.
        """
        if not self._started:
            return False
        await self._fields.destroy(self._skey)
        self._mirror = {}
        await self._rotate()
        await self._initialize()
        return True

    async def renew(self, clear: bool = False) -> bool:
        """
        Rotate the session identifier.

        clear=True starts an empty record under the new id. Otherwise the
        mirrored fields are re-persisted under the new id with the TTL
        re-applied, in one transactional pipeline.
        """
        if not self._started:
            return False

        skey = await self._rotate()
        if clear:
            await self._initialize()
            return True

        if await self._fields.touch(skey):
            async with self._fields.pipeline() as pipe:
                await self._fields.refresh_expiry(skey, pipe=pipe)
                for name, value in self._mirror.items():
                    await self._fields.write_field(skey, name, value, pipe=pipe)
                await pipe.execute()
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def read(
        self,
        path: PathLike = None,
        cached: bool = False,
        cache_update: bool = True,
    ) -> Any:
        """
        Value at `path`, or None when absent.

        cached=True reads only the mirror. Otherwise the whole record (no
        path) or the owning field is fetched, refreshing the mirror when
        cache_update is set, then narrowed to the sub-path.
        """
        await self.start()

        if cached:
            if not paths.split_path(path):
                return self.mirror
            return copy.deepcopy(paths.extract(self._mirror, path))

        if not paths.split_path(path):
            data = await self._fields.read_all(self._skey)
            if cache_update:
                self._mirror = copy.deepcopy(data)
            return data

        field, rest = paths.split_field(path)
        value = await self._fields.read_field(self._skey, field)
        if value is NOT_FOUND:
            if cache_update:
                self._mirror.pop(field, None)
            return None

        if cache_update:
            self._mirror[field] = copy.deepcopy(value)
        if not rest:
            return value
        return paths.extract(value, rest)

    async def check(self, path: PathLike, cached: bool = False) -> bool:
        """Whether a value exists at `path`."""
        if not paths.split_path(path):
            raise InvalidArgument.empty("path")
        return await self.read(path, cached=cached) is not None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def write(self, path: PathLike, value: Any, honour_locks: bool = True) -> bool:
        """
        Set `value` at `path`, persisting the whole owning field.

        Returns:
            True on success; on the acquire path, the release outcome.
            False when the field lock could not be acquired.
        """
        field, rest = paths.split_field(path)
        await self.start()

        def mutate(current: Any) -> Any:
            owned = copy.deepcopy(value)
            if not rest:
                return owned
            node = current if isinstance(current, (dict, list)) else {}
            return paths.insert(node, rest, owned)

        return await self._mutate_field(field, mutate, honour_locks, prune=False)

    async def delete(self, path: PathLike, honour_locks: bool = True) -> bool:
        """
        Remove the entry at `path`.

        A field left absent or empty is removed from storage entirely;
        otherwise its remaining value is persisted.
        """
        field, rest = paths.split_field(path)
        await self.start()

        def mutate(current: Any) -> Any:
            if not rest:
                return NOT_FOUND
            return paths.delete(current, rest)

        return await self._mutate_field(field, mutate, honour_locks, prune=True)

    async def _mutate_field(
        self,
        field: str,
        mutate: Callable[[Any], Any],
        honour_locks: bool,
        prune: bool,
    ) -> bool:
        lkey = self._skey.lock_key(field)
        if not honour_locks or self._locks.is_held_locally(lkey):
            await self._apply(field, mutate, prune)
            return True

        if not await self._locks.acquire(
            lkey, self._config.lock_timeout, self._config.lock_max_attempts
        ):
            logger.debug("Field locked elsewhere", field=field, key=lkey)
            return False
        try:
            await self._apply(field, mutate, prune)
        finally:
            released = await self._locks.release(lkey)
        return released

    async def _apply(self, field: str, mutate: Callable[[Any], Any], prune: bool) -> None:
        current = self._mirror.get(field, NOT_FOUND)
        if current is not NOT_FOUND:
            # Mirror changes only after the field is persisted
            current = copy.deepcopy(current)
        updated = mutate(current)

        if prune and (updated is NOT_FOUND or _is_empty_container(updated)):
            await self._fields.delete_field(self._skey, field)
            self._mirror.pop(field, None)
            return

        await self._fields.write_field(self._skey, field, updated)
        self._mirror[field] = updated

    # -------------------------------------------------------------------------
    # Session-scoped locks
    # -------------------------------------------------------------------------

    def _lock_key(self, key: PathLike) -> str:
        if not paths.split_path(key):
            raise InvalidArgument.empty()
        return self._skey.lock_key(key)

    async def lock(self, key: PathLike, fn: Optional[LockCallback] = None) -> bool:
        """
        Acquire the session-scoped lock for `key`.

        Without `fn` returns the acquire result. With `fn` (plain callable or
        coroutine function) runs it under the lock and returns the release
        outcome; the lock is released even if `fn` raises.
        """
        await self.start()
        lkey = self._lock_key(key)

        acquired = await self._locks.acquire(
            lkey, self._config.lock_timeout, self._config.lock_max_attempts
        )
        if not acquired or fn is None:
            return acquired

        try:
            result = fn()
            if inspect.isawaitable(result):
                await result
        finally:
            released = await self._locks.release(lkey)
        return released

    async def unlock(self, key: PathLike) -> bool:
        await self.start()
        return await self._locks.release(self._lock_key(key))

    async def locked(self, key: PathLike) -> bool:
        """Whether anyone holds the lock for `key`."""
        await self.start()
        return await self._locks.locked(self._lock_key(key), deep=True)

    @asynccontextmanager
    async def locked_field(self, key: PathLike) -> AsyncIterator[SessionCoordinator]:
        """
        Hold the lock for `key` for the duration of the block.

        Raises:
            LockContention: the lock could not be acquired.
        """
        await self.start()
        async with self._locks.hold(
            self._lock_key(key), self._config.lock_timeout, self._config.lock_max_attempts
        ):
            yield self

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Release every lock still held, then close storage."""
        try:
            await self._locks.close()
        finally:
            await self._fields.close()

    async def __aenter__(self) -> SessionCoordinator:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        key = self._skey.record_key if self._skey else None
        return f"SessionCoordinator(key={key!r}, started={self._started})"
