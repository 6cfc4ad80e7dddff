"""
Advisory Locks: SETNX Locking with Steal-on-Expiry

Provides the per-field lock used by the session coordinator:
- Acquire with SETNX, polling at a fixed interval up to a bounded attempt count
- Reclaim of stale locks (expiry in the past) via read-then-GETSET
- Owner- and expiry-checked release, idempotent on absent keys
- Local lock table for no-I/O "do I hold this" checks and teardown release

Lock value:
    "<expiryEpochSeconds>-<ownerId>"   split on the first "-" only

Algorithm (acquire):
    1. SETNX key value                      -> held
    2. GET key; if its expiry < now:
           GETSET key value; previous == value read -> held
    3. sleep retry_interval, repeat up to max_attempts

Known residual race:
    Between the GET in step 2 and the GETSET another contender may steal the
    lock first. The loser's GETSET then overwrites the winner's value with
    its own before reporting failure, so the winner's later release is
    refused by the owner check and the lock lapses at the loser's expiry.
    This is accepted behavior; it is not closed with a server-side script.

Safety:
    - Mutual exclusion while the holder's expiry is in the future
    - A release never deletes a lock that expired or belongs to someone else
    - Advisory only: the store does not enforce anything
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Iterator, Optional
from uuid import uuid4

from redsession.core import constants as C
from redsession.core.errors import InvalidArgument, LockContention
from redsession.observability.logging import StructuredLogger
from redsession.storage.protocols import KVBackendProtocol

logger = StructuredLogger(__name__)


def format_lock_value(expiry: int, owner_id: str) -> str:
    return f"{expiry}{C.LOCK_VALUE_SEPARATOR}{owner_id}"


def parse_lock_value(value: Optional[str]) -> tuple[int, str]:
    """
    (expiry, owner) from a stored lock value.

    Absent or unparsable values read as expiry 0, i.e. already stale.
    """
    if not value:
        return 0, ""
    expiry, _, owner = value.partition(C.LOCK_VALUE_SEPARATOR)
    try:
        return int(expiry), owner
    except ValueError:
        return 0, owner


# =============================================================================
# LOCAL LOCK TABLE
# =============================================================================
class LockTable:
    """
    Lock keys this process currently believes it holds.

    Owned by one LockService; never consulted for correctness, only for
    the fast path and for teardown.
    """

    __slots__ = ("_keys",)

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def add(self, key: str) -> None:
        self._keys.add(key)

    def discard(self, key: str) -> None:
        self._keys.discard(key)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        # Snapshot so callers may release while iterating
        return iter(sorted(self._keys))


# =============================================================================
# LOCK SERVICE
# =============================================================================
class LockService:
    """
    Advisory lock manager over a key-value backend.

    Usage:
        locks = LockService(backend)

        if await locks.acquire("lock:abc", timeout=20, max_attempts=3):
            try:
                ...  # critical section
            finally:
                await locks.release("lock:abc")

        # Or as a context manager raising LockContention
        async with locks.hold("lock:abc"):
            ...

        # Teardown: best-effort release of everything still held
        await locks.close()

    Owner identity:
        Defaults to a random UUID per service instance, so two services in
        one process are distinct owners.
    """

    __slots__ = (
        "_backend", "_owner_id", "_retry_interval",
        "_table", "_clock",
    )

    def __init__(
        self,
        backend: KVBackendProtocol,
        owner_id: Optional[str] = None,
        retry_interval: float = C.LOCK_RETRY_SLEEP,
        lock_table: Optional[LockTable] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._owner_id = owner_id or str(uuid4())
        self._retry_interval = retry_interval
        self._table = lock_table if lock_table is not None else LockTable()
        self._clock = clock

    @property
    def owner_id(self) -> str:
        """This service's owner identity."""
        return self._owner_id

    @property
    def table(self) -> LockTable:
        return self._table

    async def acquire(
        self,
        key: str,
        timeout: int = C.LOCK_DEFAULT_TIMEOUT,
        max_attempts: int = C.LOCK_DEFAULT_MAX_ATTEMPTS,
    ) -> bool:
        """
        Acquire `key`, polling until held or attempts run out.

        `timeout` sets how long the lock stays valid once held; it does not
        bound the wait. The wait is bounded by max_attempts * retry_interval.

        Returns:
            True when held, False on contention.
        """
        if not key:
            raise InvalidArgument.empty("lock key")

        attempts = max(1, max_attempts)
        for attempt in range(1, attempts + 1):
            now = int(self._clock())
            value = format_lock_value(now + timeout + C.LOCK_SLACK_SECONDS, self._owner_id)

            if await self._backend.set_if_absent(key, value):
                self._table.add(key)
                logger.debug("Lock acquired", key=key, attempt=attempt)
                return True

            current = await self._backend.get(key)
            expiry, holder = parse_lock_value(current)
            if expiry < now:
                # Stale, or vanished since SETNX; swap only if nobody beat us
                previous = await self._backend.get_set(key, value)
                if previous == current:
                    self._table.add(key)
                    logger.info(
                        "Stale lock reclaimed",
                        key=key,
                        previous_owner=holder,
                        expired_at=expiry,
                    )
                    return True

            await asyncio.sleep(self._retry_interval)

        logger.debug("Lock contention", key=key, attempts=attempts)
        return False

    async def release(self, key: str) -> bool:
        """
        Release `key` if this service still owns it.

        Returns:
            True when released or already absent; False when the lock has
            expired or belongs to another owner (the key is left untouched).
        """
        if not key:
            raise InvalidArgument.empty("lock key")

        current = await self._backend.get(key)
        if current is None:
            self._table.discard(key)
            return True

        expiry, holder = parse_lock_value(current)
        if expiry > int(self._clock()) and holder == self._owner_id:
            await self._backend.delete(key)
            self._table.discard(key)
            logger.debug("Lock released", key=key)
            return True

        # Expired or stolen: it is no longer ours either way
        self._table.discard(key)
        logger.debug("Lock release refused", key=key, holder=holder, expiry=expiry)
        return False

    def is_held_locally(self, key: str) -> bool:
        """Local table check only; no I/O."""
        return key in self._table

    async def locked(self, key: str, deep: bool = True) -> bool:
        """
        Whether `key` is locked.

        deep=False consults only the local table; deep=True also reports a
        lock held remotely by anyone.
        """
        if key in self._table:
            return True
        if not deep:
            return False
        return await self._backend.exists(key)

    @asynccontextmanager
    async def hold(
        self,
        key: str,
        timeout: int = C.LOCK_DEFAULT_TIMEOUT,
        max_attempts: int = C.LOCK_DEFAULT_MAX_ATTEMPTS,
    ) -> AsyncIterator[str]:
        """
        Hold `key` for the duration of the block.

        Raises:
            LockContention: the lock could not be acquired.
        """
        if not await self.acquire(key, timeout, max_attempts):
            raise LockContention.exhausted(key, max(1, max_attempts))
        try:
            yield key
        finally:
            await self.release(key)

    async def release_all(self) -> int:
        """
        Best-effort release of every key in the local table.

        Any failure is logged and skipped so the remaining keys are still
        released. Returns the count released.
        """
        released = 0
        for key in self._table:
            try:
                if await self.release(key):
                    released += 1
            except Exception as e:
                logger.warning(
                    "Lock release failed during teardown",
                    key=key,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return released

    async def close(self) -> None:
        """Teardown hook: release everything still held."""
        if len(self._table):
            count = await self.release_all()
            logger.debug("Released held locks on teardown", released=count)

    async def __aenter__(self) -> LockService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
