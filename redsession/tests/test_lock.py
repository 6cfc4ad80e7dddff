"""
Advisory Lock Tests

Covers acquire/release, steal-on-expiry, owner checks, the bounded retry
loop and teardown release.

Run: python -m pytest redsession/tests/test_lock.py -v
"""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from redsession.core.errors import BackendUnavailable, InvalidArgument, LockContention
from redsession.session.lock import (
    LockService,
    LockTable,
    format_lock_value,
    parse_lock_value,
)
from redsession.storage import InMemoryKVBackend

KEY = "lock:x"


def make_service(backend, clock, owner: str, **kwargs) -> LockService:
    kwargs.setdefault("retry_interval", 0)
    return LockService(backend, owner_id=owner, clock=clock, **kwargs)


# =============================================================================
# LOCK VALUES
# =============================================================================

def test_parse_lock_value_splits_on_first_separator():
    owner = "3f1c2b9e-6a4d-4f5e-9c1b-2d3e4f5a6b7c"
    assert parse_lock_value(format_lock_value(1700000021, owner)) == (1700000021, owner)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, (0, "")),
        ("", (0, "")),
        ("garbage", (0, "")),
        ("abc-owner", (0, "owner")),
        ("42-", (42, "")),
    ],
)
def test_parse_lock_value_degenerate(value, expected):
    assert parse_lock_value(value) == expected


# =============================================================================
# ACQUIRE
# =============================================================================

def test_acquire_free_lock(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        assert await locks.acquire(KEY, timeout=20)
        return await backend.get(KEY)

    value = asyncio.run(scenario())
    assert value == f"{int(clock.t) + 21}-alpha"
    assert locks.is_held_locally(KEY)
    assert sleeps == []


def test_mutual_exclusion(backend, clock, sleeps):
    first = make_service(backend, clock, "alpha")
    second = make_service(backend, clock, "beta")

    async def scenario():
        assert await first.acquire(KEY, timeout=20, max_attempts=1)
        return await second.acquire(KEY, timeout=20, max_attempts=5)

    assert asyncio.run(scenario()) is False
    assert not second.is_held_locally(KEY)


def test_concurrent_acquirers_never_both_win(clock):
    backend = InMemoryKVBackend(simulate_latency=True, clock=clock)
    services = [make_service(backend, clock, f"owner{i}") for i in range(5)]

    async def scenario():
        return await asyncio.gather(
            *(s.acquire(KEY, timeout=20, max_attempts=1) for s in services)
        )

    assert sum(asyncio.run(scenario())) == 1


def test_contention_gives_up_after_bounded_attempts(backend, clock, sleeps):
    holder = make_service(backend, clock, "alpha")
    waiter = LockService(backend, owner_id="beta", clock=clock, retry_interval=0.5)

    async def scenario():
        await holder.acquire(KEY, timeout=20)
        return await waiter.acquire(KEY, timeout=20, max_attempts=3)

    assert asyncio.run(scenario()) is False
    # 3 attempts at 0.5s each, the wait bounded by attempts not by timeout
    assert sleeps == [0.5, 0.5, 0.5]
    assert sum(sleeps) == pytest.approx(1.5)


def test_max_attempts_below_one_still_tries_once(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")
    assert asyncio.run(locks.acquire(KEY, max_attempts=0)) is True


def test_acquire_succeeds_once_holder_releases(backend, clock, sleeps):
    holder = make_service(backend, clock, "alpha")
    waiter = make_service(backend, clock, "beta")

    async def scenario():
        await holder.acquire(KEY)
        assert not await waiter.acquire(KEY, max_attempts=1)
        assert await holder.release(KEY)
        return await waiter.acquire(KEY, max_attempts=1)

    assert asyncio.run(scenario()) is True


def test_stale_lock_is_reclaimed(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        stale = format_lock_value(int(clock.t) - 5, "crashed-worker")
        await backend.set_if_absent(KEY, stale)
        assert await locks.acquire(KEY, timeout=20, max_attempts=1)
        return await backend.get(KEY)

    value = asyncio.run(scenario())
    assert parse_lock_value(value) == (int(clock.t) + 21, "alpha")
    assert locks.is_held_locally(KEY)


def test_expired_holder_loses_lock_to_contender(backend, clock, sleeps):
    holder = make_service(backend, clock, "alpha")
    contender = make_service(backend, clock, "beta")

    async def scenario():
        await holder.acquire(KEY, timeout=10)
        clock.advance(12)
        assert await contender.acquire(KEY, timeout=10, max_attempts=1)
        # The first holder's late release is refused and changes nothing
        assert await holder.release(KEY) is False
        return await backend.get(KEY)

    value = asyncio.run(scenario())
    assert parse_lock_value(value)[1] == "beta"


def test_unparsable_lock_value_is_reclaimable(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        await backend.set_if_absent(KEY, "not-a-lock")
        return await locks.acquire(KEY, max_attempts=1)

    assert asyncio.run(scenario()) is True


class _FasterRival(InMemoryKVBackend):
    """A rival steals the stale lock between our read and our swap."""

    async def get_set(self, key: str, value) -> Optional[str]:
        await super().get_set(key, format_lock_value(int(self._clock()) + 30, "rival"))
        return await super().get_set(key, value)


def test_steal_race_lost_when_value_changed(clock, sleeps):
    backend = _FasterRival(clock=clock)
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        await backend.set_if_absent(KEY, format_lock_value(int(clock.t) - 1, "crashed"))
        acquired = await locks.acquire(KEY, max_attempts=1)
        return acquired, await backend.get(KEY)

    acquired, value = asyncio.run(scenario())
    assert acquired is False
    assert not locks.is_held_locally(KEY)
    # Known residual race: the loser's swap already overwrote the winner's value
    assert parse_lock_value(value)[1] == "alpha"


def test_empty_key_rejected(backend, clock):
    locks = make_service(backend, clock, "alpha")
    with pytest.raises(InvalidArgument):
        asyncio.run(locks.acquire(""))
    with pytest.raises(InvalidArgument):
        asyncio.run(locks.release(""))


def test_default_owner_is_unique_per_service(backend):
    assert LockService(backend).owner_id != LockService(backend).owner_id


# =============================================================================
# RELEASE
# =============================================================================

def test_release_own_lock_deletes_key(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        await locks.acquire(KEY)
        released = await locks.release(KEY)
        return released, await backend.exists(KEY)

    assert asyncio.run(scenario()) == (True, False)
    assert not locks.is_held_locally(KEY)


def test_release_absent_key_is_idempotent(backend, clock):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        return await locks.release(KEY), await locks.release(KEY)

    assert asyncio.run(scenario()) == (True, True)


def test_release_refuses_foreign_lock(backend, clock, sleeps):
    owner = make_service(backend, clock, "alpha")
    stranger = make_service(backend, clock, "beta")

    async def scenario():
        await owner.acquire(KEY)
        before = await backend.get(KEY)
        refused = await stranger.release(KEY)
        return refused, before, await backend.get(KEY)

    refused, before, after = asyncio.run(scenario())
    assert refused is False
    assert before == after


def test_release_refuses_own_expired_lock(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        await locks.acquire(KEY, timeout=5)
        clock.advance(10)
        released = await locks.release(KEY)
        return released, await backend.exists(KEY)

    assert asyncio.run(scenario()) == (False, True)
    # No longer ours either way
    assert not locks.is_held_locally(KEY)


def test_locked_local_and_deep(backend, clock, sleeps):
    mine = make_service(backend, clock, "alpha")
    theirs = make_service(backend, clock, "beta")

    async def scenario():
        await theirs.acquire(KEY)
        return (
            await mine.locked(KEY, deep=False),
            await mine.locked(KEY, deep=True),
            await theirs.locked(KEY, deep=False),
        )

    assert asyncio.run(scenario()) == (False, True, True)


# =============================================================================
# CONTEXT MANAGERS AND TEARDOWN
# =============================================================================

def test_hold_releases_on_exit(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        async with locks.hold(KEY) as key:
            assert key == KEY
            assert await backend.exists(KEY)
        return await backend.exists(KEY)

    assert asyncio.run(scenario()) is False


def test_hold_releases_when_block_raises(backend, clock, sleeps):
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        with pytest.raises(RuntimeError):
            async with locks.hold(KEY):
                raise RuntimeError("boom")
        return await backend.exists(KEY)

    assert asyncio.run(scenario()) is False


def test_hold_raises_on_contention(backend, clock, sleeps):
    holder = make_service(backend, clock, "alpha")
    waiter = make_service(backend, clock, "beta")

    async def scenario():
        await holder.acquire(KEY)
        async with waiter.hold(KEY, max_attempts=2):
            pass

    with pytest.raises(LockContention) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.context == {"key": KEY, "attempts": 2}


def test_release_all_on_close(backend, clock, sleeps):
    async def scenario():
        async with make_service(backend, clock, "alpha") as locks:
            for key in ("lock:a", "lock:b", "lock:c"):
                await locks.acquire(key)
            assert len(locks.table) == 3
        return await backend.keys(), len(locks.table)

    assert asyncio.run(scenario()) == ([], 0)


class _FlakyBackend(InMemoryKVBackend):
    async def get(self, key: str) -> Optional[str]:
        if key == "lock:b":
            raise BackendUnavailable.timeout("get")
        return await super().get(key)


def test_release_all_skips_backend_failures(clock, sleeps):
    backend = _FlakyBackend(clock=clock)
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        for key in ("lock:a", "lock:b", "lock:c"):
            await locks.acquire(key)
        released = await locks.release_all()
        return released, await backend.keys()

    released, remaining = asyncio.run(scenario())
    assert released == 2
    assert remaining == ["lock:b"]
    assert "lock:b" in locks.table


class _WrongTypeBackend(InMemoryKVBackend):
    async def get(self, key: str) -> Optional[str]:
        if key == "lock:a":
            raise RuntimeError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return await super().get(key)


def test_release_all_skips_unexpected_failures(clock, sleeps):
    backend = _WrongTypeBackend(clock=clock)
    locks = make_service(backend, clock, "alpha")

    async def scenario():
        for key in ("lock:a", "lock:b", "lock:c"):
            await locks.acquire(key)
        await locks.close()
        return await backend.keys()

    assert asyncio.run(scenario()) == ["lock:a"]
    assert list(locks.table) == ["lock:a"]


def test_lock_table_iterates_over_snapshot():
    table = LockTable()
    table.add("b")
    table.add("a")
    for key in table:
        table.discard(key)
    assert len(table) == 0
