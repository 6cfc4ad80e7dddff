"""
Field Store Tests

Run: python -m pytest redsession/tests/test_fields.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from redsession.core import constants as C
from redsession.core.errors import SerializationError
from redsession.session.codec import JsonCodec
from redsession.session.fields import NOT_FOUND, FieldStore
from redsession.session.keys import SessionKey

SKEY = SessionKey("SESSID", "abc123")


@pytest.fixture
def store(backend) -> FieldStore:
    return FieldStore(backend, ttl_seconds=600)


# =============================================================================
# RECORD LIFECYCLE
# =============================================================================

def test_initialize_reports_new_exactly_once(store, backend):
    async def scenario():
        return [await store.initialize_if_absent(SKEY) for _ in range(3)]

    assert asyncio.run(scenario()) == [True, False, False]
    assert store.stats.created == 1


def test_initialize_applies_ttl(store, backend):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        return await backend.ttl(SKEY.record_key)

    assert asyncio.run(scenario()) == 600


def test_record_expires_with_ttl(store, backend, clock):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        await store.write_field(SKEY, "cart", [1])
        clock.advance(601)
        return await store.read_field(SKEY, "cart"), await store.initialize_if_absent(SKEY)

    assert asyncio.run(scenario()) == (NOT_FOUND, True)


def test_refresh_expiry(store, backend, clock):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        clock.advance(500)
        await store.refresh_expiry(SKEY)
        first = await backend.ttl(SKEY.record_key)
        await store.refresh_expiry(SKEY, ttl_seconds=30)
        return first, await backend.ttl(SKEY.record_key)

    assert asyncio.run(scenario()) == (600, 30)


def test_destroy(store, backend):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        await store.write_field(SKEY, "a", 1)
        return await store.destroy(SKEY), await store.destroy(SKEY), await backend.keys()

    assert asyncio.run(scenario()) == (True, False, [])


# =============================================================================
# FIELD OPERATIONS
# =============================================================================

def test_write_then_read(store):
    value = {"name": "Alice", "addresses": [{"city": "Oslo"}], "age": None}

    async def scenario():
        await store.write_field(SKEY, "profile", value)
        return await store.read_field(SKEY, "profile")

    assert asyncio.run(scenario()) == value


def test_read_missing_field_is_not_found(store):
    result = asyncio.run(store.read_field(SKEY, "nope"))
    assert result is NOT_FOUND
    assert not result
    assert repr(result) == "NOT_FOUND"


def test_read_all_excludes_touch_marker(store, backend):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        await store.write_field(SKEY, "a", 1)
        await store.write_field(SKEY, "b", {"c": [2]})
        raw = await backend.hash_get_all(SKEY.record_key)
        return raw, await store.read_all(SKEY)

    raw, fields = asyncio.run(scenario())
    assert C.HASH_TOUCH_KEY in raw
    assert fields == {"a": 1, "b": {"c": [2]}}


def test_delete_field_reports_existence(store):
    async def scenario():
        await store.initialize_if_absent(SKEY)
        await store.write_field(SKEY, "a", 1)
        return await store.delete_field(SKEY, "a"), await store.delete_field(SKEY, "a")

    assert asyncio.run(scenario()) == (True, False)


def test_pipelined_writes_apply_on_execute(store, backend):
    async def scenario():
        async with store.pipeline() as pipe:
            await store.write_field(SKEY, "a", 1, pipe=pipe)
            await store.write_field(SKEY, "b", 2, pipe=pipe)
            await store.refresh_expiry(SKEY, pipe=pipe)
            before = await store.read_all(SKEY)
            await pipe.execute()
        return before, await store.read_all(SKEY), await backend.ttl(SKEY.record_key)

    assert asyncio.run(scenario()) == ({}, {"a": 1, "b": 2}, 600)


def test_store_is_keyed_per_session(store):
    other = SKEY.rotated("def456")

    async def scenario():
        await store.write_field(SKEY, "a", 1)
        return await store.read_field(other, "a")

    assert asyncio.run(scenario()) is NOT_FOUND


def test_json_codec_store(backend):
    store = FieldStore(backend, JsonCodec())

    async def scenario():
        await store.write_field(SKEY, "a", {"b": [1, 2]})
        return await backend.hash_get(SKEY.record_key, "a"), await store.read_field(SKEY, "a")

    assert asyncio.run(scenario()) == (b'{"b":[1,2]}', {"b": [1, 2]})


# =============================================================================
# SERIALIZATION FAILURES
# =============================================================================

def test_corrupt_field_raises(store, backend):
    async def scenario():
        await backend.hash_set(SKEY.record_key, "broken", b"\x07garbage")
        await store.read_field(SKEY, "broken")

    with pytest.raises(SerializationError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.context == {"field": "broken", "record_key": SKEY.record_key}
    assert store.stats.decode_failures == 1


def test_corrupt_field_fails_read_all(store, backend):
    async def scenario():
        await store.write_field(SKEY, "good", 1)
        await backend.hash_set(SKEY.record_key, "broken", b"\x07garbage")
        await store.read_all(SKEY)

    with pytest.raises(SerializationError):
        asyncio.run(scenario())


def test_unencodable_value_raises(store):
    with pytest.raises(SerializationError):
        asyncio.run(store.write_field(SKEY, "a", object()))
