"""
Session Host Tests

Run: python -m pytest redsession/tests/test_host.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from redsession.core.errors import InvalidArgument
from redsession.session.host import SessionHost, StaticSessionHost, generate_session_id


def test_static_host_satisfies_protocol():
    assert isinstance(StaticSessionHost(), SessionHost)


def test_generated_ids_are_hex_and_distinct():
    first, second = generate_session_id(), generate_session_id()
    assert len(first) == 32
    int(first, 16)
    assert first != second


def test_start_assigns_id_once():
    host = StaticSessionHost()
    assert host.session_id is None
    assert host.is_active() is False

    asyncio.run(host.start())
    assigned = host.session_id
    asyncio.run(host.start())

    assert host.is_active() is True
    assert assigned and host.session_id == assigned


def test_start_keeps_supplied_id():
    host = StaticSessionHost(session_id="abc")
    asyncio.run(host.start())
    assert host.session_id == "abc"


def test_regenerate_id_counts_rotations():
    host = StaticSessionHost(session_id="abc")
    new_id = asyncio.run(host.regenerate_id())
    assert new_id != "abc"
    assert host.session_id == new_id
    assert host.rotations == 1


def test_set_id():
    host = StaticSessionHost()
    host.set_id("chosen")
    assert host.session_id == "chosen"
    with pytest.raises(InvalidArgument):
        host.set_id("")


def test_empty_name_rejected():
    with pytest.raises(InvalidArgument):
        StaticSessionHost(session_name="")
