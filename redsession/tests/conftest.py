"""Shared fixtures: a controllable clock and an in-memory backend bound to it."""

from __future__ import annotations

import pytest

from redsession.session import lock as lock_module
from redsession.storage import InMemoryKVBackend


class FakeClock:
    def __init__(self, t: float = 1_700_000_000.0) -> None:
        self.t = t

    def __call__(self) -> float:  # acts like time.time
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryKVBackend:
    return InMemoryKVBackend(clock=clock)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record lock retry sleeps instead of waiting."""
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(lock_module.asyncio, "sleep", fake_sleep)
    return recorded
