"""
Host Lifecycle Boundary

The coordinator never manages transport details (cookies, headers). It asks
the host for the current identifier and namespace, whether a session is
active, and to rotate the identifier.
"""

from __future__ import annotations

import secrets
from typing import Optional, Protocol, runtime_checkable

from redsession.core import constants as C
from redsession.core.errors import InvalidArgument


@runtime_checkable
class SessionHost(Protocol):
    """Request-lifecycle collaborator a SessionCoordinator is bound to."""

    @property
    def session_id(self) -> Optional[str]: ...

    @property
    def session_name(self) -> str: ...

    def is_active(self) -> bool: ...

    async def start(self) -> None: ...

    async def regenerate_id(self) -> str: ...

    def set_id(self, session_id: str) -> None: ...


def generate_session_id() -> str:
    return secrets.token_hex(C.SESSION_ID_BYTES)


class StaticSessionHost:
    """
    In-process host: no transport, ids from `secrets.token_hex`.

    Used by the CLI and tests, and by worker processes that carry a
    session id through some other channel.
    """

    __slots__ = ("_session_id", "_session_name", "_active", "_rotations")

    def __init__(
        self,
        session_id: Optional[str] = None,
        session_name: str = C.SESSION_DEFAULT_NAME,
    ) -> None:
        if not session_name:
            raise InvalidArgument.empty("session name")
        self._session_id = session_id
        self._session_name = session_name
        self._active = False
        self._rotations = 0

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def session_name(self) -> str:
        return self._session_name

    @property
    def rotations(self) -> int:
        """Number of identifier rotations so far."""
        return self._rotations

    def is_active(self) -> bool:
        return self._active

    async def start(self) -> None:
        if self._session_id is None:
            self._session_id = generate_session_id()
        self._active = True

    async def regenerate_id(self) -> str:
        self._session_id = generate_session_id()
        self._rotations += 1
        return self._session_id

    def set_id(self, session_id: str) -> None:
        if not session_id:
            raise InvalidArgument.empty("session id")
        self._session_id = session_id

    def __repr__(self) -> str:
        return f"StaticSessionHost(name={self._session_name!r}, id={self._session_id!r})"
