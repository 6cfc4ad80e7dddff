"""
Key Derivation for Session Records and Locks

Layout:
    sess:<crc32(name)>:<id>                    hash, one per session
    lock:<md5(crc32(name)-id-field)>           string, one per held lock

The session name is digested so arbitrary namespace strings produce short,
delimiter-free keys. Lock keys hash the whole tuple so field names never
leak delimiters into the keyspace.
"""

from __future__ import annotations

import hashlib
import zlib
from dataclasses import dataclass

from redsession.core import constants as C
from redsession.core.errors import InvalidArgument
from redsession.session.paths import PathLike, basename


def name_digest(name: str) -> str:
    """CRC-32 of the session name as 8 lowercase hex digits."""
    return f"{zlib.crc32(name.encode('utf-8')) & 0xFFFFFFFF:08x}"


@dataclass(frozen=True, slots=True)
class SessionKey:
    """
    Identity of one session record.

    Invariant: name and session_id are non-empty.
    """

    name: str
    session_id: str

    def __post_init__(self) -> None:
        if not self.name or not self.session_id:
            raise InvalidArgument.empty_session_identity()

    @property
    def digest(self) -> str:
        return name_digest(self.name)

    @property
    def record_key(self) -> str:
        """Hash key holding this session's fields."""
        return C.SESSION_KEY_TEMPLATE.format(digest=self.digest, session_id=self.session_id)

    def lock_key(self, path: PathLike) -> str:
        """Lock key guarding the field that owns `path`."""
        field = basename(path)
        material = "-".join((self.digest, self.session_id, field))
        return C.LOCK_KEY_TEMPLATE.format(
            digest=hashlib.md5(material.encode("utf-8")).hexdigest()
        )

    def key(self, template: str, *args: str) -> str:
        """
        Storage key by template name: "session" or "lock" (with a path).

        Raises:
            InvalidArgument: unknown template, or "lock" without a path.
        """
        if template == "session":
            return self.record_key
        if template == "lock":
            if not args:
                raise InvalidArgument.empty("lock path")
            return self.lock_key(args[0])
        raise InvalidArgument.unknown_key_template(template)

    def rotated(self, session_id: str) -> SessionKey:
        return SessionKey(name=self.name, session_id=session_id)


def session_key(name: str, session_id: str) -> str:
    return SessionKey(name, session_id).record_key


def lock_key(name: str, session_id: str, path: PathLike) -> str:
    return SessionKey(name, session_id).lock_key(path)
