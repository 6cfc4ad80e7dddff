"""
Field Store: Hash-per-Session Record of Packed Fields

Data Model:
    Key: sess:<crc32(name)>:<id>
    Fields:
        - __#tx: "1", written once at creation, marks the record as existing
        - <field>: BYTES (codec-packed value of arbitrary structure)

Design:
    The store holds no per-session state. Every call takes a SessionKey, so
    identifier rotation never leaves a stale key behind inside the store.
    Locks and the local mirror are the coordinator's concern, not this one's.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncContextManager, Final, Optional

from redsession.core import constants as C
from redsession.core.errors import SerializationError
from redsession.observability.logging import StructuredLogger
from redsession.session.codec import Codec, CodecError, MsgpackCodec
from redsession.session.keys import SessionKey
from redsession.storage.protocols import KVBackendProtocol, KVPipelineProtocol

logger = StructuredLogger(__name__)


class _NotFound:
    """Sentinel type for an absent field (None is a storable value)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _NotFound()


@dataclass(slots=True)
class FieldStats:
    """Field store counters."""
    reads: int = 0
    writes: int = 0
    deletes: int = 0
    created: int = 0
    decode_failures: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "reads": self.reads,
            "writes": self.writes,
            "deletes": self.deletes,
            "created": self.created,
            "decode_failures": self.decode_failures,
        }


class FieldStore:
    """
    Session record storage, one hash per session.

    Usage:
        store = FieldStore(backend, MsgpackCodec(), ttl_seconds=1440)
        skey = SessionKey("SESSID", "abc123")

        is_new = await store.initialize_if_absent(skey)
        await store.write_field(skey, "profile", {"name": "Alice"})
        value = await store.read_field(skey, "profile")
        if value is NOT_FOUND:
            ...
    """

    __slots__ = ("_backend", "_codec", "_ttl_seconds", "_stats")

    def __init__(
        self,
        backend: KVBackendProtocol,
        codec: Optional[Codec] = None,
        ttl_seconds: int = C.SESSION_DEFAULT_TTL_SECONDS,
    ) -> None:
        self._backend = backend
        self._codec = codec if codec is not None else MsgpackCodec()
        self._ttl_seconds = ttl_seconds
        self._stats = FieldStats()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def stats(self) -> FieldStats:
        return self._stats

    # -------------------------------------------------------------------------
    # Codec boundary
    # -------------------------------------------------------------------------

    def encode(self, name: str, value: Any) -> bytes:
        try:
            return self._codec.pack(value)
        except CodecError as e:
            raise SerializationError.encode_failed(name, cause=e) from e

    def decode(self, skey: SessionKey, name: str, data: bytes) -> Any:
        try:
            return self._codec.unpack(data)
        except CodecError as e:
            self._stats.decode_failures += 1
            logger.error(
                "Field decode failed",
                session_key=skey.record_key,
                field=name,
                error=str(e),
            )
            raise SerializationError.decode_failed(name, skey.record_key, cause=e) from e

    # -------------------------------------------------------------------------
    # Record lifecycle
    # -------------------------------------------------------------------------

    async def touch(self, skey: SessionKey) -> bool:
        """Set the touch marker if absent. True means the record is new."""
        return await self._backend.hash_set_if_absent(skey.record_key, C.HASH_TOUCH_KEY, 1)

    async def initialize_if_absent(self, skey: SessionKey) -> bool:
        """
        Create the record if it does not exist.

        Returns:
            True when the record is new (TTL applied), False when it existed.
        """
        if not await self.touch(skey):
            return False

        await self._backend.expire(skey.record_key, self._ttl_seconds)
        self._stats.created += 1
        logger.debug("Session record created", session_key=skey.record_key, ttl=self._ttl_seconds)
        return True

    def pipeline(self) -> AsyncContextManager[KVPipelineProtocol]:
        """Transactional batch on the underlying backend."""
        return self._backend.pipeline()

    async def refresh_expiry(
        self,
        skey: SessionKey,
        ttl_seconds: Optional[int] = None,
        pipe: Optional[KVPipelineProtocol] = None,
    ) -> None:
        """Re-apply the record TTL, queued on `pipe` when given."""
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        if pipe is not None:
            pipe.expire(skey.record_key, ttl)
            return
        await self._backend.expire(skey.record_key, ttl)

    async def destroy(self, skey: SessionKey) -> bool:
        """Delete the whole record. Returns whether it existed."""
        return await self._backend.delete(skey.record_key)

    # -------------------------------------------------------------------------
    # Field operations
    # -------------------------------------------------------------------------

    async def read_all(self, skey: SessionKey) -> dict[str, Any]:
        """Every field except the touch marker, decoded."""
        raw = await self._backend.hash_get_all(skey.record_key)
        self._stats.reads += 1
        return {
            name: self.decode(skey, name, data)
            for name, data in raw.items()
            if name != C.HASH_TOUCH_KEY
        }

    async def read_field(self, skey: SessionKey, name: str) -> Any:
        """Decoded field value, or NOT_FOUND."""
        data = await self._backend.hash_get(skey.record_key, name)
        self._stats.reads += 1
        if data is None:
            return NOT_FOUND
        return self.decode(skey, name, data)

    async def write_field(
        self,
        skey: SessionKey,
        name: str,
        value: Any,
        pipe: Optional[KVPipelineProtocol] = None,
    ) -> None:
        """Encode and store one field, queued on `pipe` when given."""
        data = self.encode(name, value)
        self._stats.writes += 1
        if pipe is not None:
            pipe.hash_set(skey.record_key, name, data)
            return
        await self._backend.hash_set(skey.record_key, name, data)

    async def delete_field(self, skey: SessionKey, name: str) -> bool:
        """Remove one field. Returns whether it existed."""
        self._stats.deletes += 1
        return await self._backend.hash_delete(skey.record_key, name) == 1

    async def close(self) -> None:
        """Close the underlying backend."""
        await self._backend.close()
