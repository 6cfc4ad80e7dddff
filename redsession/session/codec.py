"""
Field Codecs: Pack Session Values to Bytes and Back

The field store treats serialization as an opaque, swappable boundary.
Any object with `pack(value) -> bytes` and `unpack(data) -> value` fits.

Wire format of MsgpackCodec:
    [1-byte flags][payload]
    flags 0x00: payload is raw MessagePack
    flags 0x01: payload is LZ4-frame-compressed MessagePack

Payloads at or above `compress_threshold` bytes are compressed.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

import lz4.frame
import msgpack

from redsession.core import constants as C


class CodecError(ValueError):
    """Value cannot be packed, or bytes cannot be unpacked."""


@runtime_checkable
class Codec(Protocol):
    """Serialization boundary used by FieldStore."""

    def pack(self, value: Any) -> bytes: ...

    def unpack(self, data: bytes) -> Any: ...


class MsgpackCodec:
    """
    MessagePack codec with LZ4 compression for large values.

    Integer map keys survive the round trip, which keeps list-style path
    segments ("items.0") addressable after a reload. Tuples come back as
    lists.
    """

    __slots__ = ("_compress_threshold",)

    def __init__(self, compress_threshold: int = C.COMPRESSION_THRESHOLD) -> None:
        self._compress_threshold = compress_threshold

    def pack(self, value: Any) -> bytes:
        try:
            payload = msgpack.packb(value, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise CodecError(f"cannot pack {type(value).__name__}: {e}") from e

        if self._compress_threshold and len(payload) >= self._compress_threshold:
            return bytes([C.CODEC_FLAG_LZ4]) + lz4.frame.compress(payload)
        return bytes([C.CODEC_FLAG_RAW]) + payload

    def unpack(self, data: bytes) -> Any:
        if not data:
            raise CodecError("empty payload")

        flags, payload = data[0], data[1:]
        try:
            if flags == C.CODEC_FLAG_LZ4:
                payload = lz4.frame.decompress(payload)
            elif flags != C.CODEC_FLAG_RAW:
                raise CodecError(f"unknown codec flags 0x{flags:02x}")
            return msgpack.unpackb(payload, raw=False, strict_map_key=False)
        except CodecError:
            raise
        except (ValueError, TypeError, RuntimeError, msgpack.UnpackException) as e:
            raise CodecError(f"corrupt payload: {e}") from e


class JsonCodec:
    """
    UTF-8 JSON codec.

    Human-readable in redis-cli; map keys become strings and bytes are not
    supported.
    """

    __slots__ = ()

    def pack(self, value: Any) -> bytes:
        try:
            return json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CodecError(f"cannot pack {type(value).__name__}: {e}") from e

    def unpack(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise CodecError(f"corrupt payload: {e}") from e


def create_codec(name: str = "msgpack", compress_threshold: int = C.COMPRESSION_THRESHOLD) -> Codec:
    """Codec by name: "msgpack" (default) or "json"."""
    if name == "msgpack":
        return MsgpackCodec(compress_threshold=compress_threshold)
    if name == "json":
        return JsonCodec()
    raise CodecError(f"unknown codec '{name}'")
