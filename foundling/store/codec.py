"""
foundling value codec.

Every value written to the store passes through encode() and comes back
through decode(). The on-disk form is a one-byte header followed by a
msgpack payload:

    0x00 <msgpack bytes>                  plain
    0x01 <zlib(msgpack bytes)>            compressed

Payloads at or above COMPRESS_THRESHOLD bytes are compressed. Callers
never see the header; decode(encode(v)) == v for every msgpack-able
value built from dicts, lists, str, bytes, int, float, bool and None.
Tuples come back as lists.

Keys are plain UTF-8 bytes so the engine's binary ordering is the
string ordering of the keys.
"""

from __future__ import annotations

import hashlib
import zlib
from typing import Any

import msgpack

from foundling.core.errors import EncodingError

COMPRESS_THRESHOLD = 256

_PLAIN      = b"\x00"
_COMPRESSED = b"\x01"


def _pack(value: Any) -> bytes:
    try:
        return msgpack.packb(value, use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as e:
        raise EncodingError(f"Cannot encode {type(value).__name__}: {e}") from e


def encode(value: Any) -> bytes:
    """Serialize ``value`` for storage."""
    packed = _pack(value)
    if len(packed) >= COMPRESS_THRESHOLD:
        return _COMPRESSED + zlib.compress(packed)
    return _PLAIN + packed


def decode(data: bytes) -> Any:
    """Inverse of encode(). Raises EncodingError on anything it cannot read."""
    if not data:
        raise EncodingError("Cannot decode an empty payload")
    header, body = data[:1], data[1:]
    try:
        if header == _COMPRESSED:
            body = zlib.decompress(body)
        elif header != _PLAIN:
            raise EncodingError(f"Unknown payload header {header!r}")
        return msgpack.unpackb(body, raw=False, strict_map_key=False)
    except EncodingError:
        raise
    except (zlib.error, ValueError, TypeError, msgpack.UnpackException) as e:
        raise EncodingError(f"Corrupt payload: {e}") from e


def fingerprint(value: Any) -> bytes:
    """Stable 16-byte digest of a value's msgpack form.

    Used as the duplicate discriminator in multi-value collections, so
    storing the same value twice under one key is idempotent.
    """
    return hashlib.blake2b(_pack(value), digest_size=16).digest()


def encode_key(key: str | bytes) -> bytes:
    if isinstance(key, bytes):
        return key
    if not isinstance(key, str):
        raise EncodingError(f"Keys must be str or bytes, got {type(key).__name__}")
    return key.encode("utf-8")


def decode_key(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"Key is not valid UTF-8: {e}") from e
