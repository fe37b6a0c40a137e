"""
MessagePack codec for WebSocket frames.

Outgoing payloads are JSON-compatible dicts (pydantic ``mode="json"`` dumps),
so encoding only has to handle the few rich types that may slip through:
enums, UUIDs and datetimes are converted by the ``default`` hook.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

import msgpack


class DecodeError(Exception):
    """Raised when an incoming frame is not a valid MessagePack map."""


# Limits applied to incoming frames.
MAX_BUFFER_LEN = 64 * 1024
MAX_STR_LEN = 16 * 1024
MAX_BIN_LEN = 16 * 1024
MAX_ARRAY_LEN = 512
MAX_MAP_LEN = 128
MAX_EXT_LEN = 256


def _default(obj: object) -> object:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"cannot encode {type(obj).__name__}")


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, default=_default)


def decode(data: bytes) -> dict[str, Any]:
    """Decode a frame into a dict.

    Raises DecodeError for oversized, malformed or non-map payloads.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            strict_map_key=True,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")
    return result
