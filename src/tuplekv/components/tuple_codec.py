"""Order-preserving tuple encoding.

Packs tuples of typed values into byte strings whose lexicographic order
matches the natural order of the tuples. The layout is compatible with the
FoundationDB tuple layer, so keys written by other clients decode here.
"""

from __future__ import annotations

import struct
import uuid
from typing import TYPE_CHECKING

from ..core.errors import MalformedEncodingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core.types import Key, TupleElement

# Element format: [type code (1B)] [payload]
#   bytes/str:  0x00 escaped as 0x00 0xFF, terminated by 0x00
#   int:        0x14 is zero, 0x14 +/- n for an n-byte big-endian magnitude,
#               negatives stored as ones' complement
#   double:     big-endian IEEE-754, sign bit flipped (all bits if negative)
#   nested:     children, terminated by 0x00 (None inside is 0x00 0xFF)
NULL_CODE = 0x00
BYTES_CODE = 0x01
STRING_CODE = 0x02
NESTED_CODE = 0x05
NEG_INT_START = 0x0B
INT_ZERO_CODE = 0x14
POS_INT_END = 0x1D
DOUBLE_CODE = 0x21
FALSE_CODE = 0x26
TRUE_CODE = 0x27
UUID_CODE = 0x30

MAX_INT_BYTES = 255
MAX_NESTING_DEPTH = 256
_size_limits = tuple((1 << (i * 8)) - 1 for i in range(9))


def _escape(raw: bytes) -> bytes:
    return raw.replace(b"\x00", b"\x00\xff") + b"\x00"


def _encode_int(value: int) -> bytes:
    if value == 0:
        return bytes([INT_ZERO_CODE])

    magnitude = -value if value < 0 else value
    n = (magnitude.bit_length() + 7) // 8

    if n <= 8:
        if value > 0:
            return bytes([INT_ZERO_CODE + n]) + value.to_bytes(n, "big")
        return bytes([INT_ZERO_CODE - n]) + (_size_limits[n] + value).to_bytes(n, "big")

    if n > MAX_INT_BYTES:
        raise ValueError(f"Integer magnitude of {n} bytes exceeds {MAX_INT_BYTES}-byte limit")
    if value > 0:
        return bytes([POS_INT_END, n]) + value.to_bytes(n, "big")
    complement = (1 << (n * 8)) - 1 + value
    return bytes([NEG_INT_START, n ^ 0xFF]) + complement.to_bytes(n, "big")


def _encode_double(value: float) -> bytes:
    bits = struct.pack(">d", value)
    if bits[0] & 0x80:
        bits = bytes(b ^ 0xFF for b in bits)
    else:
        bits = bytes([bits[0] ^ 0x80]) + bits[1:]
    return bytes([DOUBLE_CODE]) + bits


def _encode(value: TupleElement, nested: bool = False, depth: int = 0) -> bytes:
    """Encode a single element; depth counts enclosing nested tuples."""
    if value is None:
        return b"\x00\xff" if nested else b"\x00"
    if isinstance(value, bool):
        return bytes([TRUE_CODE if value else FALSE_CODE])
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes([BYTES_CODE]) + _escape(bytes(value))
    if isinstance(value, str):
        return bytes([STRING_CODE]) + _escape(value.encode("utf-8"))
    if isinstance(value, int):
        return _encode_int(value)
    if isinstance(value, float):
        return _encode_double(value)
    if isinstance(value, uuid.UUID):
        return bytes([UUID_CODE]) + value.bytes
    if isinstance(value, (tuple, list)):
        if depth >= MAX_NESTING_DEPTH:
            raise ValueError(f"Tuple nesting exceeds {MAX_NESTING_DEPTH} levels")
        return (
            bytes([NESTED_CODE])
            + b"".join(_encode(v, nested=True, depth=depth + 1) for v in value)
            + b"\x00"
        )
    raise TypeError(f"Unsupported type for tuple encoding: {type(value).__name__}")


def _find_terminator(data: bytes, pos: int) -> int:
    """Return the offset of the 0x00 ending the escaped field starting at pos."""
    while True:
        pos = data.find(b"\x00", pos)
        if pos < 0:
            raise MalformedEncodingError("Unterminated byte string")
        if pos + 1 < len(data) and data[pos + 1] == 0xFF:
            pos += 2
            continue
        return pos


def _take(data: bytes, pos: int, n: int) -> bytes:
    end = pos + n
    if end > len(data):
        raise MalformedEncodingError(
            f"Truncated input: need {n} bytes at offset {pos}, have {len(data) - pos}"
        )
    return data[pos:end]


def _decode(data: bytes, pos: int, depth: int = 0) -> tuple[TupleElement, int]:
    """Decode one element at pos; return (value, next offset)."""
    code = data[pos]

    if code == NULL_CODE:
        return None, pos + 1

    if code == BYTES_CODE or code == STRING_CODE:
        end = _find_terminator(data, pos + 1)
        raw = data[pos + 1 : end].replace(b"\x00\xff", b"\x00")
        if code == BYTES_CODE:
            return raw, end + 1
        try:
            return raw.decode("utf-8"), end + 1
        except UnicodeDecodeError as e:
            raise MalformedEncodingError(f"Invalid UTF-8 in string at offset {pos}") from e

    if code == NESTED_CODE:
        if depth >= MAX_NESTING_DEPTH:
            raise MalformedEncodingError(f"Nesting too deep at offset {pos}")
        items: list[TupleElement] = []
        pos += 1
        while True:
            if pos >= len(data):
                raise MalformedEncodingError("Unterminated nested tuple")
            if data[pos] == 0x00:
                if pos + 1 < len(data) and data[pos + 1] == 0xFF:
                    items.append(None)
                    pos += 2
                    continue
                return tuple(items), pos + 1
            value, pos = _decode(data, pos, depth + 1)
            items.append(value)

    if NEG_INT_START < code < POS_INT_END:
        n = code - INT_ZERO_CODE
        if n >= 0:
            return int.from_bytes(_take(data, pos + 1, n), "big"), pos + 1 + n
        n = -n
        raw = int.from_bytes(_take(data, pos + 1, n), "big")
        return raw - _size_limits[n], pos + 1 + n

    if code == POS_INT_END or code == NEG_INT_START:
        length = _take(data, pos + 1, 1)[0]
        if code == NEG_INT_START:
            length ^= 0xFF
        raw = int.from_bytes(_take(data, pos + 2, length), "big")
        if code == NEG_INT_START:
            raw -= (1 << (length * 8)) - 1
        return raw, pos + 2 + length

    if code == DOUBLE_CODE:
        bits = bytearray(_take(data, pos + 1, 8))
        if bits[0] & 0x80:
            bits[0] ^= 0x80
        else:
            bits = bytearray(b ^ 0xFF for b in bits)
        return struct.unpack(">d", bytes(bits))[0], pos + 9

    if code == FALSE_CODE:
        return False, pos + 1
    if code == TRUE_CODE:
        return True, pos + 1

    if code == UUID_CODE:
        return uuid.UUID(bytes=_take(data, pos + 1, 16)), pos + 17

    raise MalformedEncodingError(f"Unknown type code 0x{code:02x} at offset {pos}")


def pack(t: Sequence[TupleElement]) -> Key:
    """Encode a tuple to bytes with order preservation.

    Raises:
        TypeError: If an element has an unsupported type
        ValueError: If an integer is too large to encode
    """
    if not isinstance(t, (tuple, list)):
        raise TypeError(f"Expected a tuple, got {type(t).__name__}")
    return b"".join(_encode(v) for v in t)


def unpack(data: bytes) -> tuple:
    """Decode bytes back to a tuple.

    Raises:
        MalformedEncodingError: On truncated input, unknown type codes,
            invalid UTF-8, or unterminated nested tuples
    """
    data = bytes(data)
    result = []
    pos = 0
    while pos < len(data):
        value, pos = _decode(data, pos)
        result.append(value)
    return tuple(result)


encode = pack
decode = unpack


def strinc(key: Key) -> Key:
    """Return the first key that does not have `key` as a prefix.

    Trailing 0xFF bytes are dropped before the last byte is incremented.
    """
    stripped = bytes(key).rstrip(b"\xff")
    if not stripped:
        raise ValueError("Key must contain at least one byte not equal to 0xFF")
    return stripped[:-1] + bytes([stripped[-1] + 1])


def range(t: Sequence[TupleElement] = ()) -> tuple[Key, Key]:  # noqa: A001
    """Return the key range covering every tuple that extends `t`."""
    p = pack(t)
    return p + b"\x00", p + b"\xff"
