"""Atomic mutations applied by the store during commit.

Operands for numeric mutations are 8-byte little-endian integers. Getting
the width or byte order wrong silently corrupts counters, so operands are
validated strictly before they reach a transaction.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum

from ..core.errors import InvalidOperandError
from ..core.types import Key, Value

INT64_WIDTH = 8
MAX_VALUE_BYTES = 100_000


class MutationType(Enum):
    """Kinds of atomic mutation, numbered as in the store's client API."""

    ADD = 2
    BIT_AND = 6
    BIT_OR = 7
    BIT_XOR = 8
    APPEND_IF_FITS = 9
    MAX = 12
    MIN = 13
    BYTE_MIN = 16
    BYTE_MAX = 17
    COMPARE_AND_CLEAR = 20


NUMERIC_MUTATIONS = frozenset({
    MutationType.ADD,
    MutationType.BIT_AND,
    MutationType.BIT_OR,
    MutationType.BIT_XOR,
    MutationType.MAX,
    MutationType.MIN,
})


def encode_operand(kind: MutationType, value: int | bytes) -> bytes:
    """Validate and encode the operand for a mutation kind.

    Args:
        kind: Mutation type
        value: int (numeric kinds only) or raw bytes

    Returns:
        Operand bytes; 8-byte little-endian for numeric kinds

    Raises:
        InvalidOperandError: On a wrong type, width, or out-of-range integer
    """
    if not isinstance(kind, MutationType):
        raise InvalidOperandError(f"Unknown mutation type: {kind!r}")

    if isinstance(value, bool):
        raise InvalidOperandError(f"{kind.name} operand must not be a bool")

    if kind in NUMERIC_MUTATIONS:
        if isinstance(value, int):
            if -(1 << 63) <= value < (1 << 63):
                return struct.pack("<q", value)
            if 0 <= value < (1 << 64):
                return struct.pack("<Q", value)
            raise InvalidOperandError(f"{kind.name} operand {value} does not fit in 64 bits")
        if isinstance(value, (bytes, bytearray)):
            if len(value) != INT64_WIDTH:
                raise InvalidOperandError(
                    f"{kind.name} operand must be exactly {INT64_WIDTH} bytes, got {len(value)}"
                )
            return bytes(value)
        raise InvalidOperandError(
            f"{kind.name} operand must be int or bytes, got {type(value).__name__}"
        )

    if not isinstance(value, (bytes, bytearray)):
        raise InvalidOperandError(f"{kind.name} operand must be bytes, got {type(value).__name__}")
    if len(value) > MAX_VALUE_BYTES:
        raise InvalidOperandError(
            f"{kind.name} operand of {len(value)} bytes exceeds {MAX_VALUE_BYTES}"
        )
    return bytes(value)


def decode_int64(value: Value | None) -> int:
    """Read an 8-byte little-endian signed counter; an absent value reads as 0."""
    if value is None:
        return 0
    if len(value) != INT64_WIDTH:
        raise InvalidOperandError(f"Counter value must be {INT64_WIDTH} bytes, got {len(value)}")
    return struct.unpack("<q", value)[0]


def _fit(existing: bytes, width: int) -> bytes:
    return existing[:width].ljust(width, b"\x00")


def apply_mutation(kind: MutationType, existing: Value | None, operand: bytes) -> Value | None:
    """Compute the value a mutation leaves behind; None means the key is cleared."""
    width = len(operand)

    if kind is MutationType.ADD:
        base = int.from_bytes(_fit(existing or b"", width), "little")
        total = (base + int.from_bytes(operand, "little")) % (1 << (8 * width))
        return total.to_bytes(width, "little")

    if kind in (MutationType.BIT_AND, MutationType.BIT_OR, MutationType.BIT_XOR):
        if existing is None:
            return operand
        base = _fit(existing, width)
        if kind is MutationType.BIT_AND:
            return bytes(a & b for a, b in zip(base, operand))
        if kind is MutationType.BIT_OR:
            return bytes(a | b for a, b in zip(base, operand))
        return bytes(a ^ b for a, b in zip(base, operand))

    if kind in (MutationType.MAX, MutationType.MIN):
        if existing is None:
            return operand
        base = _fit(existing, width)
        current = int.from_bytes(base, "little")
        other = int.from_bytes(operand, "little")
        if kind is MutationType.MAX:
            return operand if other > current else base
        return operand if other < current else base

    if kind is MutationType.BYTE_MIN:
        return operand if existing is None else min(existing, operand)
    if kind is MutationType.BYTE_MAX:
        return operand if existing is None else max(existing, operand)

    if kind is MutationType.APPEND_IF_FITS:
        base = existing or b""
        if len(base) + width > MAX_VALUE_BYTES:
            return existing
        return base + operand

    if kind is MutationType.COMPARE_AND_CLEAR:
        return None if existing == operand else existing

    raise InvalidOperandError(f"Unsupported mutation type: {kind!r}")


@dataclass(frozen=True)
class AtomicMutation:
    """One atomic update: a mutation kind, its key, and a validated operand."""

    kind: MutationType
    key: Key
    operand: bytes

    @classmethod
    def create(cls, kind: MutationType, key: Key, value: int | bytes) -> AtomicMutation:
        """Build a mutation, validating the operand for its kind."""
        return cls(kind, bytes(key), encode_operand(kind, value))

    def apply(self, existing: Value | None) -> Value | None:
        """Return the value this mutation leaves behind."""
        return apply_mutation(self.kind, existing, self.operand)
