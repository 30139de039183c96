"""Per-attempt transaction handles passed to work units.

A context wraps exactly one store transaction. The runner creates a fresh
context for every attempt and closes it when the attempt ends, so conflict
tracking always restarts clean.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..components.mutation import AtomicMutation, MutationType
from ..components.tuple_codec import strinc
from .errors import StoreError

if TYPE_CHECKING:
    from ..interfaces.store import StoreTransaction
    from .types import Key, KeyValue, Value


class ReadContext:
    """Read-only view of one transaction attempt.

    Args:
        tr: Underlying store transaction
        attempt: 1-based attempt number
    """

    def __init__(self, tr: StoreTransaction, attempt: int = 1):
        self._tr = tr
        self.attempt = attempt
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError.from_code(2000, "transaction context used after its attempt ended")

    def get(self, key: Key) -> Value | None:
        """Return the value for key, or None if absent."""
        self._check_open()
        return self._tr.get(key)

    def get_range(
        self, begin: Key, end: Key, limit: int = 0, reverse: bool = False
    ) -> list[KeyValue]:
        """Return pairs with begin <= key < end, in key order."""
        self._check_open()
        return self._tr.get_range(begin, end, limit=limit, reverse=reverse)

    def get_range_startswith(self, prefix: Key, limit: int = 0) -> list[KeyValue]:
        """Return all pairs whose key starts with prefix."""
        return self.get_range(prefix, strinc(prefix), limit=limit)

    def close(self) -> None:
        self._closed = True


class TransactionContext(ReadContext):
    """Read-write view of one transaction attempt."""

    def set(self, key: Key, value: Value) -> None:
        self._check_open()
        self._tr.set(key, value)

    def clear(self, key: Key) -> None:
        self._check_open()
        self._tr.clear(key)

    def clear_range(self, begin: Key, end: Key) -> None:
        self._check_open()
        self._tr.clear_range(begin, end)

    def mutate(self, kind: MutationType, key: Key, value: int | bytes) -> None:
        """Queue an atomic mutation; integer values are encoded as 8-byte little-endian.

        Raises:
            InvalidOperandError: If the operand does not fit the mutation kind
        """
        self._check_open()
        mutation = AtomicMutation.create(kind, key, value)
        self._tr.mutate(mutation.kind, mutation.key, mutation.operand)

    def add(self, key: Key, delta: int = 1) -> None:
        """Atomically add delta to the 64-bit counter at key."""
        self.mutate(MutationType.ADD, key, delta)
