"""Protocol definitions for the store driver boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..components.mutation import MutationType
    from ..core.types import Key, KeyValue, Value


class StoreTransaction(Protocol):
    """One underlying store transaction.

    Drivers report every failure as RetryableStoreError or FatalStoreError.
    """

    def get(self, key: Key) -> Value | None:
        """Return the value for key, observing this transaction's own writes."""
        ...

    def get_range(
        self, begin: Key, end: Key, limit: int = 0, reverse: bool = False
    ) -> list[KeyValue]:
        """Return key-value pairs with begin <= key < end in key order.

        Args:
            begin: First key (inclusive)
            end: Last key (exclusive)
            limit: Maximum number of pairs (0 = unlimited)
            reverse: Return pairs in descending key order
        """
        ...

    def set(self, key: Key, value: Value) -> None:
        """Buffer a write of value to key."""
        ...

    def clear(self, key: Key) -> None:
        """Buffer a delete of key."""
        ...

    def clear_range(self, begin: Key, end: Key) -> None:
        """Buffer a delete of every key in [begin, end)."""
        ...

    def mutate(self, kind: MutationType, key: Key, operand: bytes) -> None:
        """Buffer an atomic mutation applied at commit time."""
        ...

    def commit(self) -> None:
        """Atomically apply all buffered writes.

        Invariants:
            - Either every write becomes visible or none does
            - A read-write conflict raises RetryableStoreError
        """
        ...

    def cancel(self) -> None:
        """Abandon the transaction and release its resources."""
        ...


class Database(Protocol):
    """An open, already-established store connection."""

    def create_transaction(self) -> StoreTransaction:
        """Begin a new transaction."""
        ...

    def close(self) -> None:
        """Close the connection and release resources."""
        ...
