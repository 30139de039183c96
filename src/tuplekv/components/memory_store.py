"""In-memory store driver with optimistic conflict detection.

Uses sortedcontainers.SortedDict for ordered keys. Every entry carries the
version of the commit that last wrote it; deletes leave tombstones so that
concurrent readers can detect them.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

from .mutation import apply_mutation
from ..core.config import MemoryStoreConfig
from ..core.errors import FatalStoreError, StoreError

if TYPE_CHECKING:
    from .mutation import MutationType
    from ..core.types import Key, KeyValue, Value, Version

logger = logging.getLogger(__name__)

OP_SET = 0
OP_CLEAR = 1
OP_CLEAR_RANGE = 2
OP_MUTATE = 3


class MemoryDatabase:
    """Single-process database implementing the store driver boundary.

    Args:
        config: Size and age limits

    Invariants:
        - Commits are serialized and applied atomically
        - Versions increase by one per committed write transaction
        - A transaction never observes a write newer than its read version;
          it fails with a retryable error instead
    """

    def __init__(self, config: MemoryStoreConfig | None = None):
        self.config = config or MemoryStoreConfig()
        self._data: SortedDict = SortedDict()
        self._lock = threading.Lock()
        self._version: Version = 0
        self._commit_times: deque[tuple[Version, float]] = deque()
        self._tombstones: deque[tuple[Version, Key]] = deque()
        self._closed = False

        logger.info("Initialized in-memory database")

    @property
    def version(self) -> Version:
        """Version of the latest committed write transaction."""
        with self._lock:
            return self._version

    def create_transaction(self) -> MemoryTransaction:
        """Begin a transaction reading at the current version."""
        with self._lock:
            self._check_open()
            return MemoryTransaction(self, self._version)

    def close(self) -> None:
        """Close the database; later use raises FatalStoreError."""
        logger.info("Closing in-memory database")
        with self._lock:
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError.from_code(2000, "database is closed")

    def _check_age(self, txn: MemoryTransaction) -> None:
        if time.monotonic() - txn.started_at > self.config.max_transaction_age:
            raise StoreError.from_code(1007)

    def _read(self, txn: MemoryTransaction, key: Key) -> Value | None:
        with self._lock:
            self._check_open()
            self._check_age(txn)
            entry = self._data.get(key)
        if entry is None:
            return None
        value, version = entry
        if version > txn.read_version:
            raise StoreError.from_code(1007, "read version is no longer available")
        return value

    def _read_range(self, txn: MemoryTransaction, begin: Key, end: Key) -> list[KeyValue]:
        results = []
        with self._lock:
            self._check_open()
            self._check_age(txn)
            for key in self._data.irange(begin, end, inclusive=(True, False)):
                value, version = self._data[key]
                if version > txn.read_version:
                    raise StoreError.from_code(1007, "read version is no longer available")
                if value is not None:
                    results.append((key, value))
        return results

    def _has_conflict(self, txn: MemoryTransaction) -> bool:
        """Return True if anything txn read was written after its read version (lock held)."""
        for key in txn.read_keys:
            entry = self._data.get(key)
            if entry is not None and entry[1] > txn.read_version:
                return True
        for begin, end in txn.read_ranges:
            for key in self._data.irange(begin, end, inclusive=(True, False)):
                if self._data[key][1] > txn.read_version:
                    return True
        return False

    def _commit(self, txn: MemoryTransaction) -> Version:
        with self._lock:
            self._check_open()
            self._check_age(txn)

            if not txn.ops:
                return txn.read_version

            if self._has_conflict(txn):
                logger.debug(f"Conflict detected for transaction at read version {txn.read_version}")
                raise StoreError.from_code(1020)

            version = self._version + 1
            for op in txn.ops:
                self._apply_locked(op, version)

            self._version = version
            now = time.monotonic()
            self._commit_times.append((version, now))
            self._prune_locked(now)

        logger.debug(f"Committed {len(txn.ops)} operation(s) at version {version}")
        return version

    def _put_locked(self, key: Key, value: Value | None, version: Version) -> None:
        self._data[key] = (value, version)
        if value is None:
            self._tombstones.append((version, key))

    def _apply_locked(self, op: tuple, version: Version) -> None:
        code = op[0]
        if code == OP_SET:
            self._put_locked(op[1], op[2], version)
        elif code == OP_CLEAR:
            if op[1] in self._data:
                self._put_locked(op[1], None, version)
        elif code == OP_CLEAR_RANGE:
            doomed = [
                key
                for key in self._data.irange(op[1], op[2], inclusive=(True, False))
                if self._data[key][0] is not None
            ]
            for key in doomed:
                self._put_locked(key, None, version)
        else:
            _code, kind, key, operand = op
            entry = self._data.get(key)
            existing = entry[0] if entry is not None else None
            result = apply_mutation(kind, existing, operand)
            if result is not None or entry is not None:
                self._put_locked(key, result, version)

    def _prune_locked(self, now: float) -> None:
        """Drop tombstones no live transaction can still need."""
        horizon = now - self.config.max_transaction_age
        prunable = 0
        while self._commit_times and self._commit_times[0][1] < horizon:
            prunable = self._commit_times.popleft()[0]

        while self._tombstones and self._tombstones[0][0] <= prunable:
            version, key = self._tombstones.popleft()
            entry = self._data.get(key)
            if entry is not None and entry == (None, version):
                del self._data[key]


class MemoryTransaction:
    """Transaction against a MemoryDatabase.

    Writes are buffered in order and replayed for reads, so a transaction
    observes its own uncommitted writes.
    """

    def __init__(self, db: MemoryDatabase, read_version: Version):
        self._db = db
        self.read_version = read_version
        self.started_at = time.monotonic()
        self.ops: list[tuple] = []
        self.read_keys: set[Key] = set()
        self.read_ranges: list[tuple[Key, Key]] = []
        self._size_bytes = 0
        self._done = False

    def _check_usable(self) -> None:
        if self._done:
            raise StoreError.from_code(2000, "transaction has already been committed or cancelled")

    def _check_key(self, key: Key) -> None:
        if not isinstance(key, (bytes, bytearray)):
            raise FatalStoreError(f"Keys must be bytes, got {type(key).__name__}", code=2000)
        if key.startswith(b"\xff"):
            raise StoreError.from_code(2004)
        if len(key) > self._db.config.max_key_bytes:
            raise StoreError.from_code(2102)

    def _check_value(self, value: Value) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise FatalStoreError(f"Values must be bytes, got {type(value).__name__}", code=2000)
        if len(value) > self._db.config.max_value_bytes:
            raise StoreError.from_code(2103)

    def _record(self, op: tuple, size: int) -> None:
        self.ops.append(op)
        self._size_bytes += size

    def get(self, key: Key) -> Value | None:
        self._check_usable()
        key = bytes(key)

        # Latest set/clear covering key decides the base; later mutations apply on top
        start = 0
        value: Value | None = None
        for i in range(len(self.ops) - 1, -1, -1):
            op = self.ops[i]
            if op[0] == OP_SET and op[1] == key:
                start, value = i + 1, op[2]
                break
            if op[0] == OP_CLEAR and op[1] == key:
                start, value = i + 1, None
                break
            if op[0] == OP_CLEAR_RANGE and op[1] <= key < op[2]:
                start, value = i + 1, None
                break
        else:
            self.read_keys.add(key)
            value = self._db._read(self, key)

        for op in self.ops[start:]:
            if op[0] == OP_MUTATE and op[2] == key:
                value = apply_mutation(op[1], value, op[3])
        return value

    def get_range(
        self, begin: Key, end: Key, limit: int = 0, reverse: bool = False
    ) -> list[KeyValue]:
        self._check_usable()
        begin, end = bytes(begin), bytes(end)
        if begin >= end:
            return []

        self.read_ranges.append((begin, end))
        merged = dict(self._db._read_range(self, begin, end))

        for op in self.ops:
            code = op[0]
            if code == OP_CLEAR_RANGE:
                for key in [k for k in merged if op[1] <= k < op[2]]:
                    del merged[key]
                continue

            key = op[2] if code == OP_MUTATE else op[1]
            if not begin <= key < end:
                continue
            if code == OP_SET:
                merged[key] = op[2]
            elif code == OP_CLEAR:
                merged.pop(key, None)
            else:
                result = apply_mutation(op[1], merged.get(key), op[3])
                if result is None:
                    merged.pop(key, None)
                else:
                    merged[key] = result

        items = sorted(merged.items(), reverse=reverse)
        if limit > 0:
            items = items[:limit]
        return items

    def set(self, key: Key, value: Value) -> None:
        self._check_usable()
        self._check_key(key)
        self._check_value(value)
        self._record((OP_SET, bytes(key), bytes(value)), len(key) + len(value))

    def clear(self, key: Key) -> None:
        self._check_usable()
        self._check_key(key)
        self._record((OP_CLEAR, bytes(key)), len(key))

    def clear_range(self, begin: Key, end: Key) -> None:
        self._check_usable()
        if begin > end:
            raise StoreError.from_code(2006)
        if begin == end:
            return
        self._record((OP_CLEAR_RANGE, bytes(begin), bytes(end)), len(begin) + len(end))

    def mutate(self, kind: MutationType, key: Key, operand: bytes) -> None:
        self._check_usable()
        self._check_key(key)
        self._check_value(operand)
        self._record((OP_MUTATE, kind, bytes(key), bytes(operand)), len(key) + len(operand))

    def commit(self) -> None:
        self._check_usable()
        if self._size_bytes > self._db.config.max_transaction_bytes:
            self._done = True
            raise StoreError.from_code(2101)
        try:
            self._db._commit(self)
        finally:
            self._done = True

    def cancel(self) -> None:
        self._done = True
