"""Key-prefix namespaces built on the tuple encoding."""

from __future__ import annotations

from typing import TYPE_CHECKING

from . import tuple_codec
from ..core.errors import PrefixMismatchError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core.types import Key, TupleElement


class Subspace:
    """A namespace of keys sharing one tuple-encoded prefix.

    Args:
        prefix_tuple: Elements encoded to form the prefix
        raw_prefix: Bytes placed before the encoded elements

    Invariants:
        - The prefix is computed once and never changes
        - pack() output always starts with the prefix
        - unpack(pack(t)) == t for every encodable t
    """

    __slots__ = ("_raw_prefix",)

    def __init__(self, prefix_tuple: Sequence[TupleElement] = (), raw_prefix: bytes = b""):
        self._raw_prefix = bytes(raw_prefix) + tuple_codec.pack(prefix_tuple)

    def __repr__(self) -> str:
        return f"Subspace(raw_prefix={self._raw_prefix!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Subspace):
            return NotImplemented
        return self._raw_prefix == other._raw_prefix

    def __hash__(self) -> int:
        return hash(self._raw_prefix)

    def __getitem__(self, name: TupleElement) -> Subspace:
        return self.subspace((name,))

    def key(self) -> Key:
        """Return the raw prefix."""
        return self._raw_prefix

    def pack(self, t: Sequence[TupleElement] = ()) -> Key:
        """Return prefix + encoded tuple."""
        return self._raw_prefix + tuple_codec.pack(t)

    def unpack(self, key: Key) -> tuple:
        """Decode a key of this subspace back to its tuple suffix.

        Raises:
            PrefixMismatchError: If key does not start with the prefix
            MalformedEncodingError: If the suffix is not a valid encoding
        """
        if not self.contains(key):
            raise PrefixMismatchError(
                f"Key {bytes(key)!r} is not in subspace with prefix {self._raw_prefix!r}"
            )
        return tuple_codec.unpack(key[len(self._raw_prefix):])

    def range(self, t: Sequence[TupleElement] = ()) -> tuple[Key, Key]:
        """Return (start, end) covering exactly the keys beginning with pack(t).

        With an empty prefix the end is 0xFF, the start of the system keys.
        """
        start = self.pack(t)
        if not start:
            return start, b"\xff"
        return start, tuple_codec.strinc(start)

    def contains(self, key: Key) -> bool:
        """Return True if key starts with this subspace's prefix."""
        return bytes(key).startswith(self._raw_prefix)

    def subspace(self, t: Sequence[TupleElement]) -> Subspace:
        """Return a nested subspace whose prefix extends this one with t."""
        return Subspace(t, raw_prefix=self._raw_prefix)
