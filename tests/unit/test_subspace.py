"""Unit tests for Subspace."""

import pytest

from tuplekv.components.subspace import Subspace
from tuplekv.components.tuple_codec import pack
from tuplekv.core.errors import MalformedEncodingError, PrefixMismatchError


@pytest.fixture
def users():
    """Create the users subspace."""
    return Subspace(("users",))


def test_prefix_is_encoded_tuple(users):
    """Test the prefix is the encoded prefix tuple."""
    assert users.key() == b"\x02users\x00"
    assert Subspace().key() == b""
    assert Subspace(("a",), raw_prefix=b"\x15\x01").key() == b"\x15\x01\x02a\x00"


def test_pack_concatenates(users):
    """Test pack() is prefix + encoded suffix."""
    assert users.pack(("bobo",)) == b"\x02users\x00\x02bobo\x00"
    assert users.pack(("bobo",)) == pack(("users", "bobo"))
    assert users.pack() == users.key()


@pytest.mark.parametrize("t", [(), ("bobo",), ("bobo", 3230), (None, b"\x00", (1, 2)), (-5, 1.5, True)])
def test_unpack_round_trip(users, t):
    """Test unpack(pack(t)) == t."""
    assert users.unpack(users.pack(t)) == t


def test_unpack_prefix_mismatch(users):
    """Test keys outside the subspace are rejected."""
    with pytest.raises(PrefixMismatchError):
        users.unpack(pack(("groups", "bobo")))
    with pytest.raises(PrefixMismatchError):
        users.unpack(b"\x02user")
    with pytest.raises(PrefixMismatchError):
        users.unpack(b"")


def test_unpack_propagates_malformed_suffix(users):
    """Test a corrupt suffix surfaces MalformedEncodingError."""
    with pytest.raises(MalformedEncodingError):
        users.unpack(users.key() + b"\x02unterminated")


def test_contains(users):
    """Test membership by prefix."""
    assert users.contains(users.pack(("bobo",)))
    assert users.contains(users.key())
    assert not users.contains(pack(("groups",)))


def test_range_covers_exactly_prefix(users):
    """Test range() is [prefix, strinc(prefix))."""
    start, end = users.range()
    assert start == b"\x02users\x00"
    assert end == b"\x02users\x01"

    assert start <= users.pack(("bobo",)) < end
    assert start <= users.pack(("zzz", 99)) < end
    assert not start <= pack(("usera",)) < end
    assert not start <= pack(("users2",)) < end
    assert not start <= b"\x02users" < end


def test_range_with_suffix(users):
    """Test range(t) covers keys extending pack(t)."""
    start, end = users.range(("bobo",))
    assert start == users.pack(("bobo",))
    assert start <= users.pack(("bobo", "profile")) < end
    assert not start <= users.pack(("caca",)) < end


def test_range_rolls_over_trailing_ff():
    """Test trailing 0xFF bytes are dropped before incrementing."""
    sub = Subspace(raw_prefix=b"\x01\xff\xff")
    assert sub.range() == (b"\x01\xff\xff", b"\x02")


def test_range_empty_prefix():
    """Test the root subspace covers all normal keys."""
    assert Subspace().range() == (b"", b"\xff")


def test_nested_subspaces(users):
    """Test subspace() and [] extend the prefix."""
    bobo = users["bobo"]
    assert bobo == users.subspace(("bobo",))
    assert bobo.key() == users.pack(("bobo",))
    assert bobo.unpack(bobo.pack(("email",))) == ("email",)
    assert users.unpack(bobo.pack(("email",))) == ("bobo", "email")


def test_equality_and_hash(users):
    """Test subspaces compare by prefix."""
    assert users == Subspace(("users",))
    assert hash(users) == hash(Subspace(("users",)))
    assert users != Subspace(("groups",))
    assert len({users, Subspace(("users",))}) == 1


def test_rejects_new_attributes(users):
    """Test subspaces carry no state beyond the prefix."""
    with pytest.raises(AttributeError):
        users.other = b"x"
