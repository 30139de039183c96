"""Integration tests for tuplekv.

Tests cover the end-to-end flows:
1. Plain write then read
2. Structured records under a subspace
3. Atomic counters
4. Concurrent transactions and conflict retries
"""

import argparse
import runpy
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from tuplekv import (
    MemoryDatabase,
    MutationType,
    RetryPolicy,
    Subspace,
    TransactionRunner,
    decode_int64,
    encode_operand,
    tuple_codec,
)

DEMO_PATH = Path(__file__).resolve().parents[2] / "demo" / "kv_demo_driver.py"


@pytest.fixture
def runner(db):
    """Create a runner with a short backoff for tests."""
    return TransactionRunner(db, RetryPolicy(base_delay=0.001, max_delay=0.01))


def test_simple_write_then_read(runner):
    """Test a value written in one transaction is read back in another."""
    runner.run(lambda tr: tr.set(b"3230", b"Metropola"))

    assert runner.run(lambda tr: tr.get(b"3230")) == b"Metropola"


def test_subspace_record(runner):
    """Test storing and decoding a tuple-encoded record under a subspace key."""
    users = Subspace(("users",))
    key = users.pack(("bobo",))

    runner.run(lambda tr: tr.set(key, tuple_codec.pack(("Stric Bobo", 3230, "Software Engineer"))))
    raw = runner.run_read_only(lambda tr: tr.get(key))
    record = tuple_codec.unpack(raw)

    assert record[0] == "Stric Bobo"
    assert record[1] == 3230
    assert record[2] == "Software Engineer"
    assert users.unpack(key) == ("bobo",)


def test_subspace_range_scan(runner):
    """Test a range read over a subspace returns only its keys, in order."""
    users = Subspace(("users",))
    groups = Subspace(("groups",))

    def load(tr):
        for name in ("caca", "bobo", "alice"):
            tr.set(users.pack((name,)), b"u")
        tr.set(groups.pack(("admins",)), b"g")
        tr.set(Subspace(("usersx",)).pack(("zed",)), b"x")

    runner.run(load)
    rows = runner.run_read_only(lambda tr: tr.get_range(*users.range()))

    assert [users.unpack(k) for k, _ in rows] == [("alice",), ("bobo",), ("caca",)]

    runner.run(lambda tr: tr.clear_range(*users.range()))
    assert runner.run_read_only(lambda tr: tr.get_range(*users.range())) == []
    assert runner.run_read_only(lambda tr: tr.get(groups.pack(("admins",)))) == b"g"


def test_atomic_add_twice_from_absent(runner):
    """Test two ADD 1 mutations on an absent key leave the value 2."""
    counters = Subspace(("atomicCounter",))
    key = counters.pack(("visits",))
    one = (1).to_bytes(8, "little")

    for _ in range(2):
        runner.run(lambda tr: tr.mutate(MutationType.ADD, key, one))

    raw = runner.run_read_only(lambda tr: tr.get(key))
    assert raw == b"\x02\x00\x00\x00\x00\x00\x00\x00"
    assert decode_int64(raw) == 2


def test_concurrent_atomic_adds(runner):
    """Test N concurrent ADD transactions total exactly N."""
    key = Subspace(("atomicCounter",)).pack(("visits",))
    n = 50

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: runner.run(lambda tr: tr.add(key, 1)), range(n)))

    assert decode_int64(runner.run_read_only(lambda tr: tr.get(key))) == n


def test_concurrent_read_modify_write_retries(runner):
    """Test conflicting read-modify-write transactions are retried to an exact total."""
    key = b"balance"
    n = 30

    def deposit(tr):
        current = decode_int64(tr.get(key))
        tr.set(key, encode_operand(MutationType.ADD, current + 10))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: runner.run(deposit), range(n)))

    assert decode_int64(runner.run_read_only(lambda tr: tr.get(key))) == 10 * n


def test_transaction_writes_visible_atomically(runner):
    """Test readers see all or none of a transaction's writes."""
    pair = Subspace(("pair",))

    def write_pair(tr, i):
        tr.set(pair.pack(("a",)), tuple_codec.pack((i,)))
        tr.set(pair.pack(("b",)), tuple_codec.pack((i,)))

    def read_pair(tr):
        a = tr.get(pair.pack(("a",)))
        b = tr.get(pair.pack(("b",)))
        return a, b

    runner.run(lambda tr: write_pair(tr, 0))

    def writer(i):
        runner.run(lambda tr: write_pair(tr, i))

    def reader(_):
        a, b = runner.run_read_only(read_pair)
        assert a == b

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(writer, i) for i in range(1, 30)]
        futures += [pool.submit(reader, i) for i in range(30)]
        for f in futures:
            f.result()


def test_retry_exhaustion_reports_attempts(db, make_flaky_db):
    """Test callers can tell retry exhaustion from other failures."""
    from tuplekv import RetryLimitExceededError

    runner = TransactionRunner(make_flaky_db(failures=3), RetryPolicy(max_retries=2, base_delay=0.0, max_delay=0.0))
    with pytest.raises(RetryLimitExceededError) as exc_info:
        runner.run(lambda tr: tr.set(b"k", b"v"))

    assert exc_info.value.attempts == 3
    assert TransactionRunner(db).run_read_only(lambda tr: tr.get(b"k")) is None


def test_demo_driver_flow(monkeypatch):
    """Test the demo driver reproduces the write/read, user, and counter flows."""
    monkeypatch.delenv("FDB_CONNECTION_STRING", raising=False)
    demo = runpy.run_path(str(DEMO_PATH), run_name="kv_demo")

    args = argparse.Namespace(visits=3, max_retries=None, timeout=None)
    assert demo["run_demo"](args) == 3


def test_closed_database_is_fatal():
    """Test runs against a closed database fail without retrying."""
    from tuplekv import FatalStoreError

    db = MemoryDatabase()
    runner = TransactionRunner(db)
    db.close()

    with pytest.raises(FatalStoreError) as exc_info:
        runner.run(lambda tr: None)
    assert exc_info.value.code == 2000
