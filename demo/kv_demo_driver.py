#!/usr/bin/env python3
"""tuplekv Demo Driver

Walks through a plain write/read, a record stored under a `users`
subspace, and an atomic `visits` counter, all against the in-memory
database.

Usage:
    python demo/kv_demo_driver.py --visits 3 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging

from tuplekv import (
    ClusterConfig,
    MemoryDatabase,
    MutationType,
    RetryPolicy,
    Subspace,
    TransactionRunner,
    decode_int64,
    tuple_codec,
)

logger = logging.getLogger("kv_demo")


def perform_simple_write(runner: TransactionRunner, key: str, value: str) -> None:
    runner.run(lambda tr: tr.set(key.encode(), value.encode()))


def perform_simple_read(runner: TransactionRunner, key: str) -> bytes | None:
    return runner.run_read_only(lambda tr: tr.get(key.encode()))


def run_demo(args: argparse.Namespace) -> int:
    """Run the demo flows and return the final visit count."""
    cluster = ClusterConfig.from_env()
    logger.info(f"Starting tuplekv demo (would connect via {cluster.describe()})")

    policy = RetryPolicy(max_retries=args.max_retries, timeout=args.timeout)

    with MemoryDatabase() as db:
        runner = TransactionRunner(db, policy)

        logger.info("Performing simple write")
        perform_simple_write(runner, "3230", "Metropola")

        logger.info("Performing simple read")
        value = perform_simple_read(runner, "3230")
        logger.info(f"Read value: {value.decode() if value is not None else None}")

        logger.info("Trying out insert and read with subspace...")
        users = Subspace(("users",))

        def insert_user(tr):
            user_data = ("Stric Bobo", 3230, "Software Engineer")
            tr.set(users.pack(("bobo",)), tuple_codec.pack(user_data))
            logger.info(f"Inserted user: bobo -> {user_data}")

        runner.run(insert_user)

        raw = runner.run_read_only(lambda tr: tr.get(users.pack(("bobo",))))
        if raw is not None:
            name, origin, job = tuple_codec.unpack(raw)
            logger.info("Read user:")
            logger.info(f"  Name: {name}")
            logger.info(f"  Origin: {origin}")
            logger.info(f"  Job: {job}")
        else:
            logger.warning("User not found")

        logger.info("Trying out atomic counter with subspace...")
        counters = Subspace(("atomicCounter",))
        visits_key = counters.pack(("visits",))

        for _ in range(args.visits):
            runner.run(lambda tr: tr.mutate(MutationType.ADD, visits_key, 1))
            logger.info("Incremented 'visits' counter atomically")

        count = runner.run_read_only(lambda tr: decode_int64(tr.get(visits_key)))
        logger.info(f"Current 'visits' count: {count}")

    logger.info("Demo completed successfully")
    return count


def main() -> None:
    parser = argparse.ArgumentParser(description="tuplekv demo driver")
    parser.add_argument("--visits", type=int, default=1, help="Number of counter increments")
    parser.add_argument("--max-retries", type=int, default=None, help="Retry budget per transaction")
    parser.add_argument("--timeout", type=float, default=None, help="Per-run deadline in seconds")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_demo(args)


if __name__ == "__main__":
    main()
