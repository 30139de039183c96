"""Configuration for tuplekv.

Defines the retry policy used by the transaction runner, the limits of the
in-memory driver, and cluster connection settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_CLUSTER_FILE = "/etc/foundationdb/fdb.cluster"


@dataclass
class RetryPolicy:
    """Retry and backoff parameters for TransactionRunner.

    Attributes:
        max_retries: Retries allowed after the first attempt (None = unbounded)
        base_delay: Backoff before the first retry, in seconds
        max_delay: Upper bound for any single backoff, in seconds
        jitter: Whether to scale each delay by a random factor in [0.5, 1.5]
        timeout: Seconds after which the run stops retrying (None = no deadline)
    """

    max_retries: int | None = None
    base_delay: float = 0.01  # 10 ms
    max_delay: float = 1.0
    jitter: bool = True
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("backoff delays must be non-negative")
        if self.base_delay > self.max_delay:
            raise ValueError(
                f"base_delay ({self.base_delay}) exceeds max_delay ({self.max_delay})"
            )
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")


@dataclass
class MemoryStoreConfig:
    """Limits enforced by the in-memory driver.

    Attributes:
        max_key_bytes: Largest key accepted
        max_value_bytes: Largest value accepted
        max_transaction_bytes: Largest total size of one transaction's writes
        max_transaction_age: Seconds a transaction may stay open before commit
    """

    max_key_bytes: int = 10_000
    max_value_bytes: int = 100_000
    max_transaction_bytes: int = 10_000_000  # 10 MB
    max_transaction_age: float = 5.0


@dataclass
class ClusterConfig:
    """Location of the cluster to connect to.

    Attributes:
        connection_string: Inline cluster description, takes precedence
        cluster_file: Path to a cluster file
    """

    connection_string: str | None = None
    cluster_file: str = DEFAULT_CLUSTER_FILE

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClusterConfig:
        """Resolve FDB_CONNECTION_STRING, then FDB_CLUSTER_FILE, then the default path."""
        env = os.environ if environ is None else environ

        connection_string = env.get("FDB_CONNECTION_STRING", "").strip() or None
        cluster_file = env.get("FDB_CLUSTER_FILE", "").strip() or DEFAULT_CLUSTER_FILE
        return cls(connection_string=connection_string, cluster_file=cluster_file)

    def describe(self) -> str:
        """Return the connection target used, for logging."""
        if self.connection_string:
            return f"connection string {self.connection_string!r}"
        return f"cluster file {self.cluster_file}"
