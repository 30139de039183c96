"""tuplekv core package."""

from .config import ClusterConfig, MemoryStoreConfig, RetryPolicy
from .errors import KVError, StoreError

__all__ = ["ClusterConfig", "MemoryStoreConfig", "RetryPolicy", "KVError", "StoreError"]
