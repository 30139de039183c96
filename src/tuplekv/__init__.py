"""tuplekv - order-preserving tuple keys, subspaces, and retrying transactions."""

from .components import tuple_codec
from .components.memory_store import MemoryDatabase, MemoryTransaction
from .components.mutation import (
    AtomicMutation,
    MutationType,
    apply_mutation,
    decode_int64,
    encode_operand,
)
from .components.subspace import Subspace
from .components.tuple_codec import pack, strinc, unpack
from .core.config import ClusterConfig, MemoryStoreConfig, RetryPolicy
from .core.context import ReadContext, TransactionContext
from .core.errors import (
    ApplicationError,
    DeadlineExceededError,
    FatalStoreError,
    InvalidOperandError,
    KVError,
    MalformedEncodingError,
    PrefixMismatchError,
    RetryableStoreError,
    RetryLimitExceededError,
    StoreError,
)
from .core.runner import TransactionRunner, classify, transactional
from .core.types import Key, KeyValue, RetryOutcome, RunnerState, Value

__all__ = [
    "tuple_codec",
    "pack",
    "unpack",
    "strinc",
    "Subspace",
    "AtomicMutation",
    "MutationType",
    "apply_mutation",
    "decode_int64",
    "encode_operand",
    "MemoryDatabase",
    "MemoryTransaction",
    "ClusterConfig",
    "MemoryStoreConfig",
    "RetryPolicy",
    "ReadContext",
    "TransactionContext",
    "TransactionRunner",
    "classify",
    "transactional",
    "KVError",
    "MalformedEncodingError",
    "PrefixMismatchError",
    "InvalidOperandError",
    "StoreError",
    "RetryableStoreError",
    "FatalStoreError",
    "RetryLimitExceededError",
    "DeadlineExceededError",
    "ApplicationError",
    "Key",
    "Value",
    "KeyValue",
    "RetryOutcome",
    "RunnerState",
]
