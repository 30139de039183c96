"""Common type definitions for tuplekv.

Defines fundamental types used across all components.
"""

from __future__ import annotations

import uuid
from enum import Enum

# Core primitive types
Key = bytes
Value = bytes
KeyValue = tuple[Key, Value]
Version = int

TupleElement = None | bytes | str | int | float | bool | uuid.UUID | tuple | list


class RetryOutcome(Enum):
    """Classification of one transaction attempt."""

    COMMITTED = "committed"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


class RunnerState(Enum):
    """Lifecycle of a single run() invocation."""

    IDLE = "idle"
    ATTEMPT_RUNNING = "attempt_running"
    RETRY_SCHEDULED = "retry_scheduled"
    COMMITTED = "committed"
    FATALLY_FAILED = "fatally_failed"
