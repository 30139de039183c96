"""Exception hierarchy for tuplekv.

Defines all custom exceptions used throughout the implementation, plus the
store error-code table drivers use to classify failures.
"""

from __future__ import annotations

# Store error codes, numbered as in FoundationDB.
ERROR_CODES: dict[int, str] = {
    1004: "timed_out",
    1007: "transaction_too_old",
    1009: "future_version",
    1020: "not_committed",
    1021: "commit_unknown_result",
    1031: "transaction_timed_out",
    1037: "process_behind",
    1213: "tag_throttled",
    2000: "client_invalid_operation",
    2004: "key_outside_legal_range",
    2006: "inverted_range",
    2101: "transaction_too_large",
    2102: "key_too_large",
    2103: "value_too_large",
}

RETRYABLE_CODES: frozenset[int] = frozenset({1004, 1007, 1009, 1020, 1021, 1031, 1037, 1213})


def is_retryable_code(code: int) -> bool:
    """Return True if a store error code is eligible for automatic retry."""
    return code in RETRYABLE_CODES


class KVError(Exception):
    """Base exception for all tuplekv errors.

    When raised out of a runner, ``attempts`` holds the number of attempts made.
    """

    attempts: int | None = None


class MalformedEncodingError(KVError, ValueError):
    """Raised when tuple-encoded bytes are truncated or corrupt."""
    pass


class PrefixMismatchError(KVError, ValueError):
    """Raised when a key does not belong to a subspace."""
    pass


class InvalidOperandError(KVError, ValueError):
    """Raised when an atomic mutation operand has the wrong type or width."""
    pass


class StoreError(KVError):
    """Raised by store drivers.

    Args:
        message: Human readable description
        code: Numeric store error code, if known
        attempts: Number of attempts made, set by the runner
    """

    retryable = False

    def __init__(self, message: str, code: int | None = None, attempts: int | None = None):
        super().__init__(message)
        self.code = code
        self.attempts = attempts

    @property
    def name(self) -> str | None:
        """Symbolic name of the error code."""
        if self.code is None:
            return None
        return ERROR_CODES.get(self.code, "unknown_error")

    @classmethod
    def from_code(cls, code: int, message: str | None = None) -> StoreError:
        """Build the retryable or fatal error matching a store error code."""
        text = message or ERROR_CODES.get(code, "unknown_error")
        if is_retryable_code(code):
            return RetryableStoreError(text, code=code)
        return FatalStoreError(text, code=code)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.code is not None:
            msg = f"{msg} (code {self.code})"
        if self.attempts is not None:
            msg = f"{msg} after {self.attempts} attempt(s)"
        return msg


class RetryableStoreError(StoreError):
    """Conflict or transient failure; the transaction may be retried."""

    retryable = True


class FatalStoreError(StoreError):
    """Non-retryable store failure, or a run that gave up."""
    pass


class RetryLimitExceededError(FatalStoreError):
    """Raised when retryable failures exceed the retry budget.

    The last retryable error is available as ``last_error`` and ``__cause__``.
    """

    def __init__(self, message: str, attempts: int, last_error: StoreError | None = None):
        code = last_error.code if last_error is not None else None
        super().__init__(message, code=code, attempts=attempts)
        self.last_error = last_error


class DeadlineExceededError(FatalStoreError):
    """Raised when a run's deadline passes before it could commit."""

    def __init__(self, message: str, attempts: int, last_error: StoreError | None = None):
        super().__init__(message, code=1031, attempts=attempts)
        self.last_error = last_error


class ApplicationError(KVError):
    """Raised when the caller's work unit fails for a non-store reason.

    The original exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(self, cause: BaseException, attempts: int):
        super().__init__(f"work unit failed on attempt {attempts}: {cause!r}")
        self.cause = cause
        self.attempts = attempts
