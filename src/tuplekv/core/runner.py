"""Transaction runner - executes work units with retry and backoff.

Each run owns its attempt loop. An attempt creates a fresh store
transaction, invokes the work unit, and commits. Retryable store failures
are retried with capped exponential backoff and jitter; everything else
ends the run immediately.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from typing import TYPE_CHECKING, Callable, TypeVar

from .config import RetryPolicy
from .context import ReadContext, TransactionContext
from .errors import (
    ApplicationError,
    DeadlineExceededError,
    FatalStoreError,
    InvalidOperandError,
    MalformedEncodingError,
    PrefixMismatchError,
    RetryLimitExceededError,
    StoreError,
)
from .types import RetryOutcome, RunnerState

if TYPE_CHECKING:
    from ..interfaces.store import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify(error: BaseException | None) -> RetryOutcome:
    """Map the result of an attempt to a RetryOutcome."""
    if error is None:
        return RetryOutcome.COMMITTED
    if isinstance(error, StoreError) and error.retryable:
        return RetryOutcome.RETRYABLE_FAILURE
    return RetryOutcome.FATAL_FAILURE


def backoff_delay(policy: RetryPolicy, retry: int) -> float:
    """Return the sleep before retry number `retry` (0-based)."""
    delay = min(policy.base_delay * (2**retry), policy.max_delay)
    if policy.jitter:
        delay = delay * random.uniform(0.5, 1.5)
    return min(delay, policy.max_delay)


class TransactionRunner:
    """Runs work units against a database with automatic retry.

    Args:
        database: Open store connection
        policy: Default retry policy for every run

    Public API:
        - run(work, policy=None, deadline=None): Read-write transaction
        - run_read_only(work, policy=None, deadline=None): Reads only, no commit

    Invariants:
        - Every attempt gets a new store transaction and context
        - Only RetryableStoreError is retried
        - Errors raised out of a run carry the number of attempts made
    """

    def __init__(self, database: Database, policy: RetryPolicy | None = None):
        self.database = database
        self.policy = policy or RetryPolicy()

    def run(
        self,
        work: Callable[[TransactionContext], T],
        policy: RetryPolicy | None = None,
        deadline: float | None = None,
    ) -> T:
        """Execute work in a read-write transaction and commit it.

        Args:
            work: Callable taking a TransactionContext; must be free of side
                effects outside the transaction, since it may run many times
            policy: Overrides the runner's policy for this run
            deadline: Absolute time.monotonic() value after which no new
                attempt starts

        Returns:
            Whatever work returned in the attempt that committed

        Raises:
            FatalStoreError: Non-retryable store failure
            RetryLimitExceededError: Retry budget exhausted
            DeadlineExceededError: Deadline passed before a commit succeeded
            MalformedEncodingError, PrefixMismatchError, InvalidOperandError:
                Raised unchanged, with `attempts` set
            ApplicationError: work raised any other non-store exception
        """
        return self._run(work, TransactionContext, True, policy, deadline)

    def run_read_only(
        self,
        work: Callable[[ReadContext], T],
        policy: RetryPolicy | None = None,
        deadline: float | None = None,
    ) -> T:
        """Execute work with a ReadContext; nothing is committed.

        Retry classification is identical to run().
        """
        return self._run(work, ReadContext, False, policy, deadline)

    def _run(
        self,
        work: Callable,
        context_cls: type[ReadContext],
        commit: bool,
        policy: RetryPolicy | None,
        deadline: float | None,
    ):
        policy = policy or self.policy
        if policy.timeout is not None:
            timeout_deadline = time.monotonic() + policy.timeout
            deadline = timeout_deadline if deadline is None else min(deadline, timeout_deadline)

        state = RunnerState.IDLE
        attempt = 0

        while True:
            attempt += 1
            state = self._transition(state, RunnerState.ATTEMPT_RUNNING, attempt)

            error = None
            try:
                result = self._attempt(work, context_cls, commit, attempt)
            except StoreError as e:
                error = e
            except (MalformedEncodingError, PrefixMismatchError, InvalidOperandError) as e:
                # Invalid keys, values and operands fail the same way on every attempt
                self._transition(state, RunnerState.FATALLY_FAILED, attempt)
                e.attempts = attempt
                raise
            except Exception as e:
                self._transition(state, RunnerState.FATALLY_FAILED, attempt)
                raise ApplicationError(e, attempt) from e

            outcome = classify(error)

            if outcome is RetryOutcome.COMMITTED:
                self._transition(state, RunnerState.COMMITTED, attempt)
                return result

            if outcome is RetryOutcome.FATAL_FAILURE:
                self._transition(state, RunnerState.FATALLY_FAILED, attempt)
                if isinstance(error, FatalStoreError):
                    error.attempts = attempt
                    raise error
                raise FatalStoreError(error.args[0], code=error.code, attempts=attempt) from error

            retries_done = attempt - 1
            if policy.max_retries is not None and retries_done >= policy.max_retries:
                self._transition(state, RunnerState.FATALLY_FAILED, attempt)
                raise RetryLimitExceededError(
                    f"Gave up after {retries_done} retries; last error: {error.args[0]}",
                    attempts=attempt,
                    last_error=error,
                ) from error

            delay = backoff_delay(policy, retries_done)
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise self._deadline_exceeded(state, error, attempt) from error
                delay = min(delay, remaining)

            state = self._transition(state, RunnerState.RETRY_SCHEDULED, attempt)
            logger.warning(
                f"Attempt {attempt} failed: {error}. Retrying in {delay:.3f}s..."
            )
            time.sleep(delay)

            if deadline is not None and time.monotonic() >= deadline:
                raise self._deadline_exceeded(state, error, attempt) from error

    def _deadline_exceeded(self, state: RunnerState, error: StoreError, attempt: int) -> DeadlineExceededError:
        self._transition(state, RunnerState.FATALLY_FAILED, attempt)
        return DeadlineExceededError(
            f"Deadline exceeded; last error: {error.args[0]}",
            attempts=attempt,
            last_error=error,
        )

    def _attempt(self, work: Callable, context_cls: type[ReadContext], commit: bool, attempt: int):
        """Run one attempt on a fresh transaction, releasing it on every exit path."""
        tr = self.database.create_transaction()
        ctx = context_cls(tr, attempt)
        committed = False
        try:
            result = work(ctx)
            if commit:
                tr.commit()
                committed = True
            return result
        finally:
            ctx.close()
            if not committed:
                self._release(tr)

    @staticmethod
    def _release(tr) -> None:
        """Cancel tr without masking the error that ended the attempt."""
        try:
            tr.cancel()
        except Exception as e:
            logger.error(f"Failed to cancel transaction: {e!r}")

    @staticmethod
    def _transition(old: RunnerState, new: RunnerState, attempt: int) -> RunnerState:
        logger.debug(f"Attempt {attempt}: {old.value} -> {new.value}")
        return new


def transactional(runner: TransactionRunner):
    """Decorator running `f(ctx, *args, **kwargs)` inside runner.run().

    When the first argument is already a TransactionContext, f joins that
    transaction instead of starting a new one.
    """

    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if args and isinstance(args[0], TransactionContext):
                return f(*args, **kwargs)
            return runner.run(lambda ctx: f(ctx, *args, **kwargs))

        return wrapper

    return decorator
