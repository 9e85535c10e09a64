"""
Generic retry wrapper for flaky asynchronous work.

Object stores are eventually consistent and external tools are slow and
occasionally starved of resources. Rather than sprinkling loops around the
codebase, callers describe what they want in a RetryPolicy and hand the
unit of work to with_retry().

A policy answers four questions:
- How many attempts? (max_attempts)
- How long to wait between them? (backoff, a pure function of attempt number)
- How long may one attempt take? (timeout)
- Is this particular failure worth another try? (retry_condition)

Policies hold no state, so a single preset can be shared by every caller.
"""

import asyncio
import errno
import functools
import logging
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import (
    OperationTimeoutError,
    RetryExhaustedError,
    StorageIOError,
    TransientResourceError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffSchedule = Callable[[int], float]
RetryCondition = Callable[[BaseException], bool]


# ---------------------------------------------------------------------------
# Backoff Schedules
# ---------------------------------------------------------------------------

def fixed_backoff(delay: float) -> BackoffSchedule:
    """Same delay after every failed attempt."""
    def schedule(attempt: int) -> float:
        return delay
    return schedule


def linear_backoff(step: float, max_delay: Optional[float] = None) -> BackoffSchedule:
    """Delay grows by `step` per attempt: step, 2*step, 3*step..."""
    def schedule(attempt: int) -> float:
        delay = step * attempt
        return min(delay, max_delay) if max_delay is not None else delay
    return schedule


def exponential_backoff(
    base: float,
    factor: float = 2.0,
    max_delay: Optional[float] = None,
    jitter: bool = False,
) -> BackoffSchedule:
    """
    Delay doubles (by default) after each attempt: base, 2*base, 4*base...

    With jitter the delay is drawn uniformly from [0, delay]. Attempt
    numbers start at 1.
    """
    def schedule(attempt: int) -> float:
        delay = base * (factor ** max(attempt - 1, 0))
        if max_delay is not None:
            delay = min(delay, max_delay)
        if jitter:
            delay = random.uniform(0, delay)
        return delay
    return schedule


# ---------------------------------------------------------------------------
# Retry Conditions
# ---------------------------------------------------------------------------

_TRANSIENT_ERRNOS = frozenset({
    errno.EAGAIN,
    errno.EBUSY,
    errno.EMFILE,
    errno.ENFILE,
    errno.ENOMEM,
    errno.ETIMEDOUT,
    errno.ECONNRESET,
})


class RetryConditions:
    """Reusable predicates deciding whether a failure is retryable."""

    @staticmethod
    def always(error: BaseException) -> bool:
        return True

    @staticmethod
    def never(error: BaseException) -> bool:
        return False

    @staticmethod
    def resource_errors(error: BaseException) -> bool:
        """Contention, exhaustion and timeouts. Not bad input, not config."""
        if isinstance(error, (TransientResourceError, asyncio.TimeoutError)):
            return True
        if isinstance(error, OSError):
            return error.errno in _TRANSIENT_ERRNOS
        return False

    @staticmethod
    def io_errors(error: BaseException) -> bool:
        """Resource errors plus backend read/write failures."""
        return RetryConditions.resource_errors(error) or isinstance(error, StorageIOError)

    @staticmethod
    def any_of(*conditions: RetryCondition) -> RetryCondition:
        def condition(error: BaseException) -> bool:
            return any(c(error) for c in conditions)
        return condition


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """
    How to retry a unit of work.

    Frozen because a policy is configuration, not state. Use
    with_overrides() to derive a variant from a preset.
    """
    max_attempts: int = 3
    backoff: BackoffSchedule = fixed_backoff(0.5)
    timeout: Optional[float] = None  # seconds per attempt, None = no limit
    retry_condition: RetryCondition = RetryConditions.resource_errors

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        return replace(self, **changes)


class RetryPresets:
    """Named, shared policies."""

    # short-lived local work: reading metadata, grabbing one frame
    FAST = RetryPolicy(
        max_attempts=3,
        backoff=exponential_backoff(0.1, max_delay=1.0),
    )
    STANDARD = RetryPolicy(
        max_attempts=3,
        backoff=exponential_backoff(0.5, max_delay=5.0),
    )
    # remote stores that need time to converge
    PATIENT = RetryPolicy(
        max_attempts=5,
        backoff=exponential_backoff(1.0, max_delay=30.0),
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class _OperationTimedOut(Exception):
    """Carries a TimeoutError raised by the operation past wait_for."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(str(error))
        self.error = error


async def _shielded_timeouts(operation: Callable[[], Awaitable[T]]) -> T:
    try:
        return await operation()
    except asyncio.TimeoutError as e:
        raise _OperationTimedOut(e) from e


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = RetryPresets.STANDARD,
    log: Optional[logging.Logger] = None,
    *,
    operation_name: Optional[str] = None,
) -> T:
    """
    Run `operation` under `policy`.

    `operation` is a zero-argument callable returning a fresh awaitable per
    attempt. A coroutine object can't be awaited twice, so passing one
    directly would break the second attempt.

    Raises the original error when it is not retryable, and
    RetryExhaustedError (chained from the last error) when all attempts
    fail.
    """
    log = log or logger
    name = operation_name or getattr(operation, "__name__", "operation")
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.timeout is None:
                return await operation()
            try:
                return await asyncio.wait_for(_shielded_timeouts(operation), timeout=policy.timeout)
            except _OperationTimedOut as wrapped:
                # the operation's own timeout, not the policy's
                raise wrapped.error
            except asyncio.TimeoutError as e:
                raise OperationTimeoutError(policy.timeout, name) from e

        except Exception as e:
            last_error = e

            if not policy.retry_condition(e):
                log.debug(
                    "Non-retryable failure",
                    extra={"operation": name, "attempt": attempt, "error": str(e)}
                )
                raise

            if attempt >= policy.max_attempts:
                break

            delay = policy.backoff(attempt)
            log.warning(
                f"{name} failed (attempt {attempt}/{policy.max_attempts}), "
                f"retrying in {delay:.2f}s: {e}",
                extra={"operation": name, "attempt": attempt, "delay": delay}
            )
            await asyncio.sleep(delay)

    log.error(
        f"{name} failed after {policy.max_attempts} attempt(s)",
        extra={"operation": name, "error": str(last_error)}
    )
    raise RetryExhaustedError(policy.max_attempts, last_error, name) from last_error


def retryable(
    policy: RetryPolicy = RetryPresets.STANDARD,
    log: Optional[logging.Logger] = None,
):
    """Decorator form of with_retry for async functions."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(
                lambda: func(*args, **kwargs),
                policy,
                log,
                operation_name=func.__qualname__,
            )
        return wrapper
    return decorator
