"""
Retry with exponential backoff.

The first attempt runs immediately. Before each later attempt the caller
sleeps for the current delay, which then doubles, clamped at the ceiling.
The delay is never reset between attempts.
"""

import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

T = TypeVar("T")

MAX_RETRY_DELAY = 300.0


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_attempts: int = 5
    initial_delay: float = 10.0
    max_delay: float = MAX_RETRY_DELAY

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")

    def delay_after(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            min(max_delay, initial_delay * 2 ** (attempt - 1))
        """
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return min(self.max_delay, self.initial_delay * 2 ** (attempt - 1))

    def delays(self) -> Iterator[float]:
        """Yield the waits between consecutive attempts (max_attempts - 1 values)."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_after(attempt)


class RetryError(Exception):
    """All attempts failed. ``last_error`` holds the final exception."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    on_failure: Optional[Callable[[int, BaseException, Optional[float]], None]] = None,
) -> T:
    """
    Call ``func`` until it succeeds or the policy is exhausted.

    Args:
        func: Zero-argument callable; raising counts as a failed attempt
        policy: Attempt limit and backoff parameters
        retry_on: Exception types that count as transient failures
        sleep: Sleep function (injected by tests)
        on_failure: Called as on_failure(attempt, error, next_delay) after
            each failure; next_delay is None after the final attempt

    Returns:
        The return value of the first successful call

    Raises:
        RetryError: If every attempt failed
    """
    delay = policy.initial_delay
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func()
        except retry_on as e:
            last = attempt == policy.max_attempts
            if on_failure:
                on_failure(attempt, e, None if last else delay)
            if last:
                raise RetryError(attempt, e) from e
            sleep(delay)
            delay = min(policy.max_delay, delay * 2)
