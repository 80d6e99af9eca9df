"""Bounded retry with a fixed pause between attempts."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar, Union

T = TypeVar("T")

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


class RetryExhausted(Exception):
    """Raised when every attempt failed. Wraps the last error."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed {attempts} times, giving up: {last_error}")


def retry_call(
    operation: Callable[[], T],
    attempts: int,
    delay: float,
    retry_on: ExceptionTypes = Exception,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """Run `operation` until it succeeds or `attempts` runs are used up.

    Args:
        operation: Zero-argument callable to run.
        attempts: Maximum number of runs (at least 1).
        delay: Seconds to sleep between two runs. There is no sleep after
            the final failure.
        retry_on: Exception type(s) that count as a failed attempt. Any
            other exception propagates immediately.
        on_retry: Called with (attempt number, error) after each failure
            that will be retried.

    Raises:
        RetryExhausted: If all attempts failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except retry_on as e:
            if attempt >= attempts:
                raise RetryExhausted(attempt, e) from e
            if on_retry is not None:
                on_retry(attempt, e)
            time.sleep(delay)

    raise AssertionError("unreachable")


def log_retry(logger: logging.Logger, what: str) -> Callable[[int, BaseException], None]:
    """Build an `on_retry` callback that logs a warning."""

    def _on_retry(attempt: int, error: BaseException) -> None:
        logger.warning("%s failed %d time(s), retrying: %s", what, attempt, error)

    return _on_retry
