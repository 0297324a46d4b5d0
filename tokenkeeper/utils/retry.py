"""Retry utilities for asynchronous operations using Tenacity."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors.internal import NetworkError

T = TypeVar("T")


class RetryableException(Exception):
    """Exception raised to indicate an operation should be retried."""

    pass


class RetryExhaustedError(Exception):
    """Exception raised when all retry attempts have been exhausted."""

    def __init__(self, message: str, attempts: int, final_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.final_exception = final_exception


async def retry_async(
    operation: Callable[[int], Awaitable[tuple[T | None, bool]]],
    max_attempts: int = 2,
    *,
    multiplier: float = 0.5,
    max_wait: float = 5.0,
) -> T:
    """Retry an asynchronous operation with exponential backoff using Tenacity.

    Args:
        operation: Async callable that takes attempt number and returns (result, should_retry).
        max_attempts: Maximum number of attempts.
        multiplier: Backoff multiplier in seconds.
        max_wait: Upper bound for a single backoff sleep.

    Returns:
        The result from operation if successful.

    Raises:
        RetryExhaustedError: If all attempts are exhausted.
    """
    attempt_count = 1

    def before_retry(retry_state):
        nonlocal attempt_count
        attempt_count = retry_state.attempt_number

    async def wrapped_operation() -> T | None:
        try:
            result, should_retry = await operation(attempt_count)
        except (NetworkError, OSError, TimeoutError, aiohttp.ClientError) as e:
            raise RetryableException("Exception occurred, retrying") from e
        if not should_retry:
            return result
        raise RetryableException("Operation indicated retry is needed")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, max=max_wait),
        retry=retry_if_exception_type(RetryableException),
        before=before_retry,
        reraise=True,
    )

    try:
        return await retrying(wrapped_operation)
    except RetryableException as e:
        raise RetryExhaustedError(
            f"Operation failed after {max_attempts} attempts",
            attempts=max_attempts,
            final_exception=e.__cause__ if isinstance(e.__cause__, Exception) else e,
        ) from e
