"""Utility functions package for the session token keeper.

Exposed functions:
    format_duration: Formats time durations into human-readable strings.
    mask_token: Produces a log-safe preview of a credential.
    retry_async: Bounded retry with exponential backoff (tenacity).
"""

from .helpers import format_duration, mask_token
from .retry import RetryExhaustedError, retry_async

__all__ = ["format_duration", "mask_token", "retry_async", "RetryExhaustedError"]
