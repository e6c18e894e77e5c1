"""Rate limiting, error classification and retry for Notion API calls."""

from notionpatch.resilience.caller import (
    ResilientCaller,
    configure_default_caller,
    get_default_caller,
    reset_default_caller,
    with_rate_limit,
    with_retry,
)
from notionpatch.resilience.classify import Classification, ErrorKind, classify_error
from notionpatch.resilience.limiter import SlidingWindowLimiter
from notionpatch.resilience.policy import CallState, RetryPolicy

__all__ = [
    "CallState",
    "Classification",
    "ErrorKind",
    "ResilientCaller",
    "RetryPolicy",
    "SlidingWindowLimiter",
    "classify_error",
    "configure_default_caller",
    "get_default_caller",
    "reset_default_caller",
    "with_rate_limit",
    "with_retry",
]
