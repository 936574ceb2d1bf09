"""Retry with bounded exponential backoff."""

from dashwatch.reliability.retry import (
    DEFAULT_RETRY_POLICY,
    FAST_RETRY_POLICY,
    NO_RETRY_POLICY,
    RetryPolicy,
    compute_delay,
    compute_delay_sequence,
    default_should_retry,
    execute,
    retrying,
)

__all__ = [
    "DEFAULT_RETRY_POLICY",
    "FAST_RETRY_POLICY",
    "NO_RETRY_POLICY",
    "RetryPolicy",
    "compute_delay",
    "compute_delay_sequence",
    "default_should_retry",
    "execute",
    "retrying",
]
