"""Bounded exponential backoff for network operations.

Every panel and tree fetch runs through ``execute``. Transient failures
(network errors, timeouts, 5xx responses) are retried; everything else
surfaces on the first attempt.

Example:
    >>> policy = RetryPolicy(max_retries=3, initial_ms=1000, multiplier=2.0)
    >>> compute_delay_sequence(policy)  # waits before retries 1, 2, 3
    [1000, 2000, 4000]
    >>> tasks = await execute(lambda: client.get_json("/api/tasks"), policy)

Formula: delay = min(initial * multiplier^attempt, max), attempt 0-indexed
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from dashwatch.foundation.errors import DashwatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]
OnRetry = Callable[[int, BaseException, int], None]

# Substrings of transport failures as they show up in error messages
_TRANSIENT_MARKERS = (
    "network",
    "fetch",
    "timeout",
    "timed out",
    "econnrefused",
    "enotfound",
    "connection refused",
    "name or service not known",
    "dns",
)


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Decide whether a failure is transient.

    Errors carrying an integer ``status`` are judged by it alone: 5xx is
    transient, any other status (4xx, validation) is permanent. Without a
    status, transport failures and network-looking messages are transient.
    """
    status = getattr(error, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return 500 <= status < 600

    if isinstance(error, DashwatchError):
        return error.is_transient

    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for bounded retry with exponential backoff.

    Constructed once per call site or reused as a template via
    ``dataclasses.replace``.

    Attributes:
        max_retries: Retries after the first attempt (default 3)
        initial_ms: Delay before the first retry in milliseconds (default 1000)
        max_ms: Maximum delay cap in milliseconds (default 30,000)
        multiplier: Growth factor per attempt (default 2.0)
        should_retry: Predicate ``(error, attempt_index) -> bool``
        on_retry: Observer ``(attempt_number, error, delay_ms)`` called before each wait
    """

    max_retries: int = 3
    """Retries after the initial attempt."""

    initial_ms: int = 1000
    """Delay before the first retry in milliseconds."""

    max_ms: int = 30_000
    """Maximum delay cap in milliseconds."""

    multiplier: float = 2.0
    """Multiplier for exponential growth."""

    should_retry: ShouldRetry = default_should_retry
    """Whether a failure at a given attempt index is worth retrying."""

    on_retry: OnRetry | None = None
    """Observer for logging/telemetry; its return value is ignored."""

    def __post_init__(self) -> None:
        """Validate policy parameters."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_ms < 0:
            raise ValueError("initial_ms must be >= 0")
        if self.max_ms < self.initial_ms:
            raise ValueError("max_ms must be >= initial_ms")
        if self.multiplier <= 1.0:
            raise ValueError("multiplier must be > 1.0")


DEFAULT_RETRY_POLICY = RetryPolicy()
"""Panel fetches: 1s -> 2s -> 4s, then give up."""

FAST_RETRY_POLICY = RetryPolicy(max_retries=2, initial_ms=200, max_ms=2_000)
"""Short waits for interactive callers: 200ms -> 400ms, then give up."""

NO_RETRY_POLICY = RetryPolicy(max_retries=0)
"""Single attempt; errors surface immediately."""


def compute_delay(policy: RetryPolicy, attempt: int) -> int:
    """Compute the wait in milliseconds after a failure at ``attempt`` (0-indexed).

    Attempts past the one that reaches ``max_ms`` return the cap without
    evaluating the power, which would overflow a float for large attempts.
    """
    if policy.initial_ms == 0:
        return 0
    if attempt >= math.log(policy.max_ms / policy.initial_ms, policy.multiplier):
        return policy.max_ms
    delay = policy.initial_ms * (policy.multiplier ** attempt)
    return int(min(delay, policy.max_ms))


def compute_delay_sequence(policy: RetryPolicy) -> list[int]:
    """Every wait the policy allows, in order. Useful for logging."""
    return [compute_delay(policy, attempt) for attempt in range(policy.max_retries)]


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded retry.

    Args:
        operation: Zero-argument coroutine function producing the result
        policy: Retry policy to consult on every failure
        sleep: Awaitable sleep taking seconds (injectable for tests)

    Returns:
        The first successful result.

    Raises:
        The last error raised by ``operation``, unchanged, once the policy
        declines to retry or retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if attempt >= policy.max_retries or not policy.should_retry(error, attempt):
                raise

            delay_ms = compute_delay(policy, attempt)
            logger.info(
                "Retry %d/%d in %dms after %s: %s",
                attempt + 1,
                policy.max_retries,
                delay_ms,
                type(error).__name__,
                error,
            )
            if policy.on_retry is not None:
                policy.on_retry(attempt + 1, error, delay_ms)

            await sleep(delay_ms / 1000)
            attempt += 1


def retrying(
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> Callable[[Callable[[], Awaitable[T]]], Awaitable[T]]:
    """Bind a policy once and reuse it across call sites.

    Example:
        >>> run = retrying(FAST_RETRY_POLICY)
        >>> children = await run(lambda: fetch_children("src"))
    """

    def run(operation: Callable[[], Awaitable[T]]) -> Awaitable[T]:
        return execute(operation, policy)

    return run
