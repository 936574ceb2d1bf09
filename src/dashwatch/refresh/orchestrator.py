"""Throttled, coalescing refresh of independently fetched panels.

A shared event (for example "the note conversation was updated") can arrive
once per streamed chunk. The orchestrator turns each burst into at most one
immediate refresh pass plus at most one trailing pass at the end of the quiet
window, and fans every pass out to all registered consumers concurrently.

Example:
    >>> orchestrator = RefreshOrchestrator()
    >>> orchestrator.register(tree)
    >>> orchestrator.register(task_panel)
    >>> for _ in chunks:
    ...     orchestrator.trigger()   # first call refreshes, the rest coalesce
    >>> await orchestrator.aclose()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class RefreshableConsumer(Protocol):
    """Anything whose displayed data can be re-fetched on demand."""

    async def refresh(self) -> None:
        """Re-fetch and replace the consumer's data."""
        ...


class RefreshMode(Enum):
    """How ``trigger()`` maps to refresh passes, fixed at construction."""

    THROTTLED = "throttled"
    """At most one pass per ``min_interval_ms`` plus one trailing pass."""

    IMMEDIATE = "immediate"
    """One pass per trigger. For tests and diagnostics."""


@dataclass(frozen=True, slots=True)
class ThrottlePolicy:
    """Trailing-throttle timing in milliseconds."""

    min_interval_ms: int = 2000
    """Minimum spacing between the starts of two refresh passes."""

    floor_delay_ms: int = 50
    """Shortest delay a trailing pass is ever scheduled with."""

    def __post_init__(self) -> None:
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")
        if self.floor_delay_ms < 0:
            raise ValueError("floor_delay_ms must be >= 0")


class RefreshOrchestrator:
    """Coalesces refresh triggers into throttled passes over all consumers.

    The pending trailing refresh is owned by the instance and cancelled by
    ``dispose()``; nothing is shared between instances.

    Consumer failures are the consumer's business: passes started by
    ``trigger()`` are fire-and-forget (a failure is only logged), while
    ``refresh_now()`` propagates the first failure to its caller.
    """

    def __init__(
        self,
        *,
        policy: ThrottlePolicy | None = None,
        mode: RefreshMode = RefreshMode.THROTTLED,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy or ThrottlePolicy()
        self._mode = mode
        self._clock = clock

        self._consumers: list[RefreshableConsumer] = []
        self._last_refresh_at: float | None = None
        self._scheduled: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()
        self._refresh_count = 0
        self._disposed = False

    @property
    def mode(self) -> RefreshMode:
        return self._mode

    @property
    def pending(self) -> bool:
        """Whether a trailing refresh is scheduled."""
        return self._scheduled is not None

    @property
    def refresh_count(self) -> int:
        """Number of refresh passes dispatched so far."""
        return self._refresh_count

    @property
    def consumers(self) -> tuple[RefreshableConsumer, ...]:
        return tuple(self._consumers)

    def register(self, consumer: RefreshableConsumer) -> None:
        """Add a consumer; passes call consumers in registration order."""
        if any(existing is consumer for existing in self._consumers):
            return
        self._consumers.append(consumer)

    def unregister(self, consumer: RefreshableConsumer) -> None:
        self._consumers = [c for c in self._consumers if c is not consumer]

    def trigger(self) -> None:
        """Request a refresh. Safe to call arbitrarily often.

        Must be called from inside the event loop.
        """
        if self._disposed:
            logger.debug("Ignoring trigger on disposed orchestrator")
            return

        if self._mode is RefreshMode.IMMEDIATE:
            self._dispatch()
            return

        if self._scheduled is not None:
            return

        now = self._clock()
        min_interval = self._policy.min_interval_ms / 1000
        elapsed = None if self._last_refresh_at is None else now - self._last_refresh_at

        if elapsed is None or elapsed >= min_interval:
            self._dispatch()
            return

        delay = max(self._policy.floor_delay_ms / 1000, min_interval - elapsed)
        logger.debug("Coalescing refresh, next pass in %.0fms", delay * 1000)
        self._scheduled = asyncio.get_running_loop().create_task(
            self._fire_after(delay),
            name="refresh-orchestrator:scheduled",
        )

    async def refresh_now(self) -> None:
        """Refresh every consumer right away and wait for all of them.

        Bypasses the throttle and supersedes a scheduled trailing pass.
        """
        if self._disposed:
            return
        self._cancel_scheduled()
        self._mark_refreshed()
        await asyncio.gather(*(consumer.refresh() for consumer in self._consumers))

    def dispose(self) -> None:
        """Cancel the scheduled pass; later triggers are ignored.

        Passes already running are left to finish.
        """
        self._disposed = True
        self._cancel_scheduled()

    async def aclose(self) -> None:
        self.dispose()

    async def __aenter__(self) -> "RefreshOrchestrator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def wait_idle(self) -> None:
        """Wait for the scheduled pass and every running consumer refresh."""
        while self._scheduled is not None or self._running:
            pending = list(self._running)
            if self._scheduled is not None:
                pending.append(self._scheduled)
            await asyncio.gather(*pending, return_exceptions=True)

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Cleared before dispatch so triggers during the pass throttle
        # against the next window
        self._scheduled = None
        self._dispatch()

    def _cancel_scheduled(self) -> None:
        if self._scheduled is not None:
            self._scheduled.cancel()
            self._scheduled = None

    def _mark_refreshed(self) -> None:
        self._last_refresh_at = self._clock()
        self._refresh_count += 1

    def _dispatch(self) -> None:
        self._mark_refreshed()
        loop = asyncio.get_running_loop()
        for consumer in self._consumers:
            task = loop.create_task(consumer.refresh(), name=f"refresh:{type(consumer).__name__}")
            self._running.add(task)
            task.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Refresh task %s failed: %s",
                task.get_name(),
                error,
                exc_info=(type(error), error, error.__traceback__),
            )
