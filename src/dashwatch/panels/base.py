"""Refreshable panel with panel-scoped loading and error state."""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from dashwatch.reliability.retry import DEFAULT_RETRY_POLICY, RetryPolicy, execute

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Panel(Generic[T]):
    """An independently fetched, independently refreshable unit of data.

    ``refresh()`` never raises for fetch failures: once the retry policy gives
    up, the message is kept in ``error`` and the previously loaded ``data``
    stays on display, so one failing panel never blocks its siblings.
    Overlapping refreshes are resolved last-request-wins.
    """

    title = "Panel"
    fallback_error = "An error occurred while loading"

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self._fetch = fetch
        self._retry_policy = retry_policy
        self._request_id = 0
        self.data: T | None = None
        self.error: str | None = None
        self.loading = False
        self.last_loaded_at: float | None = None

    async def refresh(self) -> None:
        self._request_id += 1
        request_id = self._request_id
        self.loading = True
        try:
            data = await execute(self._fetch, self._retry_policy)
        except Exception as e:
            if request_id == self._request_id:
                self.error = str(e) or self.fallback_error
                logger.warning("%s panel failed to load: %s", self.title, self.error)
            return
        finally:
            if request_id == self._request_id:
                self.loading = False

        if request_id != self._request_id:
            logger.debug("%s panel discarding superseded response", self.title)
            return
        self.data = data
        self.error = None
        self.last_loaded_at = time.time()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} loading={self.loading} error={self.error!r}>"
