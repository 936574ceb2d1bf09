"""Task dashboard: working-directory tree and task list, refreshed together.

While a note-taking conversation streams, the service pushes one update per
chunk. Each update triggers the shared orchestrator, which refreshes the tree
(expanded paths only) and the task panel at most once per window.

Example:
    >>> async with TaskDashboard.from_config(load_config()) as dashboard:
    ...     await dashboard.start()
    ...     await dashboard.listen()   # until the update stream is closed
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx
import websockets

from dashwatch.api.client import ApiClient
from dashwatch.api.files import WorkingDirectoryApi
from dashwatch.api.updates import ConversationUpdates, build_ws_url
from dashwatch.foundation.config import DashwatchConfig
from dashwatch.panels.lists import TaskPanel
from dashwatch.refresh.orchestrator import RefreshMode, RefreshOrchestrator, ThrottlePolicy
from dashwatch.reliability.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from dashwatch.tree.lazy import LazyTree

logger = logging.getLogger(__name__)

UpdateListener = Callable[[dict[str, Any]], None]


class TaskDashboard:
    """Owns the tree, the task panel, the orchestrator and the update stream.

    ``aclose()`` tears everything down in dependency order: the orchestrator
    first so no new pass starts, then the tree's in-flight fetches, then the
    update stream, then the HTTP client if the dashboard created it.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        api_prefix: str = "/api",
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        throttle: ThrottlePolicy | None = None,
        mode: RefreshMode = RefreshMode.THROTTLED,
        updates: ConversationUpdates | None = None,
        owns_client: bool = False,
    ) -> None:
        self.client = client
        self.files = WorkingDirectoryApi(client, api_prefix=api_prefix)
        self.tree = LazyTree(
            self.files.fetch_top_level,
            self.files.fetch_children,
            retry_policy=retry_policy,
        )
        self.tasks = TaskPanel(client, retry_policy=retry_policy)
        self.orchestrator = RefreshOrchestrator(policy=throttle, mode=mode)
        self.orchestrator.register(self.tree)
        self.orchestrator.register(self.tasks)
        self.updates = updates
        self._owns_client = owns_client
        self._listeners: list[UpdateListener] = []
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: DashwatchConfig,
        *,
        subscribe: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        connect: Callable[[str], Any] | None = None,
    ) -> "TaskDashboard":
        """Build a dashboard and its own HTTP client from configuration.

        ``transport`` and ``connect`` replace the HTTP transport and
        ``websockets.connect``; both default to the real network.
        """
        client = ApiClient(config.api.base_url, timeout=config.api.timeout_s, transport=transport)
        updates = None
        if subscribe:
            updates = ConversationUpdates(
                build_ws_url(config.api.base_url, config.api.updates_path),
                reconnect=config.api.reconnect_updates,
                max_reconnect_delay_ms=config.api.max_reconnect_delay_ms,
                connect=connect or websockets.connect,
            )
        return cls(
            client,
            api_prefix=config.api.api_prefix,
            retry_policy=config.retry.to_policy(),
            throttle=config.refresh.to_policy(),
            mode=config.refresh.to_mode(),
            updates=updates,
            owns_client=True,
        )

    async def __aenter__(self) -> "TaskDashboard":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def add_listener(self, listener: UpdateListener) -> None:
        """Observe every update message after it has triggered a refresh."""
        self._listeners.append(listener)

    async def start(self) -> None:
        """Mount: load the tree and the task list concurrently."""
        await asyncio.gather(self.tree.load(), self.tasks.refresh())

    def on_conversation_updated(self, message: dict[str, Any] | None = None) -> None:
        """Feed one "conversation updated" event into the throttle."""
        if self._closed:
            return
        self.orchestrator.trigger()
        if message is not None:
            for listener in self._listeners:
                listener(message)

    async def refresh_now(self) -> None:
        """Refresh tree and tasks immediately, bypassing the throttle."""
        await self.orchestrator.refresh_now()

    async def listen(self) -> None:
        """Route update-stream messages into the orchestrator until closed."""
        if self.updates is None:
            raise RuntimeError("dashboard was built without an update stream")
        async for message in self.updates:
            logger.debug("Conversation update: %s", message.get("type", "message"))
            self.on_conversation_updated(message)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.orchestrator.aclose()
        self.tree.close()
        if self.updates is not None:
            await self.updates.close()
        if self._owns_client:
            await self.client.aclose()
