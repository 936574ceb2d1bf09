"""Concrete dashboard panels: tasks, conversations and job queues."""

import functools
import logging
from typing import Any

from dashwatch.api import agent_conversations, conversations, queues, tasks
from dashwatch.api.client import ApiClient
from dashwatch.panels.base import Panel
from dashwatch.reliability.retry import DEFAULT_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)


class TaskPanel(Panel[list[dict[str, Any]]]):
    """Task list plus task creation."""

    title = "Tasks"
    fallback_error = "An error occurred while loading tasks"

    def __init__(
        self,
        client: ApiClient,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(functools.partial(tasks.list_tasks, client), retry_policy=retry_policy)
        self._client = client
        self.create_error: str | None = None
        self.creating = False

    async def create(self, prompt: str) -> dict[str, Any] | None:
        """Create a task and append it to the list.

        Creation is not retried: a POST is not idempotent. Failures land in
        ``create_error``.
        """
        if not prompt.strip():
            self.create_error = "Task prompt cannot be empty"
            return None

        self.creating = True
        self.create_error = None
        try:
            task = await tasks.create_task(self._client, prompt)
        except Exception as e:
            self.create_error = str(e) or "Failed to create task"
            logger.warning("Task creation failed: %s", self.create_error)
            return None
        finally:
            self.creating = False

        self.data = [*(self.data or []), task]
        return task


class ConversationListPanel(Panel[list[dict[str, Any]]]):
    title = "Conversations"
    fallback_error = "An error occurred while loading conversations"

    def __init__(
        self,
        client: ApiClient,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(
            functools.partial(conversations.list_conversations, client),
            retry_policy=retry_policy,
        )


class AgentConversationListPanel(Panel[list[dict[str, Any]]]):
    title = "Agent conversations"
    fallback_error = "An error occurred while loading agent conversations"

    def __init__(
        self,
        client: ApiClient,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(
            functools.partial(agent_conversations.list_agent_conversations, client),
            retry_policy=retry_policy,
        )


class ConversationPanel(Panel[dict[str, Any]]):
    """One note-taking conversation, shown in full."""

    title = "Conversation"
    fallback_error = "An error occurred while loading the conversation"

    def __init__(
        self,
        client: ApiClient,
        conversation_id: str,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(
            functools.partial(conversations.get_conversation, client, conversation_id),
            retry_policy=retry_policy,
        )
        self.conversation_id = conversation_id


class QueuePanel(Panel[list[dict[str, Any]]]):
    """Job queue statistics, one entry per queue."""

    title = "Queues"
    fallback_error = "Failed to load queues"

    def __init__(
        self,
        client: ApiClient,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(functools.partial(queues.list_queues, client), retry_policy=retry_policy)

    @property
    def busy(self) -> list[dict[str, Any]]:
        return [queue for queue in self.data or [] if queues.is_busy(queue)]
