"""Note-taking conversation endpoints (served under /conversations/api)."""

from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import quote

from dashwatch.api.client import ApiClient, expect_list, wrap_legacy_listing

_PREFIX = "/conversations/api"


@dataclass(frozen=True, slots=True)
class ConversationQuery:
    """Filters and paging for ``fetch_conversations``."""

    page: int | None = None
    limit: int | None = None
    status: str | None = None
    agent: str | None = None
    user: str | None = None
    sort_by: Literal["createdAt", "lastAccessedAt", "messageCount"] | None = None
    sort_order: Literal["asc", "desc"] | None = None

    def to_params(self) -> dict[str, Any]:
        return {
            "page": self.page or None,
            "limit": self.limit or None,
            "status": self.status or None,
            "agent": self.agent or None,
            "user": self.user or None,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
        }


async def list_conversations(client: ApiClient) -> list[dict[str, Any]]:
    payload = await client.get_json(f"{_PREFIX}/list", failure="Failed to fetch conversations")
    return expect_list(payload, "conversations")


async def fetch_conversations(
    client: ApiClient,
    query: ConversationQuery | None = None,
) -> dict[str, Any]:
    query = query or ConversationQuery()
    payload = await client.get_json(
        f"{_PREFIX}/list",
        params=query.to_params(),
        failure="Failed to fetch conversations",
    )
    return wrap_legacy_listing(payload, "conversations", page=query.page, limit=query.limit)


async def get_conversation(client: ApiClient, conversation_id: str) -> dict[str, Any]:
    return await client.get_json(
        f"{_PREFIX}/{quote(conversation_id, safe='')}",
        not_found="Conversation not found",
        failure="Failed to fetch conversation",
    )


async def send_message(
    client: ApiClient,
    conversation_id: str,
    message: str,
    *,
    repository: str | None = None,
    branch_name: str | None = None,
) -> dict[str, Any]:
    """Queue a message on a conversation. Not retried: the POST enqueues work."""
    body: dict[str, Any] = {"message": message}
    if repository is not None:
        body["repository"] = repository
    if branch_name is not None:
        body["branchName"] = branch_name
    return await client.post_json(
        f"{_PREFIX}/{quote(conversation_id, safe='')}/message",
        body,
        failure="Failed to send message",
    )


async def create_conversation(
    client: ApiClient,
    queue_type: Literal["default", "telegram", "api"] = "api",
) -> dict[str, Any]:
    return await client.post_json(
        f"{_PREFIX}/new",
        {"queueType": queue_type},
        failure="Failed to create conversation",
    )
