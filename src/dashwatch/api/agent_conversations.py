"""Agent (voice) conversation endpoints.

Agent conversations live on a separate service mounted at
/agent-conversations/api; they are unrelated to note-taking conversations.
"""

from typing import Any
from urllib.parse import quote

from dashwatch.api.client import ApiClient, expect_list

_PREFIX = "/agent-conversations/api"


async def list_agent_conversations(client: ApiClient) -> list[dict[str, Any]]:
    payload = await client.get_json(
        f"{_PREFIX}/list",
        failure="Failed to fetch agent conversations",
    )
    return expect_list(payload, "agent conversations")


async def get_agent_conversation(client: ApiClient, conversation_id: str) -> dict[str, Any]:
    return await client.get_json(
        f"{_PREFIX}/{quote(conversation_id, safe='')}",
        not_found="Agent conversation not found",
        failure="Failed to fetch agent conversation",
    )


async def create_agent_conversation(
    client: ApiClient,
    *,
    agent_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {}
    if agent_id is not None:
        body["agentId"] = agent_id
    if metadata is not None:
        body["metadata"] = metadata
    return await client.post_json(
        f"{_PREFIX}/new",
        body,
        failure="Failed to create agent conversation",
    )
