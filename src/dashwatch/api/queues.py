"""Background job queue statistics.

The queue service sits behind the proxy at /agents, next to the task runner.
Each entry counts jobs per state and names the agents consuming the queue.
"""

from typing import Any
from urllib.parse import quote

from dashwatch.api.client import ApiClient, expect_list
from dashwatch.foundation.errors import ApiError, ErrorCode

_PREFIX = "/agents"

JOB_STATES = ("waiting", "active", "completed", "failed", "delayed")
"""Job counters carried by every queue entry, in display order."""


async def list_queues(client: ApiClient) -> list[dict[str, Any]]:
    """Every queue, from a ``{"queues": [...]}`` envelope."""
    payload = await client.get_json(f"{_PREFIX}/queues", failure="Failed to fetch queues")
    if not isinstance(payload, dict):
        raise ApiError(
            ErrorCode.API_INVALID_RESPONSE,
            f"Expected a queues envelope, got {type(payload).__name__}",
        )
    return expect_list(payload.get("queues"), "queues")


async def get_queue_info(client: ApiClient, queue_name: str) -> dict[str, Any]:
    return await client.get_json(
        f"{_PREFIX}/queues/{quote(queue_name, safe='')}",
        not_found="Queue not found",
        failure="Failed to fetch queue info",
    )


def is_busy(queue: dict[str, Any]) -> bool:
    """Whether a queue has jobs running or waiting to run."""
    return bool(queue.get("active") or queue.get("waiting"))
