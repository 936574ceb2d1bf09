"""Background task endpoints.

Task payloads are passed through as plain dicts; only the envelope of the
paged listing is normalized.
"""

from dataclasses import dataclass
from typing import Any, Literal

from dashwatch.api.client import ApiClient, expect_list, wrap_legacy_listing

StatusLabel = Literal["ready", "complete", "archived", "backlogged", "unknown"]


@dataclass(frozen=True, slots=True)
class TaskQuery:
    """Filters and paging for ``fetch_tasks``. ``None`` fields are omitted."""

    page: int | None = None
    limit: int | None = None
    status: int | None = None
    status_label: StatusLabel | None = None
    sort_by: Literal["createdat", "updatedat", "order"] | None = None
    sort_order: Literal["asc", "desc"] | None = None

    def to_params(self) -> dict[str, Any]:
        return {
            "page": self.page or None,
            "limit": self.limit or None,
            "status": self.status,
            "status_label": self.status_label,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
        }


async def list_tasks(client: ApiClient) -> list[dict[str, Any]]:
    payload = await client.get_json("/api/tasks", failure="Failed to fetch tasks")
    return expect_list(payload, "tasks")


async def fetch_tasks(client: ApiClient, query: TaskQuery | None = None) -> dict[str, Any]:
    """Paged task listing as ``{"tasks": [...], "pagination": {...} | None}``."""
    query = query or TaskQuery()
    payload = await client.get_json(
        "/api/tasks",
        params=query.to_params(),
        failure="Failed to fetch tasks",
    )
    return wrap_legacy_listing(payload, "tasks", page=query.page, limit=query.limit)


async def get_task(client: ApiClient, task_id: int) -> dict[str, Any]:
    return await client.get_json(
        f"/api/tasks/{task_id}",
        not_found="Task not found",
        failure="Failed to fetch task",
    )


async def create_task(client: ApiClient, prompt: str) -> dict[str, Any]:
    prompt = prompt.strip()
    if not prompt:
        raise ValueError("Task prompt cannot be empty")
    return await client.post_json("/api/tasks", {"prompt": prompt}, failure="Failed to create task")
