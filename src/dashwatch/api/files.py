"""Working-directory and repository file listings."""

from urllib.parse import quote

from dashwatch.api.client import ApiClient
from dashwatch.tree.types import TreeNode, parse_nodes


class WorkingDirectoryApi:
    """One-level listings of the automation service's working directory.

    Bind ``fetch_top_level`` and ``fetch_children`` straight into a
    ``LazyTree``.
    """

    def __init__(self, client: ApiClient, *, api_prefix: str = "/api") -> None:
        self._client = client
        self.endpoint = f"{api_prefix.rstrip('/')}/working-directory/files"

    async def fetch_top_level(self) -> list[TreeNode]:
        payload = await self._client.get_json(
            self.endpoint,
            failure="Failed to fetch working directory files",
        )
        return parse_nodes(payload)

    async def fetch_children(self, path: str) -> list[TreeNode]:
        payload = await self._client.get_json(
            self.endpoint,
            params={"path": path},
            not_found=f"Directory '{path}' not found",
            failure="Failed to fetch working directory files",
        )
        return parse_nodes(payload)


async def get_repository_files(client: ApiClient, repository: str) -> list[TreeNode]:
    """Full file tree of a named repository (served by the runner, not paged)."""
    payload = await client.get_json(
        f"/repositories/api/{quote(repository, safe='')}/files",
        not_found=f"Repository '{repository}' not found",
        failure="Failed to fetch repository files",
    )
    return parse_nodes(payload)
