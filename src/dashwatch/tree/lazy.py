"""Lazily materialized, server-backed file tree.

The tree never asks the service for more than one level at a time: the top
level on mount, then the immediate children of each directory the user
expands. Expansion state, the per-path children cache and per-path error
markers are owned here and keyed by path, never by position, because every
re-fetch regenerates node objects.

State per directory path:

    UNLOADED --expand--> LOADING --ok--> LOADED
                            |
                            +--fail--> ERROR --expand/refresh--> LOADING

Example:
    >>> tree = LazyTree(files.fetch_top_level, files.fetch_children)
    >>> await tree.load()                 # top level + auto-expanded directories
    >>> task = tree.toggle_expand("src")  # fetches src's children once
    >>> if task is not None:
    ...     await task
    >>> await tree.refresh()              # re-fetches root and every expanded path
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Iterator

from dashwatch.reliability.retry import DEFAULT_RETRY_POLICY, RetryPolicy, execute
from dashwatch.tree.types import LoadState, TreeNode

logger = logging.getLogger(__name__)

FetchTopLevel = Callable[[], Awaitable[list[TreeNode]]]
FetchChildren = Callable[[str], Awaitable[list[TreeNode]]]

# Request-id key for the top-level listing; node paths are never empty
_ROOT = ""


class LazyTree:
    """Expand/collapse state and on-demand child loading for a node hierarchy.

    Concurrency model: single event loop, no locks. Every fetch is tagged with
    a per-path request id and its result is applied only if no newer fetch for
    the same path was issued since, so a slow response can never overwrite a
    fresher one. Overlapping expand requests for one path share one fetch.

    Failures never escape ``load``/``refresh``/``toggle_expand``: the top-level
    failure is exposed as ``error``, a child failure as ``error_for(path)``.
    """

    def __init__(
        self,
        fetch_top_level: FetchTopLevel,
        fetch_children: FetchChildren,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        auto_expand_top_level: bool = True,
    ) -> None:
        self._fetch_top_level = fetch_top_level
        self._fetch_children = fetch_children
        self._retry_policy = retry_policy
        self._auto_expand_top_level = auto_expand_top_level

        self._roots: list[TreeNode] = []
        self._nodes: dict[str, TreeNode] = {}
        self._children: dict[str, list[TreeNode]] = {}
        self._expanded: set[str] = set()
        self._errors: dict[str, Exception] = {}
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._request_ids: dict[str, int] = {}

        self._root_error: Exception | None = None
        self._root_loading = False
        self._mounted = False
        self._closed = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def roots(self) -> list[TreeNode]:
        """Top-level nodes from the latest successful listing."""
        return list(self._roots)

    @property
    def expanded(self) -> frozenset[str]:
        return frozenset(self._expanded)

    @property
    def loading(self) -> bool:
        """Whether a top-level fetch is in flight."""
        return self._root_loading

    @property
    def error(self) -> Exception | None:
        """Failure of the latest top-level fetch, if it failed."""
        return self._root_error

    def node(self, path: str) -> TreeNode | None:
        return self._nodes.get(path)

    def is_expanded(self, path: str) -> bool:
        return path in self._expanded

    def error_for(self, path: str) -> Exception | None:
        return self._errors.get(path)

    def state_of(self, path: str) -> LoadState:
        """Child-loading state of ``path``. Files always report UNLOADED."""
        if path in self._inflight:
            return LoadState.LOADING
        if path in self._errors:
            return LoadState.ERROR
        if path in self._children:
            return LoadState.LOADED
        return LoadState.UNLOADED

    def visible_nodes(self) -> Iterator[tuple[int, TreeNode]]:
        """Yield ``(depth, node)`` for everything an expanded view shows."""
        yield from self._walk_visible(self._roots, 0)

    def _walk_visible(
        self, nodes: list[TreeNode], depth: int
    ) -> Iterator[tuple[int, TreeNode]]:
        for node in nodes:
            yield depth, node
            if node.path in self._expanded and node.children:
                yield from self._walk_visible(node.children, depth + 1)

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def toggle_expand(self, path: str) -> asyncio.Task[None] | None:
        """Collapse ``path`` if expanded, expand it otherwise.

        Expanding a directory whose children were never loaded starts a fetch
        of that single level. Must be called from inside the event loop.

        Returns:
            The in-flight child fetch for ``path``, if any.
        """
        if path in self._expanded:
            self.collapse(path)
            return self._inflight.get(path)
        return self.expand(path)

    def expand(self, path: str) -> asyncio.Task[None] | None:
        """Expand ``path``; no-op for files and already expanded paths."""
        if self._closed:
            return None
        node = self._nodes.get(path)
        if node is not None and not node.is_directory:
            logger.debug("Ignoring expand of file %s", path)
            return None

        self._expanded.add(path)
        if path in self._inflight:
            return self._inflight[path]
        if self._has_children(path):
            return None
        return self._start_child_fetch(path)

    def collapse(self, path: str) -> None:
        """Hide ``path``'s children; the cached listing is kept."""
        self._expanded.discard(path)

    def _has_children(self, path: str) -> bool:
        if path in self._children:
            return True
        node = self._nodes.get(path)
        return node is not None and node.children is not None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Mount: fetch the top level and auto-expand top-level directories."""
        await self.refresh()

    async def refresh(self) -> None:
        """Re-fetch the top level and every expanded path.

        Expansion state is left untouched; regenerated nodes pick up their
        cached children by path until fresh listings arrive.
        """
        if self._closed:
            return

        child_tasks = [self._start_child_fetch(path) for path in sorted(self._expanded)]
        root_loaded = await self._load_root()

        if root_loaded and not self._mounted:
            self._mounted = True
            child_tasks.extend(self._auto_expand())

        if child_tasks:
            await asyncio.gather(*child_tasks, return_exceptions=True)

    def _auto_expand(self) -> list[asyncio.Task[None]]:
        if not self._auto_expand_top_level or self._expanded:
            return []
        tasks = []
        for node in self._roots:
            if node.is_directory:
                task = self.expand(node.path)
                if task is not None:
                    tasks.append(task)
        return tasks

    async def settle(self) -> None:
        """Wait until no child fetch is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    def close(self) -> None:
        """Cancel in-flight fetches; results arriving later are ignored."""
        self._closed = True
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()

    def _next_request_id(self, key: str) -> int:
        request_id = self._request_ids.get(key, 0) + 1
        self._request_ids[key] = request_id
        return request_id

    def _is_current(self, key: str, request_id: int) -> bool:
        return not self._closed and self._request_ids.get(key) == request_id

    async def _load_root(self) -> bool:
        request_id = self._next_request_id(_ROOT)
        self._root_loading = True
        try:
            nodes = await execute(self._fetch_top_level, self._retry_policy)
        except Exception as e:
            if self._is_current(_ROOT, request_id):
                self._root_error = e
                logger.warning("Failed to load file tree: %s", e)
            return False
        finally:
            if self._request_ids.get(_ROOT) == request_id:
                self._root_loading = False

        if not self._is_current(_ROOT, request_id):
            logger.debug("Discarding superseded top-level listing")
            return False

        self._root_error = None
        self._roots = nodes
        self._absorb_inline(nodes)
        self._rebuild_index()
        return True

    def _start_child_fetch(self, path: str) -> asyncio.Task[None]:
        request_id = self._next_request_id(path)
        task = asyncio.get_running_loop().create_task(
            self._load_children(path, request_id),
            name=f"lazy-tree:{path}",
        )
        self._inflight[path] = task
        task.add_done_callback(functools.partial(self._forget_task, path))
        return task

    def _forget_task(self, path: str, task: asyncio.Task[None]) -> None:
        if self._inflight.get(path) is task:
            del self._inflight[path]

    async def _load_children(self, path: str, request_id: int) -> None:
        try:
            children = await execute(
                functools.partial(self._fetch_children, path),
                self._retry_policy,
            )
        except Exception as e:
            if self._is_current(path, request_id):
                self._errors[path] = e
                logger.warning("Failed to load children of %s: %s", path, e)
            return

        if not self._is_current(path, request_id):
            logger.debug("Discarding superseded listing for %s", path)
            return

        self._errors.pop(path, None)
        self._children[path] = children
        self._absorb_inline(children)
        self._rebuild_index()

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _absorb_inline(self, nodes: list[TreeNode]) -> None:
        """Cache listings the service sent inline with their parents."""
        for node in nodes:
            if node.is_directory and node.children is not None:
                self._children[node.path] = node.children
                self._absorb_inline(node.children)

    def _rebuild_index(self) -> None:
        """Re-point every reachable node at its cached children."""
        self._nodes = {}
        self._index(self._roots, set())

    def _index(self, nodes: list[TreeNode], seen: set[str]) -> None:
        for node in nodes:
            if node.path in seen:
                continue
            seen.add(node.path)
            self._nodes[node.path] = node
            if not node.is_directory:
                continue
            cached = self._children.get(node.path)
            if cached is not None and node.children is not cached:
                node.attach(cached)
            if node.children:
                self._index(node.children, seen)
