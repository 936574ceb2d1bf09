"""Unit tests for the lazy tree state manager.

Tests cover:
- Mount: top-level load and auto-expansion
- Expansion: toggling, deduplication, caching
- Refresh: expanded paths re-fetched, expansion preserved
- Failure isolation and stale-response handling
"""

import asyncio

import pytest

from dashwatch.foundation.errors import ApiError, ErrorCode
from dashwatch.reliability.retry import NO_RETRY_POLICY, RetryPolicy
from dashwatch.tree.lazy import LazyTree
from dashwatch.tree.types import LoadState


LISTINGS = {
    "": ["src/", "docs/", "README.md"],
    "src": ["src/components/", "src/main.py"],
    "src/components": ["src/components/Button.tsx"],
    "docs": ["docs/index.md"],
}


def make_tree(service, **kwargs) -> LazyTree:
    kwargs.setdefault("retry_policy", NO_RETRY_POLICY)
    return LazyTree(service.fetch_top_level, service.fetch_children, **kwargs)


async def toggle(tree: LazyTree, path: str) -> None:
    task = tree.toggle_expand(path)
    if task is not None:
        await task


def child_names(tree: LazyTree, path: str) -> list[str]:
    node = tree.node(path)
    assert node is not None
    return [child.name for child in node.children or []]


# =============================================================================
# Mount
# =============================================================================


class TestMount:
    """Tests for the initial load."""

    @pytest.mark.asyncio
    async def test_load_fetches_top_level(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)

        await tree.load()

        assert [n.path for n in tree.roots] == ["src", "docs", "README.md"]
        assert service.calls == [""]
        assert tree.expanded == frozenset()
        assert tree.error is None
        assert tree.loading is False

    @pytest.mark.asyncio
    async def test_auto_expands_top_level_directories(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)

        await tree.load()

        assert tree.expanded == {"src", "docs"}
        assert sorted(service.calls) == ["", "docs", "src"]
        assert child_names(tree, "src") == ["components", "main.py"]
        assert child_names(tree, "docs") == ["index.md"]

    @pytest.mark.asyncio
    async def test_auto_expand_happens_once(self, file_service) -> None:
        """Collapsing everything and refreshing does not re-expand."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()

        tree.collapse("src")
        tree.collapse("docs")
        await tree.refresh()

        assert tree.expanded == frozenset()

    @pytest.mark.asyncio
    async def test_top_level_failure_is_exposed_not_raised(self, file_service) -> None:
        failure = ApiError(ErrorCode.API_REQUEST_FAILED, "Forbidden", status=403)
        service = file_service({"": failure})
        tree = make_tree(service)

        await tree.load()

        assert tree.error is failure
        assert tree.roots == []
        assert tree.loading is False

    @pytest.mark.asyncio
    async def test_top_level_error_clears_on_success(self, file_service) -> None:
        service = file_service({**LISTINGS, "": ApiError(ErrorCode.API_SERVER_ERROR, "x", status=500)})
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()
        assert tree.error is not None

        service.listings[""] = LISTINGS[""]
        await tree.refresh()

        assert tree.error is None
        assert len(tree.roots) == 3

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        failures = [ApiError(ErrorCode.API_SERVER_ERROR, "Bad Gateway", status=502)]
        attempts = 0

        async def flaky_top_level():
            nonlocal attempts
            attempts += 1
            if failures:
                raise failures.pop()
            return await service.fetch_top_level()

        tree = LazyTree(
            flaky_top_level,
            service.fetch_children,
            retry_policy=RetryPolicy(max_retries=2, initial_ms=0, max_ms=0),
            auto_expand_top_level=False,
        )
        await tree.load()

        assert attempts == 2
        assert tree.error is None
        assert len(tree.roots) == 3


# =============================================================================
# Expansion
# =============================================================================


class TestExpansion:
    """Tests for expand/collapse and on-demand loading."""

    @pytest.mark.asyncio
    async def test_expand_fetches_one_level(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        task = tree.toggle_expand("src")
        assert task is not None
        await task

        assert tree.is_expanded("src")
        assert child_names(tree, "src") == ["components", "main.py"]
        assert service.count("src/components") == 0

    @pytest.mark.asyncio
    async def test_toggle_returns_task_only_for_new_fetch(self, file_service) -> None:
        """Callers must check for None before awaiting the toggle result."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()

        # Auto-expanded with children cached: collapse, then re-expand from cache
        assert tree.toggle_expand("src") is None
        assert tree.toggle_expand("src") is None

        task = tree.toggle_expand("src/components")
        assert isinstance(task, asyncio.Task)
        await task
        assert child_names(tree, "src/components") == ["Button.tsx"]

    @pytest.mark.asyncio
    async def test_toggle_pair_is_idempotent(self, file_service) -> None:
        """Expand-then-collapse leaves the expanded set unchanged."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()
        before = tree.expanded
        visible_before = [(d, n.path) for d, n in tree.visible_nodes()]

        await toggle(tree, "src")
        assert not tree.is_expanded("src")
        await toggle(tree, "src")

        assert tree.expanded == before
        assert [(d, n.path) for d, n in tree.visible_nodes()] == visible_before

    @pytest.mark.asyncio
    async def test_reexpand_uses_cache(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()

        tree.toggle_expand("src")
        assert tree.toggle_expand("src") is None

        assert service.count("src") == 1
        assert child_names(tree, "src") == ["components", "main.py"]

    @pytest.mark.asyncio
    async def test_concurrent_expands_share_one_fetch(self, file_service) -> None:
        """Two expands before the response arrives issue a single request."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        gate = service.hold("src")
        first = tree.expand("src")
        second = tree.expand("src")
        assert first is second
        assert tree.state_of("src") is LoadState.LOADING

        gate.set()
        await first

        assert service.count("src") == 1
        assert tree.state_of("src") is LoadState.LOADED

    @pytest.mark.asyncio
    async def test_collapse_during_fetch_keeps_result(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        gate = service.hold("src")
        task = tree.toggle_expand("src")
        assert tree.toggle_expand("src") is task  # collapse, fetch still running
        gate.set()
        await task

        assert not tree.is_expanded("src")
        assert tree.state_of("src") is LoadState.LOADED

    @pytest.mark.asyncio
    async def test_expanding_a_file_is_ignored(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        assert tree.expand("README.md") is None
        assert not tree.is_expanded("README.md")
        assert service.calls == [""]

    @pytest.mark.asyncio
    async def test_nested_expand_and_visible_order(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()

        await tree.expand("src/components")

        assert [(d, n.path) for d, n in tree.visible_nodes()] == [
            (0, "src"),
            (1, "src/components"),
            (2, "src/components/Button.tsx"),
            (1, "src/main.py"),
            (0, "docs"),
            (1, "docs/index.md"),
            (0, "README.md"),
        ]

    @pytest.mark.asyncio
    async def test_state_transitions(self, file_service) -> None:
        service = file_service({**LISTINGS, "docs": ApiError(ErrorCode.API_SERVER_ERROR, "x", status=500)})
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        assert tree.state_of("src") is LoadState.UNLOADED
        await tree.expand("src")
        assert tree.state_of("src") is LoadState.LOADED
        await tree.expand("docs")
        assert tree.state_of("docs") is LoadState.ERROR


# =============================================================================
# Refresh
# =============================================================================


class TestRefresh:
    """Tests for re-fetching the expanded portion of the tree."""

    @pytest.mark.asyncio
    async def test_refresh_refetches_expanded_paths(self, file_service) -> None:
        """Root, src and src/components are re-fetched; both stay expanded."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()
        await tree.expand("src")
        await tree.expand("src/components")
        service.calls.clear()

        await tree.refresh()

        assert sorted(service.calls) == ["", "src", "src/components"]
        assert tree.expanded == {"src", "src/components"}
        assert child_names(tree, "src/components") == ["Button.tsx"]

    @pytest.mark.asyncio
    async def test_refresh_picks_up_new_entries(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()
        await tree.expand("src/components")

        service.listings["src/components"] = [
            "src/components/Button.tsx",
            "src/components/Card.tsx",
        ]
        await tree.refresh()

        assert child_names(tree, "src/components") == ["Button.tsx", "Card.tsx"]
        # Regenerated nodes still carry their loaded subtrees
        assert tree.node("src").children is not None

    @pytest.mark.asyncio
    async def test_collapsed_paths_are_not_refetched(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()
        tree.collapse("docs")
        service.calls.clear()

        await tree.refresh()

        assert "docs" not in service.calls
        # Cached listing is kept for a later re-expand
        assert tree.expand("docs") is None

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, file_service) -> None:
        """A slow fetch resolving after a newer one never wins."""
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        gate = service.hold("src")
        slow = tree.expand("src")
        await asyncio.sleep(0)
        service.listings["src"] = ["src/fresh.py"]

        await tree.refresh()
        assert child_names(tree, "src") == ["fresh.py"]

        gate.set()
        await slow
        assert child_names(tree, "src") == ["fresh.py"]


# =============================================================================
# Failure isolation
# =============================================================================


class TestFailureIsolation:
    """Tests for per-path error markers."""

    @pytest.mark.asyncio
    async def test_failed_child_fetch_does_not_hide_sibling(self, file_service) -> None:
        failure = ApiError(ErrorCode.API_NOT_FOUND, "Directory 'src' not found", status=404)
        service = file_service({**LISTINGS, "src": failure})
        tree = make_tree(service)

        await tree.load()

        assert tree.error_for("src") is failure
        assert tree.error_for("docs") is None
        assert child_names(tree, "docs") == ["index.md"]
        assert tree.error is None

    @pytest.mark.asyncio
    async def test_error_marker_clears_on_success(self, file_service) -> None:
        service = file_service({**LISTINGS, "src": ApiError(ErrorCode.API_SERVER_ERROR, "x", status=500)})
        tree = make_tree(service)
        await tree.load()
        assert tree.error_for("src") is not None

        service.listings["src"] = LISTINGS["src"]
        await tree.refresh()

        assert tree.error_for("src") is None
        assert child_names(tree, "src") == ["components", "main.py"]

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_children(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service)
        await tree.load()

        service.listings["src"] = ApiError(ErrorCode.API_SERVER_ERROR, "x", status=500)
        await tree.refresh()

        assert tree.state_of("src") is LoadState.ERROR
        assert child_names(tree, "src") == ["components", "main.py"]


# =============================================================================
# Teardown
# =============================================================================


class TestClose:
    """Tests for close()."""

    @pytest.mark.asyncio
    async def test_close_cancels_inflight_fetches(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        service.hold("src")
        task = tree.expand("src")
        await asyncio.sleep(0)
        tree.close()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert tree.state_of("src") is LoadState.UNLOADED

    @pytest.mark.asyncio
    async def test_closed_tree_ignores_requests(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()
        tree.close()

        assert tree.expand("src") is None
        await tree.refresh()
        assert service.calls == [""]

    @pytest.mark.asyncio
    async def test_settle_waits_for_everything(self, file_service) -> None:
        service = file_service(dict(LISTINGS))
        tree = make_tree(service, auto_expand_top_level=False)
        await tree.load()

        tree.expand("src")
        tree.expand("docs")
        await tree.settle()

        assert tree.state_of("src") is LoadState.LOADED
        assert tree.state_of("docs") is LoadState.LOADED
