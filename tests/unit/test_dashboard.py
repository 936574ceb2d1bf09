"""Integration-style tests for the task dashboard wiring."""

import json

import httpx
import pytest

from dashwatch.api.client import ApiClient
from dashwatch.api.updates import ConversationUpdates
from dashwatch.dashboard import TaskDashboard
from dashwatch.foundation.config import load_config
from dashwatch.refresh.orchestrator import RefreshMode
from dashwatch.reliability.retry import NO_RETRY_POLICY

BASE = "http://runner.test"


def service_routes() -> dict:
    def files(request: httpx.Request) -> httpx.Response:
        path = request.url.params.get("path")
        if path is None:
            return httpx.Response(200, json=[
                {"name": "src", "path": "src", "type": "directory"},
                {"name": "README.md", "path": "README.md", "type": "file"},
            ])
        if path == "src":
            return httpx.Response(200, json=[{"name": "main.py", "path": "src/main.py", "type": "file"}])
        return httpx.Response(404, json={"error": "missing"})

    return {
        "/api/working-directory/files": files,
        "/api/tasks": httpx.Response(200, json=[{"id": 1, "title": "index repo"}]),
    }


def make_dashboard(mock, **kwargs) -> TaskDashboard:
    client = ApiClient(BASE, transport=mock)
    kwargs.setdefault("retry_policy", NO_RETRY_POLICY)
    kwargs.setdefault("mode", RefreshMode.IMMEDIATE)
    return TaskDashboard(client, owns_client=True, **kwargs)


class TestTaskDashboard:
    """Tests for mount, event-driven refresh and teardown."""

    @pytest.mark.asyncio
    async def test_start_loads_tree_and_tasks(self, transport) -> None:
        async with make_dashboard(transport(service_routes())) as dashboard:
            await dashboard.start()

            assert [n.path for n in dashboard.tree.roots] == ["src", "README.md"]
            assert dashboard.tree.is_expanded("src")
            assert [c.path for c in dashboard.tree.node("src").children] == ["src/main.py"]
            assert dashboard.tasks.data == [{"id": 1, "title": "index repo"}]

    @pytest.mark.asyncio
    async def test_conversation_update_refreshes_every_consumer(self, transport) -> None:
        mock = transport(service_routes())
        async with make_dashboard(mock) as dashboard:
            await dashboard.start()
            before = len(mock.requests)

            dashboard.on_conversation_updated({"type": "conversation_updated"})
            await dashboard.orchestrator.wait_idle()

            assert sorted(mock.paths()[before:]) == [
                "/api/tasks",
                "/api/working-directory/files",
                "/api/working-directory/files",
            ]
            assert dashboard.tree.is_expanded("src")

    @pytest.mark.asyncio
    async def test_throttled_burst_refreshes_once_immediately(self, transport) -> None:
        async with make_dashboard(transport(service_routes()), mode=RefreshMode.THROTTLED) as dashboard:
            await dashboard.start()
            for _ in range(10):
                dashboard.on_conversation_updated()

            assert dashboard.orchestrator.refresh_count == 1
            assert dashboard.orchestrator.pending is True

            dashboard.orchestrator.dispose()
            await dashboard.orchestrator.wait_idle()

    @pytest.mark.asyncio
    async def test_listen_routes_messages(self, transport, scripted_connect) -> None:
        messages = [json.dumps({"type": "conversation_updated", "conversationId": "c1"})] * 3
        updates = ConversationUpdates(
            "ws://runner.test/conversations/api/ws",
            reconnect=False,
            connect=scripted_connect(messages),
        )
        seen: list[dict] = []

        async with make_dashboard(transport(service_routes()), updates=updates) as dashboard:
            dashboard.add_listener(seen.append)
            await dashboard.start()
            await dashboard.listen()
            await dashboard.orchestrator.wait_idle()

            assert len(seen) == 3
            assert dashboard.orchestrator.refresh_count == 3

    @pytest.mark.asyncio
    async def test_listen_requires_update_stream(self, transport) -> None:
        async with make_dashboard(transport(service_routes())) as dashboard:
            with pytest.raises(RuntimeError, match="without an update stream"):
                await dashboard.listen()

    @pytest.mark.asyncio
    async def test_events_after_close_are_ignored(self, transport) -> None:
        dashboard = make_dashboard(transport(service_routes()))
        await dashboard.start()
        await dashboard.aclose()

        dashboard.on_conversation_updated()

        assert dashboard.orchestrator.refresh_count == 0
        assert dashboard.client.closed

    @pytest.mark.asyncio
    async def test_refresh_now_bypasses_throttle(self, transport) -> None:
        async with make_dashboard(transport(service_routes()), mode=RefreshMode.THROTTLED) as dashboard:
            await dashboard.start()
            dashboard.on_conversation_updated()
            await dashboard.refresh_now()
            await dashboard.orchestrator.wait_idle()

            assert dashboard.orchestrator.refresh_count == 2


class TestFromConfig:
    def test_applies_configuration(self, tmp_path, isolated_home) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "api:\n"
            "  base_url: https://runner.example\n"
            "  api_prefix: /conversations/api\n"
            "retry:\n"
            "  max_retries: 1\n"
            "refresh:\n"
            "  mode: immediate\n"
        )
        config = load_config(config_file, environ={})

        dashboard = TaskDashboard.from_config(config)

        assert dashboard.orchestrator.mode is RefreshMode.IMMEDIATE
        assert dashboard.updates is not None
        assert dashboard.updates.url == "wss://runner.example/conversations/api/ws"
        assert dashboard.files.endpoint == "/conversations/api/working-directory/files"
        assert dashboard.client.base_url == "https://runner.example"

    def test_without_subscription(self, isolated_home) -> None:
        dashboard = TaskDashboard.from_config(load_config(environ={}), subscribe=False)
        assert dashboard.updates is None

    def test_reconnect_and_connector_are_configurable(self, isolated_home, scripted_connect) -> None:
        config = load_config(environ={"DASHWATCH_API_RECONNECT_UPDATES": "false"})
        connect = scripted_connect([])

        dashboard = TaskDashboard.from_config(config, connect=connect)

        assert dashboard.updates is not None
        assert dashboard.updates.reconnect is False
        assert dashboard.updates._connect is connect

    def test_reconnects_by_default(self, isolated_home) -> None:
        dashboard = TaskDashboard.from_config(load_config(environ={}))
        assert dashboard.updates is not None
        assert dashboard.updates.reconnect is True
