"""Pytest fixtures for Dashwatch tests."""

import asyncio
import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest

from dashwatch.tree.types import NodeKind, TreeNode


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """Undo configure_logging() side effects on the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def isolated_home(tmp_path, monkeypatch) -> Path:
    """Run with an empty home and working directory so no config file is found."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


# =============================================================================
# Time
# =============================================================================


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and only yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)

    @property
    def delays_ms(self) -> list[int]:
        return [round(d * 1000) for d in self.delays]


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


# =============================================================================
# File listings
# =============================================================================


def make_nodes(entries: list[str]) -> list[TreeNode]:
    """``["src/", "README.md"]`` -> one directory node and one file node."""
    nodes = []
    for entry in entries:
        kind = NodeKind.DIRECTORY if entry.endswith("/") else NodeKind.FILE
        path = entry.rstrip("/")
        nodes.append(TreeNode(name=path.rsplit("/", 1)[-1], path=path, kind=kind))
    return nodes


class FakeFileService:
    """In-memory working directory with call recording and held responses.

    ``listings`` maps a directory path ("" for the top level) to its entries,
    or to an exception to raise. Every call builds fresh node objects, the way
    a real re-fetch would.
    """

    def __init__(self, listings: dict[str, list[str] | Exception]) -> None:
        self.listings = listings
        self.calls: list[str] = []
        self._holds: dict[str, asyncio.Event] = {}

    def hold(self, path: str) -> asyncio.Event:
        """Make the next fetch of ``path`` wait until the event is set."""
        event = asyncio.Event()
        self._holds[path] = event
        return event

    def count(self, path: str) -> int:
        return self.calls.count(path)

    async def fetch_top_level(self) -> list[TreeNode]:
        return await self._serve("")

    async def fetch_children(self, path: str) -> list[TreeNode]:
        return await self._serve(path)

    async def _serve(self, path: str) -> list[TreeNode]:
        self.calls.append(path)
        result = self.listings[path]
        gate = self._holds.pop(path, None)
        if gate is not None:
            await gate.wait()
        if isinstance(result, Exception):
            raise result
        return make_nodes(result)


@pytest.fixture
def file_service() -> Callable[[dict[str, list[str] | Exception]], FakeFileService]:
    return FakeFileService


# =============================================================================
# HTTP
# =============================================================================


Handler = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """MockTransport routing by path and remembering every request."""

    def __init__(self, routes: dict[str, Handler | httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": f"No route for {request.url.path}"})
        if isinstance(route, httpx.Response):
            # Fresh copy per request; responses are bound to their request
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        return route(request)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def transport() -> Callable[[dict[str, Handler | httpx.Response]], RecordingTransport]:
    return RecordingTransport


# =============================================================================
# WebSocket
# =============================================================================


class ScriptedSocket:
    """Connection yielding a fixed list of frames, then closing."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message

    async def close(self, code: int = 1000, reason: str = "") -> None:
        return None


class ScriptedConnect:
    """Stand-in for ``websockets.connect`` serving one scripted connection."""

    def __init__(self, messages: list[str]) -> None:
        self.socket = ScriptedSocket(messages)
        self.urls: list[str] = []

    def __call__(self, url: str) -> "ScriptedConnect":
        self.urls.append(url)
        return self

    async def __aenter__(self) -> ScriptedSocket:
        return self.socket

    async def __aexit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture
def scripted_connect() -> Callable[[list[str]], ScriptedConnect]:
    return ScriptedConnect
