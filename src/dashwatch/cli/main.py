"""Main CLI entry point.

    dashwatch tree --expand src/components
    dashwatch tasks
    dashwatch conversations --agent
    dashwatch queues --busy
    dashwatch watch --interval 0.5
    dashwatch --log-file watch
"""

import asyncio
import functools
import json
import sys
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

import click
import httpx
from rich.console import Console
from rich.live import Live

from dashwatch import __version__
from dashwatch.api.agent_conversations import list_agent_conversations
from dashwatch.api.client import ApiClient
from dashwatch.api.conversations import list_conversations
from dashwatch.api.files import WorkingDirectoryApi
from dashwatch.api.queues import is_busy, list_queues
from dashwatch.api.tasks import list_tasks
from dashwatch.cli.error_handler import handle_error
from dashwatch.dashboard import TaskDashboard
from dashwatch.foundation.config import DashwatchConfig, load_config
from dashwatch.foundation.errors import DashwatchError
from dashwatch.foundation.logging import configure_logging
from dashwatch.reliability.retry import execute
from dashwatch.render import (
    build_conversation_table,
    build_dashboard,
    build_queue_table,
    build_task_table,
    build_tree,
)
from dashwatch.tree.lazy import LazyTree

T = TypeVar("T")

ListFetch = Callable[[ApiClient], Awaitable[list[dict[str, Any]]]]

console = Console()


@dataclass(slots=True)
class CliState:
    """Per-invocation settings shared by every command."""

    config: DashwatchConfig
    json_output: bool = False
    transport: httpx.AsyncBaseTransport | None = None
    connect: Callable[[str], Any] | None = None

    def client(self) -> ApiClient:
        return ApiClient(
            self.config.api.base_url,
            timeout=self.config.api.timeout_s,
            transport=self.transport,
        )


def cli_entrypoint() -> None:
    """Console-script entry point; unexpected errors get the same reporting."""
    try:
        main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        console.print("\n[dim]Interrupted[/]")
        sys.exit(130)
    except Exception as e:
        handle_error(e, json_output="--json" in sys.argv[1:])


def _run(state: CliState, coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except DashwatchError as e:
        handle_error(e, json_output=state.json_output)


@click.group()
@click.version_option(__version__, prog_name="dashwatch")
@click.option("--debug", is_flag=True, help="Verbose logging to stderr")
@click.option(
    "--log-file",
    "log_file",
    is_flag=True,
    help="Also keep a DEBUG session log under .dashwatch/logs/",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: .dashwatch/config.yaml, then ~/.dashwatch/config.yaml)",
)
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output and errors")
@click.pass_context
def main(
    ctx: click.Context,
    debug: bool,
    log_file: bool,
    config_path: str | None,
    json_output: bool,
) -> None:
    """Watch an automation service's working directory, tasks and conversations."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except DashwatchError as e:
        handle_error(e, json_output=json_output)

    configure_logging(debug=debug or config.debug, persist=log_file)
    ctx.obj["state"] = CliState(
        config=config,
        json_output=json_output,
        transport=ctx.obj.get("transport"),
        connect=ctx.obj.get("connect"),
    )


def _state(ctx: click.Context) -> CliState:
    return ctx.obj["state"]


def _ancestors(path: str) -> list[str]:
    """``"a/b/c"`` -> ``["a", "a/b", "a/b/c"]``."""
    parts = [part for part in path.strip("/").split("/") if part]
    return ["/".join(parts[: i + 1]) for i in range(len(parts))]


# =============================================================================
# tree
# =============================================================================


@main.command()
@click.option(
    "--expand",
    "-e",
    "expand_paths",
    multiple=True,
    help="Directory to expand (repeatable); parents are expanded too",
)
@click.option("--no-auto-expand", is_flag=True, help="Do not expand top-level directories")
@click.pass_context
def tree(ctx: click.Context, expand_paths: tuple[str, ...], no_auto_expand: bool) -> None:
    """Show the working-directory tree, one level per expanded directory.

    \b
    Examples:
        dashwatch tree
        dashwatch tree --expand src/components
    """
    state = _state(ctx)
    lazy = _run(state, _load_tree(state, expand_paths, auto_expand=not no_auto_expand))

    if state.json_output:
        click.echo(json.dumps([node.to_dict() for node in lazy.roots]))
        return
    console.print(build_tree(lazy))


async def _load_tree(
    state: CliState,
    expand_paths: tuple[str, ...],
    *,
    auto_expand: bool,
) -> LazyTree:
    async with state.client() as client:
        files = WorkingDirectoryApi(client, api_prefix=state.config.api.api_prefix)
        lazy = LazyTree(
            files.fetch_top_level,
            files.fetch_children,
            retry_policy=state.config.retry.to_policy(),
            auto_expand_top_level=auto_expand,
        )
        await lazy.load()
        if lazy.error is not None:
            raise lazy.error

        for path in expand_paths:
            for ancestor in _ancestors(path):
                lazy.expand(ancestor)
                await lazy.settle()
        lazy.close()
    return lazy


# =============================================================================
# tasks / conversations / queues
# =============================================================================


@main.command()
@click.pass_context
def tasks(ctx: click.Context) -> None:
    """List background tasks."""
    state = _state(ctx)
    items = _run(state, _fetch_list(state, list_tasks))

    if state.json_output:
        click.echo(json.dumps(items))
        return
    if not items:
        console.print("[dim]No tasks.[/dim]")
        return
    console.print(build_task_table(items))


@main.command()
@click.option("--agent", is_flag=True, help="List agent (voice) conversations instead")
@click.pass_context
def conversations(ctx: click.Context, agent: bool) -> None:
    """List note-taking or agent conversations."""
    state = _state(ctx)
    fetch = list_agent_conversations if agent else list_conversations
    items = _run(state, _fetch_list(state, fetch))

    if state.json_output:
        click.echo(json.dumps(items))
        return
    title = "Agent conversations" if agent else "Conversations"
    if not items:
        console.print(f"[dim]No {title.lower()}.[/dim]")
        return
    console.print(build_conversation_table(items, title=title))


@main.command()
@click.option("--busy", is_flag=True, help="Only queues with active or waiting jobs")
@click.pass_context
def queues(ctx: click.Context, busy: bool) -> None:
    """Show job counts per background queue."""
    state = _state(ctx)
    items = _run(state, _fetch_list(state, list_queues))
    if busy:
        items = [queue for queue in items if is_busy(queue)]

    if state.json_output:
        click.echo(json.dumps(items))
        return
    if not items:
        console.print("[dim]No queues found.[/dim]")
        return
    console.print(build_queue_table(items))


async def _fetch_list(state: CliState, fetch: ListFetch) -> list[dict[str, Any]]:
    async with state.client() as client:
        return await execute(functools.partial(fetch, client), state.config.retry.to_policy())


# =============================================================================
# watch
# =============================================================================


@main.command()
@click.option(
    "--interval",
    type=click.FloatRange(min=0.1),
    default=1.0,
    show_default=True,
    help="Seconds between redraws",
)
@click.pass_context
def watch(ctx: click.Context, interval: float) -> None:
    """Live task dashboard, refreshed as conversations are updated.

    Every conversation update triggers a refresh of the tree (expanded
    directories only) and the task list, throttled to one pass per
    refresh.min_interval_ms. Stop with Ctrl-C.
    """
    state = _state(ctx)
    try:
        _run(state, _watch(state, interval))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/]")


async def _watch(state: CliState, interval: float) -> None:
    dashboard = TaskDashboard.from_config(
        state.config,
        transport=state.transport,
        connect=state.connect,
    )
    async with dashboard:
        await dashboard.start()
        listener = asyncio.get_running_loop().create_task(
            dashboard.listen(),
            name="dashwatch:updates",
        )
        try:
            with Live(_view(dashboard), console=console, refresh_per_second=4) as live:
                while not listener.done():
                    await asyncio.wait({listener}, timeout=interval)
                    live.update(_view(dashboard))
                # Stream ended: let the last passes land before the final frame
                await dashboard.orchestrator.wait_idle()
                live.update(_view(dashboard))
        finally:
            listener.cancel()
        listener.result()


def _view(dashboard: TaskDashboard) -> Any:
    return build_dashboard(
        dashboard.tree,
        dashboard.tasks,
        passes=dashboard.orchestrator.refresh_count,
    )
