"""Rich renderables for the tree, the list panels and queue statistics."""

from typing import Any

from rich.console import Group
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from dashwatch.api.queues import JOB_STATES, is_busy
from dashwatch.panels.base import Panel
from dashwatch.tree.lazy import LazyTree
from dashwatch.tree.types import LoadState, TreeNode

_STATUS_STYLES = {
    "ready": "cyan",
    "complete": "green",
    "archived": "dim",
    "backlogged": "yellow",
}


def build_tree(tree: LazyTree, *, title: str = "Working directory") -> Tree:
    """Render the visible part of a lazy tree.

    Collapsed directories show a marker only; expanded ones show their
    children, a loading line, or the per-path error.
    """
    root = Tree(Text(title, style="bold"))
    if tree.error is not None:
        root.add(Text(f"Error: {tree.error}", style="red"))
        return root
    if tree.loading and not tree.roots:
        root.add(Text("Loading...", style="dim"))
        return root
    for node in tree.roots:
        _add_node(root, tree, node)
    return root


def _add_node(parent: Tree, tree: LazyTree, node: TreeNode) -> None:
    if not node.is_directory:
        parent.add(Text(node.name))
        return

    expanded = tree.is_expanded(node.path)
    label = Text(f"{node.name}/", style="bold blue")
    if not expanded:
        label.append(" +", style="dim")
    branch = parent.add(label)
    if not expanded:
        return

    error = tree.error_for(node.path)
    if error is not None:
        branch.add(Text(f"Error: {error}", style="red"))
    if tree.state_of(node.path) is LoadState.LOADING and node.children is None:
        branch.add(Text("Loading...", style="dim"))
        return
    for child in node.children or []:
        _add_node(branch, tree, child)


def build_task_table(tasks: list[dict[str, Any]], *, title: str = "Tasks") -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Updated", style="dim")

    for task in tasks:
        label = str(task.get("status_label") or task.get("status") or "")
        style = _STATUS_STYLES.get(label, "")
        table.add_row(
            str(task.get("id", "")),
            Text(label, style=style),
            str(task.get("title") or task.get("prompt") or ""),
            _short_time(task.get("updated_at") or task.get("updatedAt")),
        )
    return table


def build_conversation_table(
    conversations: list[dict[str, Any]], *, title: str = "Conversations"
) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Messages", justify="right")
    table.add_column("Created", style="dim")

    for conversation in conversations:
        messages = conversation.get("messageCount")
        if messages is None and isinstance(conversation.get("messages"), list):
            messages = len(conversation["messages"])
        table.add_row(
            str(conversation.get("id", "")),
            str(conversation.get("title") or conversation.get("name") or ""),
            "" if messages is None else str(messages),
            _short_time(conversation.get("createdAt") or conversation.get("created_at")),
        )
    return table


def build_queue_table(queues: list[dict[str, Any]], *, title: str = "Queues") -> Table:
    """Job counts per queue; busy queues are highlighted and failures in red."""
    table = Table(title=title, show_header=True)
    table.add_column("Queue")
    for state in JOB_STATES:
        table.add_column(state.capitalize(), justify="right")
    table.add_column("Agents", style="dim")

    for queue in queues:
        name_style = "bold" if is_busy(queue) else ""
        counts = []
        for state in JOB_STATES:
            count = int(queue.get(state) or 0)
            style = "red" if state == "failed" and count else ""
            counts.append(Text(str(count), style=style))
        table.add_row(
            Text(str(queue.get("name", "")), style=name_style),
            *counts,
            ", ".join(queue.get("agents") or []),
        )
    return table


def build_panel_status(panel: Panel[Any]) -> Text:
    """One status line: loading, the panel-scoped error, or nothing."""
    if panel.error:
        return Text(f"{panel.title}: {panel.error}", style="red")
    if panel.loading:
        return Text(f"{panel.title}: loading...", style="dim")
    return Text("")


def build_dashboard(tree: LazyTree, tasks: Panel[list[dict[str, Any]]], *, passes: int = 0) -> Group:
    return Group(
        build_tree(tree),
        build_task_table(tasks.data or [], title=tasks.title),
        build_panel_status(tasks),
        Text(f"refresh passes: {passes}", style="dim"),
    )


def _short_time(value: Any) -> str:
    if not value:
        return ""
    return str(value)[:19].replace("T", " ")
