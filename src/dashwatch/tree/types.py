"""Tree node types for the working-directory browser."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dashwatch.foundation.errors import DashwatchError, ErrorCode


class NodeKind(Enum):
    """What a tree node points at."""

    FILE = "file"
    DIRECTORY = "directory"


class LoadState(Enum):
    """Child-loading state of a directory path."""

    UNLOADED = "unloaded"
    """Children never requested."""

    LOADING = "loading"
    """A child fetch is in flight."""

    LOADED = "loaded"
    """Children cached (possibly empty)."""

    ERROR = "error"
    """Last child fetch failed; cached children, if any, are kept."""


@dataclass(slots=True)
class TreeNode:
    """A file or directory in the hierarchical listing.

    ``path`` is the node's identity. Re-fetches regenerate node objects, so
    nothing outside this module should hold on to a node across a refresh;
    look it up again by path instead.
    """

    name: str
    path: str
    kind: NodeKind
    children: list["TreeNode"] | None = None
    loaded: bool = False

    def __post_init__(self) -> None:
        if self.kind is NodeKind.FILE:
            if self.children is not None:
                raise ValueError(f"file node {self.path!r} cannot have children")
            self.loaded = False
        elif self.children is not None:
            self.loaded = True

    @property
    def is_directory(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    def attach(self, children: list["TreeNode"]) -> None:
        """Mark a directory loaded with the given one-level listing."""
        if not self.is_directory:
            raise DashwatchError(
                code=ErrorCode.TREE_NOT_A_DIRECTORY,
                context={"path": self.path},
            )
        self.children = children
        self.loaded = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TreeNode":
        """Parse the service's ``{"name", "path", "type", "children"?}`` shape."""
        if not isinstance(data, Mapping):
            raise _invalid(f"expected an object, got {type(data).__name__}")
        try:
            name = data["name"]
            path = data["path"]
            kind = NodeKind(data["type"])
        except KeyError as e:
            raise _invalid(f"node is missing {e.args[0]!r}") from e
        except ValueError as e:
            raise _invalid(f"unknown node type {data.get('type')!r}") from e
        if not isinstance(name, str) or not isinstance(path, str) or not path:
            raise _invalid("node name and path must be non-empty strings")

        raw_children = data.get("children")
        children = None
        if kind is NodeKind.DIRECTORY and raw_children is not None:
            children = parse_nodes(raw_children)
        return cls(name=name, path=path, kind=kind, children=children)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "type": self.kind.value,
        }
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def parse_nodes(payload: Any) -> list[TreeNode]:
    """Parse a JSON listing into nodes, preserving server order."""
    if not isinstance(payload, list):
        raise _invalid(f"expected a list of nodes, got {type(payload).__name__}")
    return [TreeNode.from_dict(item) for item in payload]


def iter_paths(nodes: Iterable[TreeNode]) -> Iterable[str]:
    """Yield every path in ``nodes`` and their loaded descendants."""
    for node in nodes:
        yield node.path
        if node.children:
            yield from iter_paths(node.children)


def _invalid(detail: str) -> DashwatchError:
    return DashwatchError(
        code=ErrorCode.API_INVALID_RESPONSE,
        context={"detail": f"Malformed file tree: {detail}"},
    )
