"""Lazy, path-keyed file tree."""

from dashwatch.tree.lazy import LazyTree
from dashwatch.tree.types import LoadState, NodeKind, TreeNode, iter_paths, parse_nodes

__all__ = ["LazyTree", "LoadState", "NodeKind", "TreeNode", "iter_paths", "parse_nodes"]
