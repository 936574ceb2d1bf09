"""Dashwatch - freshness layer for an automation service dashboard.

Lazily materialized file tree, throttled multi-panel refresh and bounded
retry around every fetch.
"""

from dashwatch.foundation.errors import ApiError, DashwatchError, ErrorCode
from dashwatch.refresh.orchestrator import (
    RefreshableConsumer,
    RefreshMode,
    RefreshOrchestrator,
    ThrottlePolicy,
)
from dashwatch.reliability.retry import RetryPolicy, execute
from dashwatch.tree.lazy import LazyTree
from dashwatch.tree.types import LoadState, NodeKind, TreeNode

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ApiError",
    "DashwatchError",
    "ErrorCode",
    # Retry
    "RetryPolicy",
    "execute",
    # Tree
    "LazyTree",
    "LoadState",
    "NodeKind",
    "TreeNode",
    # Refresh
    "RefreshMode",
    "RefreshOrchestrator",
    "RefreshableConsumer",
    "ThrottlePolicy",
]
