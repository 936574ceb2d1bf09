"""Throttled refresh of registered consumers."""

from dashwatch.refresh.orchestrator import (
    RefreshableConsumer,
    RefreshMode,
    RefreshOrchestrator,
    ThrottlePolicy,
)

__all__ = ["RefreshMode", "RefreshOrchestrator", "RefreshableConsumer", "ThrottlePolicy"]
