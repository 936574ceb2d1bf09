"""Refreshable dashboard panels."""

from dashwatch.panels.base import Panel
from dashwatch.panels.lists import (
    AgentConversationListPanel,
    ConversationListPanel,
    ConversationPanel,
    QueuePanel,
    TaskPanel,
)

__all__ = [
    "AgentConversationListPanel",
    "ConversationListPanel",
    "ConversationPanel",
    "Panel",
    "QueuePanel",
    "TaskPanel",
]
