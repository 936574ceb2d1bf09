"""Automation service REST and WebSocket clients.

Endpoint modules are imported directly:

    from dashwatch.api import tasks
    items = await tasks.list_tasks(client)
"""

from dashwatch.api.client import ApiClient

__all__ = ["ApiClient"]
