"""Reconnecting WebSocket stream of conversation updates.

The service pushes one JSON message per conversation change (often one per
streamed chunk of an assistant reply). The stream reconnects after any close
it did not ask for, backing off exponentially with a little jitter:

    delay = min(min(250 * 2**attempt, max) + jitter(0..200), max)

A successful open resets the attempt counter.
"""

import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import websockets

logger = logging.getLogger(__name__)

_BASE_DELAY_MS = 250
_MAX_JITTER_MS = 200


def reconnect_delay_ms(
    attempt: int,
    max_delay_ms: int,
    *,
    rand: Callable[[], float] = random.random,
) -> int:
    """Backoff before reconnect ``attempt`` (1-based)."""
    base = min(_BASE_DELAY_MS * 2**attempt, max_delay_ms)
    jitter = round(rand() * _MAX_JITTER_MS)
    return min(base + jitter, max_delay_ms)


def build_ws_url(base_url: str, path: str) -> str:
    """Turn an http(s) service origin plus path into a ws(s) URL."""
    parts = urlsplit(base_url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme or "ws")
    if not path.startswith("/"):
        path = f"/{path}"
    path_part, _, query = path.partition("?")
    return urlunsplit((scheme, parts.netloc, path_part, query, ""))


class ConversationUpdates:
    """Async iterator over decoded update messages.

    Usage:
        updates = ConversationUpdates("ws://localhost:3000/conversations/api/ws")
        async for message in updates:
            orchestrator.trigger()
        ...
        await updates.close()   # from another task; ends the iteration
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect: bool = True,
        max_reconnect_delay_ms: int = 5000,
        connect: Callable[[str], Any] = websockets.connect,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.reconnect = reconnect
        self.max_reconnect_delay_ms = max_reconnect_delay_ms
        self._connect = connect
        self._sleep = sleep
        self._ws: Any = None
        self._closed = False
        self.attempt = 0

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[dict[str, Any]]:
        while not self._closed:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self.attempt = 0
                    logger.info("Connected to %s", self.url)
                    async for raw in ws:
                        message = _decode(raw)
                        if message is not None:
                            yield message
                        if self._closed:
                            break
                logger.info("Connection to %s closed", self.url)
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.warning("Connection to %s failed: %s", self.url, e)
            finally:
                self._ws = None

            if self._closed or not self.reconnect:
                return

            self.attempt += 1
            delay = reconnect_delay_ms(self.attempt, self.max_reconnect_delay_ms)
            logger.debug("Reconnecting to %s in %dms (attempt %d)", self.url, delay, self.attempt)
            await self._sleep(delay / 1000)

    async def close(self) -> None:
        """Stop reconnecting and close the live connection, if any."""
        self._closed = True
        ws = self._ws
        if ws is not None:
            await ws.close(code=1000, reason="Client closing")


def _decode(raw: str | bytes) -> dict[str, Any] | None:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed update message")
        return None
    if not isinstance(message, dict):
        logger.debug("Ignoring non-object update message")
        return None
    return message
