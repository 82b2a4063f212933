"""
WebSocket change feed (websockets client for /ws/changes/{collection}).
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from livesync.errors import TransportError
from livesync.gateway import ChangeFeed, ChangeStream
from livesync.records import Collection, parse_collection

logger = logging.getLogger(__name__)


def websocket_url(base_url: str, path: str, token: Optional[str]) -> str:
    """http://host:8000 -> ws://host:8000/path?token=..."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    url = f"{base}{path}"
    if token:
        url = f"{url}?{urlencode({'token': token})}"
    return url


class _WebSocketStream(ChangeStream):
    def __init__(self, connection: Any, collection: Collection) -> None:
        self._connection = connection
        self._collection = collection
        self._closing = False

    async def __anext__(self) -> Any:
        if self._closing:
            raise StopAsyncIteration()
        try:
            message = await self._connection.recv()
        except ConnectionClosedOK as e:
            if self._closing:
                raise StopAsyncIteration() from e
            raise TransportError(f"{self._collection.value} feed closed by server") from e
        except ConnectionClosed as e:
            raise TransportError(f"{self._collection.value} feed lost: {e}") from e
        try:
            return json.loads(message)
        except ValueError:
            # Handed on as-is; the synchronizer drops what it cannot parse.
            logger.warning("Non-JSON message on %s feed", self._collection.value)
            return message

    async def aclose(self) -> None:
        self._closing = True
        await self._connection.close()


class WebSocketChangeFeed(ChangeFeed):
    """
    Args:
        base_url: Server base URL (http or https)
        token_provider: Returns the current bearer token
        open_timeout: Seconds allowed for the WebSocket handshake
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        open_timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url
        self._token_provider = token_provider
        self._open_timeout = open_timeout

    async def open(self, collection: Collection) -> ChangeStream:
        collection = parse_collection(collection)
        url = websocket_url(self.base_url, f"/ws/changes/{collection.value}", self._token_provider())
        try:
            connection = await websockets.connect(url, open_timeout=self._open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"Cannot open {collection.value} feed: {e}") from e
        logger.debug("Opened %s change feed", collection.value)
        return _WebSocketStream(connection, collection)
