"""
WebSocket Manager - pushes change notifications to connected editors.

Events are small JSON objects with a `type` key; clients react by
fetching the full state over the REST API.
"""
from fastapi import WebSocket
from typing import Set
import asyncio
import json
import logging


logger = logging.getLogger(__name__)

DOCUMENT_UPDATED = "document_updated"


class WebSocketManager:
    """Tracks editor connections and fans out events."""

    def __init__(self):
        self._clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info("Editor connected (%d open)", len(self._clients))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("Editor disconnected (%d open)", len(self._clients))

    async def notify(self, event: str, **payload):
        """Send `{"type": event, **payload}` to every client; dead sockets are dropped."""
        async with self._lock:
            clients = list(self._clients)
        if not clients:
            return

        text = json.dumps({"type": event, **payload})
        dead = []
        for websocket in clients:
            try:
                await websocket.send_text(text)
            except Exception as e:
                logger.debug("Dropping editor connection: %s", e)
                dead.append(websocket)

        if dead:
            async with self._lock:
                self._clients.difference_update(dead)

    async def notify_document_updated(self, document_id: str | None = None):
        await self.notify(DOCUMENT_UPDATED, document_id=document_id)

    async def close_all(self):
        """Close every connection (server shutdown)."""
        async with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for websocket in clients:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug("Error closing editor connection: %s", e)
