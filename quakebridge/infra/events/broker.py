"""Live event broadcaster for connected WebSocket clients.

Every frame is `{"event": <name>, "data": <payload>}`. Nothing is buffered:
clients that connect after an event was sent never see it.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket
from loguru import logger

from quakebridge.observability.metrics import PUSH_CLIENTS


NEW_ALERT_EVENT = "new-alert"
GREETING_EVENT = "message"
GREETING = "hello"


def envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


class LiveBroadcaster:
    def __init__(self):
        self._clients: list[WebSocket] = []

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def register(self, websocket: WebSocket) -> None:
        if websocket not in self._clients:
            self._clients.append(websocket)
        PUSH_CLIENTS.set(len(self._clients))

    def unregister(self, websocket: WebSocket) -> None:
        try:
            self._clients.remove(websocket)
        except ValueError:
            pass
        PUSH_CLIENTS.set(len(self._clients))

    async def greet(self, websocket: WebSocket) -> None:
        await websocket.send_json(envelope(GREETING_EVENT, GREETING))

    async def emit(self, event: str, data: Any) -> int:
        """Send to every connected client at once; returns how many received it."""
        clients = self._clients[:]
        if not clients:
            return 0
        frame = envelope(event, data)
        results = await asyncio.gather(*(ws.send_json(frame) for ws in clients), return_exceptions=True)
        delivered = 0
        for ws, result in zip(clients, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping push client after send failure: {}", result)
                self.unregister(ws)
            else:
                delivered += 1
        return delivered

    async def broadcast_topic(self, topic: str, payload: str) -> int:
        return await self.emit(topic, payload)

    async def broadcast_alert(self, row: dict[str, Any]) -> int:
        return await self.emit(NEW_ALERT_EVENT, row)
