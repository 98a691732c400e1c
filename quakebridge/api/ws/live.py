"""Live push channel: greets each client, then keeps it registered for fan-out."""

from __future__ import annotations

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from quakebridge.api.deps import get_ws_broadcaster


async def stream_live_events(websocket: WebSocket) -> None:
    broadcaster = get_ws_broadcaster(websocket)
    await websocket.accept()
    broadcaster.register(websocket)
    logger.info("New client connected")
    try:
        await broadcaster.greet(websocket)
        # Inbound frames are ignored; reading only detects the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unregister(websocket)
        logger.info("Client disconnected")
