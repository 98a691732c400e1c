"""Request-scoped accessors for the objects built in `create_app`."""

from __future__ import annotations

from fastapi import Request, WebSocket

from quakebridge.infra.db.sqlite import StoreGateway
from quakebridge.infra.events.broker import LiveBroadcaster


def get_gateway(request: Request) -> StoreGateway:
    return request.app.state.gateway


def get_ws_broadcaster(websocket: WebSocket) -> LiveBroadcaster:
    return websocket.app.state.broadcaster
