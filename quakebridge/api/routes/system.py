"""Operational routes: liveness, smoke test, Prometheus exposition."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from quakebridge import __version__


router = APIRouter(tags=["system"])


@router.get("/test")
async def test_route():
    return {"message": "Test route works!"}


@router.get("/api/health")
async def health(request: Request):
    subscriber = getattr(request.app.state, "subscriber", None)
    return {
        "status": "ok",
        "service": "quakebridge",
        "version": __version__,
        "mqtt_connected": bool(subscriber and subscriber.connected),
        "push_clients": request.app.state.broadcaster.client_count,
    }


@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
