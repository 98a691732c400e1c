"""FastAPI entrypoint for Quakebridge.

`create_app` is the composition root: the store gateway, broadcaster, ingest
handler and bus subscriber are built once here and hung off `app.state`.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

from quakebridge import __version__
from quakebridge.api.routes.system import router as system_router
from quakebridge.api.routes.telemetry import router as telemetry_router
from quakebridge.api.ws.live import stream_live_events
from quakebridge.config import Settings, get_settings
from quakebridge.core.usecases.ingest import IngestHandler
from quakebridge.infra.bus.mqtt import TelemetrySubscriber
from quakebridge.infra.db.sqlite import DataAccessError, StoreGateway
from quakebridge.infra.events.broker import LiveBroadcaster
from quakebridge.observability.log_setup import configure_logging
from quakebridge.observability.metrics import HTTP_REQUEST_LATENCY_SEC, HTTP_REQUESTS_TOTAL


STATIC_DIR = Path(__file__).resolve().parent / "static"


async def probe_database(gateway: StoreGateway) -> str | None:
    """Log the datastore clock; failures are reported, never raised."""
    try:
        now = await gateway.now()
    except DataAccessError as exc:
        logger.error("Database probe failed: {}", exc)
        return None
    logger.info("Current time from database: {}", now)
    return now


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    gateway: StoreGateway = app.state.gateway
    try:
        await gateway.open()
    except (DataAccessError, sqlite3.Error, OSError) as exc:
        raise RuntimeError(f"Database initialization failed for {settings.db_path}") from exc
    await probe_database(gateway)

    subscriber = app.state.subscriber
    if subscriber is None and settings.mqtt_enabled:
        subscriber = TelemetrySubscriber(app.state.ingest.handle, settings=settings)
        app.state.subscriber = subscriber
    if subscriber is not None:
        subscriber.start(asyncio.get_running_loop())
    else:
        logger.info("MQTT subscriber disabled")

    yield

    if subscriber is not None:
        subscriber.stop()
    await gateway.close()


def create_app(
    settings: Settings | None = None,
    *,
    gateway: StoreGateway | None = None,
    broadcaster: LiveBroadcaster | None = None,
    subscriber: TelemetrySubscriber | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    gateway = gateway or StoreGateway(settings)
    broadcaster = broadcaster or LiveBroadcaster()

    app = FastAPI(
        title="Quakebridge",
        description="MQTT earthquake/heartbeat telemetry bridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.broadcaster = broadcaster
    app.state.ingest = IngestHandler(gateway, broadcaster)
    app.state.subscriber = subscriber

    app.include_router(system_router)
    app.include_router(telemetry_router)

    @app.middleware("http")
    async def prometheus_http_middleware(request: Request, call_next):
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = int(getattr(response, "status_code", 500))
            return response
        finally:
            path = request.url.path
            duration = max(0.0, time.perf_counter() - start)
            HTTP_REQUESTS_TOTAL.labels(request.method, path, str(status_code)).inc()
            HTTP_REQUEST_LATENCY_SEC.labels(request.method, path).observe(duration)

    @app.websocket("/ws")
    async def ws_live(websocket: WebSocket):
        await stream_live_events(websocket)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.get("/")
    async def serve_index():
        return FileResponse(str(STATIC_DIR / "index.html"))

    return app


def run() -> None:
    settings = get_settings()
    configure_logging(settings)
    logger.info("Quakebridge server running on http://{}:{}", settings.host, settings.port)
    uvicorn.run(
        "quakebridge.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
