"""Read-only telemetry routes.

Two response families exist: the plain list endpoints answer errors with
`{"error": ...}`, the envelope endpoints with `{"success": false, "error": ...}`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from quakebridge.api.deps import get_gateway
from quakebridge.core.usecases.numeric import parse_leading_int
from quakebridge.infra.db.sqlite import DataAccessError, StoreGateway
from quakebridge.infra.repos.telemetry import ALERTS, HEARTBEAT, MAGNITUDE, get_latest, list_latest


router = APIRouter(prefix="/api", tags=["telemetry"])

DEFAULT_LIMIT = 10
DEFAULT_ALL_ALERTS_LIMIT = 20


def parse_limit(raw: str | None, default: int) -> int:
    """Leading-integer parse; anything unparsable or non-positive means `default`."""
    value = parse_leading_int(raw)
    if value is None or value <= 0:
        return default
    return value


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


def _failure(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": message})


@router.get("/alerts")
async def api_alerts(gateway: StoreGateway = Depends(get_gateway)):
    try:
        return await list_latest(gateway, ALERTS, limit=DEFAULT_LIMIT)
    except DataAccessError:
        logger.exception("Error fetching alerts")
        return _error("Failed to fetch alerts")


@router.get("/heartbeat")
async def api_heartbeat(gateway: StoreGateway = Depends(get_gateway)):
    try:
        return await list_latest(gateway, HEARTBEAT, limit=DEFAULT_LIMIT)
    except DataAccessError:
        logger.exception("Error fetching heartbeat data")
        return _error("Failed to fetch heartbeat data")


@router.get("/magnitude")
async def api_magnitude(gateway: StoreGateway = Depends(get_gateway)):
    try:
        return await list_latest(gateway, MAGNITUDE, limit=DEFAULT_LIMIT)
    except DataAccessError:
        logger.exception("Error fetching magnitude data")
        return _error("Failed to fetch magnitude data")


@router.get("/latest-data")
async def api_latest_data(gateway: StoreGateway = Depends(get_gateway)):
    try:
        alerts = await get_latest(gateway, ALERTS)
        heartbeat = await get_latest(gateway, HEARTBEAT)
        magnitude = await get_latest(gateway, MAGNITUDE)
    except DataAccessError:
        logger.exception("Error fetching latest data")
        return _failure("Failed to fetch data")
    return {
        "success": True,
        "data": {"alerts": alerts, "heartbeat": heartbeat, "magnitude": magnitude},
    }


@router.get("/historical-data")
async def api_historical_data(limit: str | None = None, gateway: StoreGateway = Depends(get_gateway)):
    try:
        rows = await list_latest(gateway, MAGNITUDE, limit=parse_limit(limit, DEFAULT_LIMIT))
    except DataAccessError:
        logger.exception("Error fetching historical data")
        return _failure("Failed to fetch data")
    return {"success": True, "data": rows}


@router.get("/all-alerts")
async def api_all_alerts(limit: str | None = None, gateway: StoreGateway = Depends(get_gateway)):
    try:
        rows = await list_latest(gateway, ALERTS, limit=parse_limit(limit, DEFAULT_ALL_ALERTS_LIMIT))
    except DataAccessError:
        logger.exception("Error fetching alerts")
        return _failure("Failed to fetch alerts")
    return {"success": True, "data": rows}
