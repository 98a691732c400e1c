"""Quakebridge configuration.

Everything is read from the environment (optionally seeded from `.env` at the
repository root). Bus topics and the reconnect interval are fixed.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


TOPIC_ALERTS = "earthquake/alerts"
TOPIC_MAGNITUDE = "earthquake/magnitude"
TOPIC_HEARTBEAT = "heartbeat/rate"
TOPICS = (TOPIC_ALERTS, TOPIC_MAGNITUDE, TOPIC_HEARTBEAT)

MQTT_RECONNECT_SEC = 1


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return bool(default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return int(default)


def _as_path(value: str | None, default: Path) -> Path:
    raw = (value or "").strip()
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    db_path: Path
    db_pool_size: int
    sqlite_busy_timeout_ms: int

    # Message bus (anonymous)
    mqtt_enabled: bool
    mqtt_host: str
    mqtt_port: int
    mqtt_client_id: str
    mqtt_keepalive_sec: int

    # HTTP server
    host: str
    port: int
    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    base_dir = Path(__file__).resolve().parents[1]
    load_dotenv(dotenv_path=base_dir / ".env", override=False)

    db_path = _as_path(os.getenv("QUAKEBRIDGE_DATABASE_PATH"), base_dir / ".runtime" / "data" / "quakebridge.db")
    if not db_path.is_absolute():
        db_path = base_dir / db_path

    client_id = (os.getenv("MQTT_CLIENT_ID") or "").strip() or f"quakebridge-{uuid.uuid4().hex[:8]}"

    return Settings(
        base_dir=base_dir,
        db_path=db_path,
        db_pool_size=max(1, _as_int(os.getenv("QUAKEBRIDGE_DB_POOL_SIZE"), 10)),
        sqlite_busy_timeout_ms=max(100, _as_int(os.getenv("QUAKEBRIDGE_SQLITE_BUSY_TIMEOUT_MS"), 5000)),
        mqtt_enabled=_as_bool(os.getenv("MQTT_ENABLED"), True),
        mqtt_host=(os.getenv("MQTT_BROKER_HOST") or "broker.emqx.io").strip(),
        mqtt_port=_as_int(os.getenv("MQTT_BROKER_PORT"), 1883),
        mqtt_client_id=client_id,
        mqtt_keepalive_sec=max(5, _as_int(os.getenv("MQTT_KEEPALIVE_SEC"), 60)),
        host=os.getenv("HOST", "127.0.0.1"),
        port=_as_int(os.getenv("PORT"), 3002),
        log_level=(os.getenv("QUAKEBRIDGE_LOG_LEVEL") or "INFO").strip().upper(),
    )
