import asyncio
from pathlib import Path

import pytest

from quakebridge.config import Settings
from quakebridge.infra.db.sqlite import DataAccessError, StoreGateway
from quakebridge.infra.events.broker import LiveBroadcaster


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        base_dir=Path(tmp_path),
        db_path=Path(tmp_path) / "quakebridge_test.db",
        db_pool_size=4,
        sqlite_busy_timeout_ms=5000,
        mqtt_enabled=False,
        mqtt_host="127.0.0.1",
        mqtt_port=1883,
        mqtt_client_id="quakebridge-test",
        mqtt_keepalive_sec=60,
        host="127.0.0.1",
        port=3002,
        log_level="DEBUG",
    )
    values.update(overrides)
    return Settings(**values)


class FlakyGateway(StoreGateway):
    """Store gateway whose reads can be switched to fail like a dead server."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.fail_queries = False

    async def query(self, sql, params=()):
        if self.fail_queries:
            raise DataAccessError("query", ConnectionError("database is unreachable"))
        return await super().query(sql, params)


class RecordingBroadcaster(LiveBroadcaster):
    def __init__(self):
        super().__init__()
        self.sent: list[tuple[str, object]] = []

    async def emit(self, event, data):
        self.sent.append((event, data))
        return await super().emit(event, data)

    def events(self, name: str) -> list:
        return [data for event, data in self.sent if event == name]


async def _seed(settings: Settings, rows: dict[str, list[dict]]) -> None:
    gateway = StoreGateway(settings)
    await gateway.open()
    try:
        for table, items in rows.items():
            for fields in items:
                await gateway.insert(table, fields)
    finally:
        await gateway.close()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def seed(settings):
    def _run(rows: dict[str, list[dict]]) -> None:
        asyncio.run(_seed(settings, rows))

    return _run
