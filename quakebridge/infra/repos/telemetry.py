"""Telemetry tables repository (SQLite, append-only).

Table and column names match the legacy MySQL schema so existing dashboards
and tables can be reused unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from quakebridge.infra.db.sqlite import StoreGateway, quote_identifier


@dataclass(frozen=True)
class TelemetryTable:
    name: str
    value_column: str

    @property
    def quoted(self) -> str:
        return quote_identifier(self.name)


ALERTS = TelemetryTable(name="alerts", value_column="DATA")
MAGNITUDE = TelemetryTable(name="magnitude", value_column="SR")
HEARTBEAT = TelemetryTable(name="heartbeat rate", value_column="HR")


async def insert_reading(gateway: StoreGateway, table: TelemetryTable, *, value: Any, timestamp: str) -> int:
    return await gateway.insert(table.name, {table.value_column: value, "TIMESTAMP": timestamp})


async def get_row(gateway: StoreGateway, table: TelemetryTable, row_id: int) -> dict[str, Any] | None:
    rows = await gateway.query(f"SELECT * FROM {table.quoted} WHERE ID = ? LIMIT 1", (int(row_id),))
    return rows[0] if rows else None


async def list_latest(gateway: StoreGateway, table: TelemetryTable, *, limit: int = 10) -> list[dict[str, Any]]:
    return await gateway.query(
        f"SELECT * FROM {table.quoted} ORDER BY TIMESTAMP DESC, ID DESC LIMIT ?",
        (max(1, int(limit)),),
    )


async def get_latest(gateway: StoreGateway, table: TelemetryTable) -> dict[str, Any] | None:
    rows = await list_latest(gateway, table, limit=1)
    return rows[0] if rows else None
