"""Bus message ingestion: broadcast, persist, and announce new alerts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable

from loguru import logger

from quakebridge.config import TOPIC_ALERTS, TOPIC_HEARTBEAT, TOPIC_MAGNITUDE
from quakebridge.core.usecases.numeric import parse_finite
from quakebridge.infra.db.sqlite import DataAccessError, StoreGateway
from quakebridge.infra.events.broker import LiveBroadcaster
from quakebridge.infra.repos.telemetry import ALERTS, HEARTBEAT, MAGNITUDE, TelemetryTable, get_row, insert_reading
from quakebridge.observability.metrics import MESSAGES_RECEIVED_TOTAL, PAYLOADS_DROPPED_TOTAL, ROWS_INSERTED_TOTAL


TopicHandler = Callable[[str, str], Awaitable[None]]


def utc_timestamp(now: datetime | None = None) -> str:
    """Second-precision UTC timestamp, e.g. `2024-05-01 12:30:59`."""
    value = now or datetime.now(timezone.utc)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S")


class IngestHandler:
    def __init__(
        self,
        gateway: StoreGateway,
        broadcaster: LiveBroadcaster,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.broadcaster = broadcaster
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._routes: dict[str, TopicHandler] = {
            TOPIC_ALERTS: self.handle_alert,
            TOPIC_MAGNITUDE: self.handle_magnitude,
            TOPIC_HEARTBEAT: self.handle_heartbeat,
        }

    @property
    def routes(self) -> dict[str, TopicHandler]:
        return dict(self._routes)

    def _timestamp(self) -> str:
        return utc_timestamp(self._clock())

    async def handle(self, topic: str, data: str) -> None:
        """Entry point for one bus message (payload already trimmed)."""
        logger.info('Received message on topic "{}": {}', topic, data)
        MESSAGES_RECEIVED_TOTAL.labels(topic=topic).inc()

        await self.broadcaster.broadcast_topic(topic, data)

        handler = self._routes.get(topic)
        if handler is None:
            logger.info("No specific table for topic: {}", topic)
            return
        try:
            await handler(topic, data)
        except DataAccessError:
            logger.exception("Database error while storing message from {}", topic)

    async def handle_alert(self, topic: str, data: str) -> None:
        row_id = await self._store(ALERTS, data)
        try:
            row = await get_row(self.gateway, ALERTS, row_id)
        except DataAccessError:
            logger.exception("Could not re-read alert {}; skipping new-alert event", row_id)
            return
        if row:
            await self.broadcaster.broadcast_alert(row)

    async def handle_magnitude(self, topic: str, data: str) -> None:
        await self._store_numeric(topic, MAGNITUDE, data)

    async def handle_heartbeat(self, topic: str, data: str) -> None:
        await self._store_numeric(topic, HEARTBEAT, data)

    async def _store_numeric(self, topic: str, table: TelemetryTable, data: str) -> int | None:
        parsed = parse_finite(data)
        if not parsed.ok:
            PAYLOADS_DROPPED_TOTAL.labels(topic=topic).inc()
            logger.warning('Discarding non-numeric payload on "{}": {!r}', topic, parsed.raw)
            return None
        return await self._store(table, parsed.value)

    async def _store(self, table: TelemetryTable, value) -> int:
        row_id = await insert_reading(self.gateway, table, value=value, timestamp=self._timestamp())
        ROWS_INSERTED_TOTAL.labels(table=table.name).inc()
        logger.info("Data saved to database: table={} id={}", table.name, row_id)
        return row_id
