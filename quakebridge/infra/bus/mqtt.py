"""MQTT telemetry subscriber.

paho runs its network loop in its own thread and reconnects every second on
transport loss. Deliveries are handed to the asyncio loop as
`(topic, trimmed payload)`; delivery is at-most-once, nothing is acknowledged
or replayed across reconnects.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Future
from typing import Awaitable, Callable, Iterable

import paho.mqtt.client as mqtt
from loguru import logger

from quakebridge.config import MQTT_RECONNECT_SEC, TOPICS, Settings, get_settings


MessageDispatch = Callable[[str, str], Awaitable[None]]


def decode_payload(payload: bytes | bytearray | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload.strip()
    return bytes(payload).decode("utf-8", errors="replace").strip()


class TelemetrySubscriber:
    def __init__(
        self,
        dispatch: MessageDispatch,
        *,
        settings: Settings | None = None,
        topics: Iterable[str] = TOPICS,
        client: mqtt.Client | None = None,
    ):
        self.settings = settings or get_settings()
        self.topics = tuple(topics)
        self._dispatch = dispatch
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending_subs: dict[int, str] = {}
        self.connected = False

        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.settings.mqtt_client_id,
        )
        self.client.reconnect_delay_set(min_delay=MQTT_RECONNECT_SEC, max_delay=MQTT_RECONNECT_SEC)
        self.client.on_connect = self._on_connect
        self.client.on_connect_fail = self._on_connect_fail
        self.client.on_disconnect = self._on_disconnect
        self.client.on_subscribe = self._on_subscribe
        self.client.on_message = self._on_message

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Begin connecting in the background; never raises on broker errors."""
        self._loop = loop or asyncio.get_running_loop()
        host, port = self.settings.mqtt_host, self.settings.mqtt_port
        logger.info("Connecting to MQTT broker {}:{}", host, port)
        self.client.connect_async(host, port, keepalive=self.settings.mqtt_keepalive_sec)
        self.client.loop_start()

    def stop(self) -> None:
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()
        self.connected = False

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties=None) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.warning("MQTT broker refused connection: {}", reason_code)
            return
        self.connected = True
        logger.info("Connected to MQTT broker")
        # Subscribing here also restores subscriptions after every reconnect.
        for topic in self.topics:
            result, mid = client.subscribe(topic)
            if result != mqtt.MQTT_ERR_SUCCESS:
                logger.error("Subscription error on {}: {}", topic, mqtt.error_string(result))
                continue
            self._pending_subs[mid] = topic

    def _on_connect_fail(self, _client, _userdata) -> None:
        logger.warning("MQTT connection failed; retrying in {}s", MQTT_RECONNECT_SEC)

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None) -> None:
        self.connected = False
        logger.warning("Disconnected from MQTT broker: {}", reason_code)

    def _on_subscribe(self, _client, _userdata, mid, reason_code_list, _properties=None) -> None:
        topic = self._pending_subs.pop(mid, "?")
        failures = [rc for rc in (reason_code_list or []) if getattr(rc, "is_failure", False)]
        if failures:
            logger.error("Subscription error on {}: {}", topic, failures[0])
        else:
            logger.info("Subscribed to topic: {}", topic)

    def _on_message(self, _client, _userdata, message) -> None:
        self.deliver(message.topic, message.payload)

    def deliver(self, topic: str, payload: bytes | str | None) -> Future | None:
        """Schedule one message on the asyncio loop (safe from any thread)."""
        if self._loop is None or self._loop.is_closed():
            logger.warning("Dropping message on {}: subscriber not started", topic)
            return None
        future = asyncio.run_coroutine_threadsafe(
            self._run_dispatch(str(topic), decode_payload(payload)),
            self._loop,
        )
        return future

    async def _run_dispatch(self, topic: str, data: str) -> None:
        try:
            await self._dispatch(topic, data)
        except Exception:
            logger.exception("Unhandled error while handling message on {}", topic)
