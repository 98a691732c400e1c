"""Quakebridge: MQTT telemetry to SQLite and live WebSocket clients."""

__version__ = "1.0.0"
