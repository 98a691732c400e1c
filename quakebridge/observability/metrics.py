"""Prometheus metrics helpers."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

HTTP_REQUESTS_TOTAL = Counter(
    "quakebridge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
HTTP_REQUEST_LATENCY_SEC = Histogram(
    "quakebridge_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
MESSAGES_RECEIVED_TOTAL = Counter(
    "quakebridge_messages_received_total",
    "Bus messages received",
    ["topic"],
)
ROWS_INSERTED_TOTAL = Counter(
    "quakebridge_rows_inserted_total",
    "Telemetry rows persisted",
    ["table"],
)
PAYLOADS_DROPPED_TOTAL = Counter(
    "quakebridge_payloads_dropped_total",
    "Bus payloads discarded because they were not finite numbers",
    ["topic"],
)
DB_ERRORS_TOTAL = Counter(
    "quakebridge_db_errors_total",
    "Data-access failures raised by the store gateway",
    ["operation"],
)
PUSH_CLIENTS = Gauge(
    "quakebridge_push_clients",
    "Currently connected WebSocket clients",
)
