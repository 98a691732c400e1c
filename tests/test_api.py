import pytest
from fastapi.testclient import TestClient

from conftest import FlakyGateway
from quakebridge.api.main import create_app


@pytest.fixture
def gateway(settings):
    return FlakyGateway(settings)


@pytest.fixture
def app(settings, gateway):
    return create_app(settings, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _magnitudes(n: int) -> list[dict]:
    return [{"SR": float(i), "TIMESTAMP": f"2024-05-01 10:00:{i:02d}"} for i in range(n)]


def test_test_route(client):
    resp = client.get("/test")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Test route works!"}


def test_index_page_served(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "alert-list" in resp.text


def test_static_assets_served(client):
    resp = client.get("/static/js/app.js")
    assert resp.status_code == 200
    assert "new-alert" in resp.text


def test_latest_data_empty_tables(client):
    resp = client.get("/api/latest-data")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": {"alerts": None, "heartbeat": None, "magnitude": None}}


def test_latest_data_returns_newest_row_per_table(seed, app):
    seed(
        {
            "alerts": [
                {"DATA": "old", "TIMESTAMP": "2024-05-01 10:00:00"},
                {"DATA": "new", "TIMESTAMP": "2024-05-01 11:00:00"},
            ],
            "heartbeat rate": [{"HR": 80.0, "TIMESTAMP": "2024-05-01 10:00:00"}],
        }
    )
    with TestClient(app) as client:
        body = client.get("/api/latest-data").json()
    assert body["success"] is True
    assert body["data"]["alerts"]["DATA"] == "new"
    assert body["data"]["heartbeat"]["HR"] == 80.0
    assert body["data"]["magnitude"] is None


def test_list_endpoints_default_to_ten_rows(seed, app):
    seed(
        {
            "magnitude": _magnitudes(12),
            "heartbeat rate": [{"HR": 60.0 + i, "TIMESTAMP": f"2024-05-01 10:00:{i:02d}"} for i in range(12)],
            "alerts": [{"DATA": f"a{i}", "TIMESTAMP": f"2024-05-01 10:00:{i:02d}"} for i in range(12)],
        }
    )
    with TestClient(app) as client:
        magnitude = client.get("/api/magnitude").json()
        heartbeat = client.get("/api/heartbeat").json()
        alerts = client.get("/api/alerts").json()
    assert len(magnitude) == len(heartbeat) == len(alerts) == 10
    assert magnitude[0]["SR"] == 11.0
    assert heartbeat[0]["HR"] == 71.0
    assert alerts[0]["DATA"] == "a11"
    assert set(alerts[0]) == {"ID", "DATA", "TIMESTAMP"}


def test_historical_data_respects_limit_and_order(seed, app):
    seed({"magnitude": _magnitudes(6)})
    with TestClient(app) as client:
        body = client.get("/api/historical-data", params={"limit": 3}).json()
    assert body["success"] is True
    stamps = [row["TIMESTAMP"] for row in body["data"]]
    assert len(stamps) == 3
    assert stamps == sorted(stamps, reverse=True)
    assert stamps[0] == "2024-05-01 10:00:05"


@pytest.mark.parametrize("raw", ["abc", "", "0", "-4", "x3"])
def test_historical_data_bad_limit_falls_back_to_default(seed, app, raw):
    seed({"magnitude": _magnitudes(15)})
    with TestClient(app) as client:
        fallback = client.get("/api/historical-data", params={"limit": raw}).json()
        default = client.get("/api/historical-data").json()
    assert len(default["data"]) == 10
    assert fallback == default


def test_limit_uses_leading_integer(seed, app):
    seed({"magnitude": _magnitudes(6)})
    with TestClient(app) as client:
        prefixed = client.get("/api/historical-data?limit=3abc").json()
        fractional = client.get("/api/historical-data?limit=2.9").json()
    assert len(prefixed["data"]) == 3
    assert len(fractional["data"]) == 2


def test_all_alerts_default_and_custom_limit(seed, app):
    seed({"alerts": [{"DATA": f"a{i}", "TIMESTAMP": f"2024-05-01 10:00:{i:02d}"} for i in range(25)]})
    with TestClient(app) as client:
        default = client.get("/api/all-alerts").json()
        custom = client.get("/api/all-alerts?limit=5").json()
    assert default["success"] is True
    assert len(default["data"]) == 20
    assert [r["DATA"] for r in custom["data"]] == ["a24", "a23", "a22", "a21", "a20"]


def test_equal_timestamps_break_ties_by_id(seed, app):
    seed({"alerts": [{"DATA": f"same{i}", "TIMESTAMP": "2024-05-01 10:00:00"} for i in range(3)]})
    with TestClient(app) as client:
        rows = client.get("/api/all-alerts").json()["data"]
    assert [r["DATA"] for r in rows] == ["same2", "same1", "same0"]


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/alerts", {"error": "Failed to fetch alerts"}),
        ("/api/heartbeat", {"error": "Failed to fetch heartbeat data"}),
        ("/api/magnitude", {"error": "Failed to fetch magnitude data"}),
        ("/api/latest-data", {"success": False, "error": "Failed to fetch data"}),
        ("/api/historical-data", {"success": False, "error": "Failed to fetch data"}),
        ("/api/all-alerts", {"success": False, "error": "Failed to fetch alerts"}),
    ],
)
def test_database_outage_maps_to_500_and_recovers(client, gateway, path, expected):
    gateway.fail_queries = True
    resp = client.get(path)
    assert resp.status_code == 500
    assert resp.json() == expected

    assert client.get("/test").status_code == 200
    gateway.fail_queries = False
    assert client.get(path).status_code == 200


def test_health_and_metrics(client):
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["mqtt_connected"] is False

    client.get("/test")
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "quakebridge_http_requests_total" in metrics.text


def test_websocket_greets_with_hello(client, app):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"event": "message", "data": "hello"}
        assert app.state.broadcaster.client_count == 1


def test_websocket_receives_ingested_alert(client, app):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        client.portal.call(app.state.ingest.handle, "earthquake/alerts", "M4.8 inland")

        raw = ws.receive_json()
        assert raw == {"event": "earthquake/alerts", "data": "M4.8 inland"}

        enriched = ws.receive_json()
        assert enriched["event"] == "new-alert"
        assert enriched["data"]["DATA"] == "M4.8 inland"
        assert isinstance(enriched["data"]["ID"], int)

    rows = client.get("/api/all-alerts").json()["data"]
    assert [r["DATA"] for r in rows] == ["M4.8 inland"]


def test_lifespan_starts_and_stops_injected_subscriber(settings):
    class FakeSubscriber:
        connected = True

        def __init__(self):
            self.started = False
            self.stopped = False

        def start(self, loop=None):
            self.started = True

        def stop(self):
            self.stopped = True

    fake = FakeSubscriber()
    app = create_app(settings, subscriber=fake)
    with TestClient(app) as client:
        assert fake.started
        assert client.get("/api/health").json()["mqtt_connected"] is True
    assert fake.stopped
