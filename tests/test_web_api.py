"""
HTTP API tests - end-to-end ingestion and sync through FastAPI.

Run with: pytest tests/test_web_api.py
"""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from speedwatch.db.schema import parse_iso8601
from speedwatch.web.config import AppConfig
from speedwatch.web.main import create_app


def _client(tmp_path, **overrides) -> TestClient:
    settings = {"db_path": tmp_path / "api.db", "rate_limit": ""}
    settings.update(overrides)
    return TestClient(create_app(AppConfig(**settings)))


def _assert_common_headers(response):
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["content-type"].startswith("application/json")


def test_end_to_end_shared_numbering(tmp_path):
    with _client(tmp_path) as client:
        r = client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})
        assert r.status_code == 200
        assert r.json() == {"success": True, "id": 1}
        _assert_common_headers(r)

        r = client.get("/api/events", params={"since": 0})
        assert r.status_code == 200
        events = r.json()
        assert len(events) == 1
        assert events[0]["id"] == 1
        assert events[0]["speed"] == 80
        assert events[0]["excessAmount"] == 20
        assert events[0]["kind"] == "speed_violation"
        assert parse_iso8601(events[0]["timestamp"]).tzinfo is not None

        r = client.post("/api/events", json={"vehicleName": "Car2", "tyreType": "soft"})
        assert r.json() == {"success": True, "id": 2}

        r = client.get("/api/events?since=1")
        events = r.json()
        assert [e["id"] for e in events] == [2]
        assert events[0]["tyreType"] == "soft"
        assert events[0]["vehicleName"] == "Car2"


def test_kind_filter(tmp_path):
    with _client(tmp_path) as client:
        client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})
        client.post("/api/events", json={"vehicleName": "Car2", "tyreType": "soft"})
        client.post("/api/events", json={"vehicleName": "Car3", "speed": 95, "excessAmount": 35})

        r = client.get("/api/events", params={"kindFilter": "speed_violation"})
        assert [e["id"] for e in r.json()] == [1, 3]

        r = client.get("/api/events", params={"kindFilter": "tyre_change", "since": 1})
        assert [e["id"] for e in r.json()] == [2]

        r = client.get("/api/events", params={"kindFilter": "gearbox"})
        assert r.status_code == 400
        assert "kindFilter" in r.json()["error"]


def test_retention_cap_over_http(tmp_path):
    with _client(tmp_path) as client:
        for i in range(501):
            r = client.post("/api/events", json={"vehicleName": f"Car{i}", "speed": 70 + i % 50, "excess": 10})
            assert r.status_code == 200

        with sqlite3.connect(tmp_path / "api.db") as conn:
            ids = [row[0] for row in conn.execute("SELECT id FROM telemetry_events ORDER BY id")]
        assert len(ids) == 500
        assert ids[0] == 2

        recent = client.get("/api/events", params={"since": 0}).json()
        assert len(recent) == 20
        assert [e["id"] for e in recent] == list(range(482, 502))

        # Reading forward from the start never returns the trimmed id 1
        first_page = client.get("/api/events", params={"since": 0, "kindFilter": "speed_violation"}).json()
        assert 1 not in [e["id"] for e in first_page]
        page = client.get("/api/events", params={"since": 1}).json()
        assert page[0]["id"] == 2


def test_validation_and_classification_errors(tmp_path):
    with _client(tmp_path) as client:
        r = client.post("/api/events", json={"vehicleName": "Car1", "rpm": 9000})
        assert r.status_code == 400
        assert r.json() == {"error": "unrecognized payload shape"}
        _assert_common_headers(r)

        r = client.post("/api/events", json={"speed": 80, "excess": 20})
        assert r.status_code == 400
        assert r.json() == {"error": "missing required fields for SpeedViolation: vehicleName"}

        r = client.post("/api/events", json={"vehicleName": "Car1", "speed": -3, "excess": 20})
        assert r.status_code == 400
        assert r.json()["error"].startswith("invalid fields for SpeedViolation")

        r = client.post("/api/events", content=b"{not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 400
        assert r.json() == {"error": "request body is not valid JSON"}

        r = client.post("/api/events", json=[1, 2, 3])
        assert r.status_code == 400

        r = client.get("/api/events", params={"since": "yesterday"})
        assert r.status_code == 400
        assert "since" in r.json()["error"]


@pytest.mark.parametrize("literal", [b"Infinity", b"NaN", b"1e999"])
def test_non_finite_numbers_are_rejected_and_sync_keeps_working(tmp_path, literal):
    body = b'{"vehicleName": "Car1", "speed": ' + literal + b', "excess": 20}'
    with _client(tmp_path) as client:
        r = client.post("/api/events", content=body, headers={"Content-Type": "application/json"})
        assert r.status_code == 400
        assert r.json()["error"].startswith("invalid fields for SpeedViolation: speed")

        r = client.post("/api/events", json={"vehicleName": "Car2", "speed": 90, "excess": 30})
        assert r.json() == {"success": True, "id": 1}

        r = client.get("/api/events", params={"since": 0})
        assert r.status_code == 200
        assert [e["speed"] for e in r.json()] == [90]


def test_watermark_beyond_integer_range(tmp_path):
    with _client(tmp_path) as client:
        client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})

        r = client.get("/api/events", params={"since": "99999999999999999999"})
        assert r.status_code == 400
        assert "since must be at most" in r.json()["error"]
        _assert_common_headers(r)

        r = client.get("/api/events", params={"since": str(2**63 - 1)})
        assert r.status_code == 200
        assert r.json() == []


def test_preflight_and_method_not_allowed(tmp_path):
    with _client(tmp_path) as client:
        r = client.options("/api/events")
        assert r.status_code == 204
        _assert_common_headers(r)
        assert r.headers["access-control-allow-headers"] == "Content-Type"

        r = client.put("/api/events", json={})
        assert r.status_code == 405
        assert r.json() == {"error": "Method not allowed"}
        _assert_common_headers(r)

        r = client.delete("/api/events")
        assert r.status_code == 405


class _ExplodingIngest:
    async def ingest(self, payload):
        raise RuntimeError("boom")


def test_unexpected_error_returns_500(tmp_path):
    app = create_app(AppConfig(db_path=tmp_path / "api.db", rate_limit=""))
    with TestClient(app, raise_server_exceptions=False) as client:
        client.app.state.telemetry.ingest = _ExplodingIngest()
        r = client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})

    assert r.status_code == 500
    assert r.json() == {"error": "boom"}
    _assert_common_headers(r)


def test_debug_mode_includes_traceback(tmp_path):
    app = create_app(AppConfig(db_path=tmp_path / "api.db", rate_limit="", debug=True))
    with TestClient(app, raise_server_exceptions=False) as client:
        client.app.state.telemetry.ingest = _ExplodingIngest()
        body = client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20}).json()

    assert body["error"] == "boom"
    assert "RuntimeError" in body["traceback"]


def test_degraded_mode_over_http(tmp_path):
    # db_path pointing at a directory makes the durable store unreachable
    with _client(tmp_path, db_path=tmp_path) as client:
        r = client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})
        assert r.json() == {"success": True, "id": 1}

        ready = client.get("/api/health/ready").json()
        assert ready["status"] == "degraded"
        assert ready["degraded"] is True


def test_store_unavailable_without_fallback(tmp_path):
    with _client(tmp_path, db_path=tmp_path, fallback_to_memory=False) as client:
        r = client.post("/api/events", json={"vehicleName": "Car1", "speed": 80, "excess": 20})
        assert r.status_code == 503
        assert r.json() == {"error": "Event store unavailable"}


def test_health_endpoints(tmp_path):
    with _client(tmp_path) as client:
        assert client.get("/api/health/live").json() == {"status": "live"}
        ready = client.get("/api/health/ready").json()
        assert ready == {"status": "ready", "store": "sqlite", "degraded": False}


def test_memory_backend(tmp_path):
    with _client(tmp_path, storage_backend="memory") as client:
        client.post("/api/events", json={"vehicleName": "Car2", "tyreType": "soft"})
        assert client.get("/api/health/ready").json()["store"] == "memory"
        assert [e["id"] for e in client.get("/api/events").json()] == [1]


def test_rate_limit(tmp_path):
    with _client(tmp_path, rate_limit="2/minute") as client:
        codes = [client.get("/api/events").status_code for _ in range(3)]
    assert codes == [200, 200, 429]
