"""HTTP surface: station ingest routes, query routes and health routes."""
import time

import pytest

from app import create_app
from app.services.pipeline.runtime import PipelineRuntime
from infrastructure.sinks.memory import MemorySink

ECOWITT_FORM = {
    "PASSKEY": "ST9",
    "stationtype": "GW2000A_V2.1.4",
    "dateutc": "2026-03-01 12:00:00",
    "tempf": "68",
    "humidity": "50",
}


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def runtime(pipeline_config, memory_sink):
    return PipelineRuntime(pipeline_config, [memory_sink])


@pytest.fixture
def app(runtime):
    flask_app = create_app({"log_path": None}, runtime=runtime, install_shutdown_hooks=False)
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.extensions["wxhub_shutdown"]("test teardown")


@pytest.fixture
def client(app):
    return app.test_client()


def test_blueprints_registered(app):
    assert {"ingest_api", "weather_api", "health_api"} <= set(app.blueprints)


@pytest.mark.parametrize("path", ["/data/report/", "/ingest/ecowitt", "/data"])
def test_ecowitt_post_is_acknowledged_and_stored(client, memory_sink, path):
    response = client.post(path, data=ECOWITT_FORM)

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"
    assert _wait_for(lambda: memory_sink.latest("ST9") is not None)


def test_wunderground_get(client, memory_sink):
    response = client.get(
        "/weatherstation/updateweatherstation.php",
        query_string={"ID": "KWX1", "PASSWORD": "x", "dateutc": "now", "tempf": "50", "action": "updateraw"},
    )
    assert response.status_code == 200
    assert _wait_for(lambda: memory_sink.latest("KWX1") is not None)
    assert memory_sink.latest("KWX1").value("temperature") == pytest.approx(10.0)


def test_garbage_report_still_acknowledged(client, runtime):
    response = client.post("/data/report/", data="\x00\x01 not a report", content_type="text/plain")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"
    assert runtime.metrics.total("ingested") == 0


def test_current_is_empty_until_first_observation(client, memory_sink):
    assert client.get("/api/v1/current").status_code == 204

    client.post("/data/report/", data=ECOWITT_FORM)
    assert _wait_for(lambda: memory_sink.latest() is not None)

    response = client.get("/api/v1/current")
    body = response.get_json()
    assert response.status_code == 200
    assert body["ok"] is True
    assert body["data"]["station_id"] == "ST9"
    assert body["data"]["measurements"]["temperature"] == 20.0


def test_history_limit(client, memory_sink, make_obs):
    for i in range(5):
        memory_sink.write(make_obs("ST1", offset=i * 60, temperature=float(i)))

    data = client.get("/api/v1/history?limit=2").get_json()["data"]
    assert [item["measurements"]["temperature"] for item in data] == [3.0, 4.0]

    assert len(client.get("/api/v1/history").get_json()["data"]) == 5
    assert client.get("/api/v1/history?limit=0").get_json()["data"] == []
    assert client.get("/api/v1/history?station_id=nope").get_json()["data"] == []


def test_history_rejects_bad_limit(client):
    response = client.get("/api/v1/history?limit=lots")
    assert response.status_code == 400
    assert response.get_json()["ok"] is False


def test_health_ping_ready_and_counters(client):
    ping = client.get("/api/health/ping")
    assert ping.status_code == 200
    assert ping.get_json()["data"]["status"] == "ok"

    ready = client.get("/api/health/ready").get_json()["data"]
    assert ready["status"] == "ready"
    assert ready["sinks"] == ["memory"]

    client.post("/data/report/", data=ECOWITT_FORM)
    counters = client.get("/api/health/counters").get_json()["data"]
    assert counters["ingested"] == 1
    assert "memory" in counters["sinks"]
    assert "event_bus" in counters


def test_not_ready_before_runtime_start(pipeline_config):
    runtime = PipelineRuntime(pipeline_config, [MemorySink()])
    flask_app = create_app({"log_path": None}, runtime=runtime, start_runtime=False, install_shutdown_hooks=False)

    response = flask_app.test_client().get("/api/health/ready")

    assert response.status_code == 503
    assert response.get_json()["ok"] is False


def test_unknown_api_route_returns_json(client):
    response = client.get("/api/v1/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False
