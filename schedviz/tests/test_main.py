import asyncio

from fastapi.testclient import TestClient

from schedviz.api_client import SimulationApiError
from schedviz.ids import IdGenerator
from schedviz.main import _background, _spawn, app, get_session
from schedviz.session import DashboardSession
from schedviz.stream import StreamChannel


class FakeApi:
    def __init__(self, error=None):
        self.error = error

    async def fetch_algorithms(self):
        return ["FCFS", "RR"]

    async def run_simulation(self, algorithm, processes, config=None):
        if self.error is not None:
            raise self.error
        return {
            "status": "success",
            "results": [{"id": p["id"], "burstTime": p["burstTime"], "remainingTime": 0} for p in processes],
            "statistics": {"totalProcesses": len(processes), "totalTime": 4, "avgWaitingTime": 1, "throughput": 0.5},
        }


def _client(api=None):
    session = DashboardSession(
        api=api or FakeApi(),
        channel=StreamChannel(url="http://scheduler.test"),
        id_generator=IdGenerator("test"),
    )
    app.dependency_overrides[get_session] = lambda: session
    return TestClient(app), session


def teardown_function():
    app.dependency_overrides.clear()


def test_health():
    client, _ = _client()
    assert client.get("/health").json() == {"status": "ok"}


def test_config_lists_algorithm_options():
    client, _ = _client()
    body = client.get("/api/config").json()

    assert body["algorithms"][1] == {"value": "RR", "label": "Round Robin"}
    assert "stepInterval" in body["defaults"]


def test_process_editing_round_trip():
    client, _ = _client()
    client.put("/api/processes", json={"processes": [{"id": "1", "burstTime": 3}]})
    client.post("/api/processes", json={"name": "P2", "burstTime": 2})
    listed = client.get("/api/processes").json()["processes"]

    assert [p["id"] for p in listed][0] == "1"
    assert len(listed) == 2

    remaining = client.delete("/api/processes/1").json()["processes"]
    assert [p["name"] for p in remaining] == ["P2"]


def test_batch_runs_feed_comparison():
    client, _ = _client()
    client.put("/api/processes", json={"processes": [{"id": "1", "burstTime": 4}]})

    client.put("/api/algorithm", json={"algorithm": "FCFS"})
    first = client.post("/api/runs")
    client.put("/api/algorithm", json={"algorithm": "RR", "config": {"timeQuantum": 2}})
    second = client.post("/api/runs")

    assert first.status_code == 200
    assert second.json()["result"]["algorithm"] == "RR"
    assert second.json()["snapshot"]["status"] == "completed"

    comparison = client.get("/api/comparison", params={"throughput_scale": 100}).json()
    assert comparison["sufficient"] is True
    assert [row["algorithm"] for row in comparison["rows"]] == ["FCFS", "RR"]
    assert comparison["rows"][0]["throughput"] == 50.0

    assert [r["algorithm"] for r in client.get("/api/results").json()["results"]] == ["FCFS", "RR"]
    assert client.delete("/api/results").json() == {"results": []}
    assert client.get("/api/comparison").json()["reason"] == "insufficient data"


def test_batch_failure_returns_502_with_message():
    client, session = _client(FakeApi(error=SimulationApiError("Unknown algorithm")))
    resp = client.post("/api/runs")

    assert resp.status_code == 502
    assert "Unknown algorithm" in resp.json()["message"]
    assert session.snapshot.status == "idle"


def test_stream_command_without_channel_is_conflict():
    client, _ = _client()
    resp = client.post("/api/stream/pause")

    assert resp.status_code == 409
    assert resp.json()["status"] == "error"


def test_stream_reset_always_resets_local_snapshot():
    client, session = _client()
    client.put("/api/processes", json={"processes": [{"id": "1", "burstTime": 4}]})
    resp = client.post("/api/stream/reset")

    assert resp.status_code == 200
    assert resp.json()["snapshot"]["processes"] == []
    assert session.snapshot.processes == ()


def test_tick_speed_while_idle_only_stores_interval():
    client, session = _client()
    resp = client.post("/api/stream/tick-speed", json={"stepInterval": 600})

    assert resp.status_code == 200
    assert resp.json()["stepInterval"] == 600
    assert session.step_interval_ms == 600


def test_background_tasks_are_held_until_done():
    async def scenario():
        _spawn(asyncio.sleep(0))
        held = len(_background)
        await asyncio.gather(*_background)
        await asyncio.sleep(0)
        return held, len(_background)

    held, after = asyncio.run(scenario())

    assert held == 1
    assert after == 0
