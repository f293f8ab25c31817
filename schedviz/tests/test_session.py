import asyncio

import httpx

from schedviz.api_client import SimulationApiError
from schedviz.ids import IdGenerator
from schedviz.session import DashboardSession
from schedviz.settings import settings
from schedviz.stream import StreamChannel


class FakeApi:
    def __init__(self, response=None, error=None, processes=None):
        self.response = response
        self.error = error
        self.processes = processes or []
        self.calls = []

    async def run_simulation(self, algorithm, processes, config=None):
        self.calls.append((algorithm, processes, config))
        if self.error is not None:
            raise self.error
        return self.response

    async def fetch_random_processes(self, **params):
        if self.error is not None:
            raise self.error
        return self.processes


class FakeSocket:
    def __init__(self):
        self.handlers = {}
        self.emitted = []

    def on(self, event, handler):
        self.handlers[event] = handler

    async def connect(self, url):
        pass

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def disconnect(self):
        pass

    def fire(self, event, data=None):
        return self.handlers[event](data)


def _session(api=None):
    sockets = []

    def factory():
        socket = FakeSocket()
        sockets.append(socket)
        return socket

    session = DashboardSession(
        api=api or FakeApi(),
        channel=StreamChannel(url="http://scheduler.test", client_factory=factory),
        id_generator=IdGenerator("test"),
    )
    return session, sockets


def _completion():
    return {
        "results": [
            {"id": "1", "name": "P1", "burstTime": 3, "remainingTime": 0, "waitingTime": 0},
            {"id": "2", "name": "P2", "burstTime": 2, "remainingTime": 0, "waitingTime": 3},
        ],
        "statistics": {"totalProcesses": 2, "totalTime": 5, "avgWaitingTime": 1.5, "cpuUtilization": 100},
    }


def test_batch_run_updates_snapshot_and_records_result():
    api = FakeApi(response={"status": "success", **_completion()})
    session, _ = _session(api)
    session.set_processes([{"id": "1", "burstTime": 3}, {"id": "2", "burstTime": 2}])
    session.set_algorithm("SJF")

    run = asyncio.run(session.run_batch())

    assert api.calls[0][0] == "SJF"
    assert [p["id"] for p in api.calls[0][1]] == ["1", "2"]
    assert run.algorithm == "SJF"
    assert run.statistics.avg_waiting_time == "1.50"
    assert session.snapshot.status == "completed"
    assert session.snapshot.current_time == 5
    assert session.snapshot.statistics.avg_waiting_time == "1.50"
    assert session.results.algorithms() == ["SJF"]
    assert session.message is None


def test_batch_failure_sets_message_and_idle():
    session, _ = _session(FakeApi(error=SimulationApiError("Unknown algorithm")))
    session.reconciler.set_status("running")

    assert asyncio.run(session.run_batch()) is None
    assert "Unknown algorithm" in session.message
    assert session.snapshot.status == "idle"
    assert len(session.results) == 0


def test_batch_transport_failure_is_surfaced():
    session, _ = _session(FakeApi(error=httpx.ConnectError("refused")))

    assert asyncio.run(session.run_batch()) is None
    assert session.message.startswith("Failed to run simulation")


def test_streamed_run_attributes_result_to_algorithm_at_start():
    session, sockets = _session()
    session.set_processes([{"id": "1", "burstTime": 3}])
    session.set_algorithm("RR", {"timeQuantum": 2})

    async def scenario():
        await session.open_stream()
        await session.start_stream(step_interval_ms=500)
        socket = sockets[0]
        await socket.fire("simulation-state", "running")
        await socket.fire(
            "simulation-step",
            {"currentTime": 1, "queues": {"runningProcess": {"id": "1", "burstTime": 3, "remainingTime": 2}}},
        )
        session.set_algorithm("FCFS")
        await socket.fire("simulation-completed", _completion())

    asyncio.run(scenario())

    start_event, start_payload = sockets[0].emitted[0]
    assert start_event == "start-simulation"
    assert start_payload["algorithm"] == "RR"
    assert start_payload["stepInterval"] == 500
    assert start_payload["config"] == {"timeQuantum": 2, "showDetailedMetrics": True}
    assert session.snapshot.status == "completed"
    assert session.snapshot.current_time == 1
    assert session.results.algorithms() == ["RR"]


def test_malformed_completion_still_completes_without_result():
    session, sockets = _session()

    async def scenario():
        await session.open_stream()
        await sockets[0].fire("simulation-completed", {"results": []})

    asyncio.run(scenario())

    assert session.snapshot.status == "completed"
    assert len(session.results) == 0


def test_error_event_sets_message_and_idle():
    session, sockets = _session()
    session.reconciler.set_status("running")

    async def scenario():
        await session.open_stream()
        await sockets[0].fire("simulation-error", {"message": "Invalid process data"})

    asyncio.run(scenario())

    assert session.message == "Invalid process data"
    assert session.snapshot.status == "idle"


def test_state_object_updates_status_and_step_interval():
    session, _ = _session()
    session.handle_state({"state": "paused", "tickSpeed": 700})

    assert session.snapshot.status == "paused"
    assert session.step_interval_ms == 700


def test_tick_speed_is_clamped_and_only_pushed_mid_run():
    session, sockets = _session()

    async def scenario():
        await session.open_stream()
        low = await session.change_tick_speed(1)
        session.reconciler.set_status("running")
        high = await session.change_tick_speed(10**6)
        return low, high

    low, high = asyncio.run(scenario())

    assert low == settings.step_interval_min_ms
    assert high == settings.step_interval_max_ms
    assert sockets[0].emitted == [("change-tick-speed", {"tickSpeed": settings.step_interval_max_ms})]


def test_speed_up_and_slow_down_move_by_delta():
    session, _ = _session()
    session.step_interval_ms = 1000

    faster = asyncio.run(session.speed_up())
    slower = asyncio.run(session.slow_down())

    assert faster == max(settings.step_interval_min_ms, 1000 - settings.step_interval_delta_ms)
    assert slower == min(settings.step_interval_max_ms, faster + settings.step_interval_delta_ms)


def test_reset_without_channel_still_resets_local_state():
    session, _ = _session()
    session.set_processes([{"id": "1", "burstTime": 3}])
    session.reconciler.set_status("running")

    asyncio.run(session.reset())

    assert session.snapshot.processes == ()
    assert session.snapshot.status == "idle"


def test_close_stops_event_delivery():
    session, sockets = _session()

    async def scenario():
        await session.open_stream()
        await session.close()
        await sockets[0].fire("simulation-state", "running")

    asyncio.run(scenario())

    assert session.snapshot.status == "idle"


def test_random_processes_replace_list_or_report_failure():
    session, _ = _session(FakeApi(processes=[{"name": "A", "burstTime": 4}, {"id": "x", "burstTime": 2}]))

    assert asyncio.run(session.load_random_processes(count=2)) is True
    ids = [p.id for p in session.snapshot.processes]
    assert ids[0].startswith("process-test-")
    assert ids[1] == "x"

    failing, _ = _session(FakeApi(error=SimulationApiError("down")))
    assert asyncio.run(failing.load_random_processes()) is False
    assert "down" in failing.message


def test_add_and_remove_process():
    session, _ = _session()
    session.add_process({"id": "a", "burstTime": 1})
    session.add_process({"name": "B", "burstTime": 2})

    assert len(session.snapshot.processes) == 2
    session.remove_process("a")
    assert [p.name for p in session.snapshot.processes] == ["B"]
