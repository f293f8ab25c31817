from __future__ import annotations

"""
File: schedviz/main.py
Purpose: Dashboard backend for the CPU scheduling visualizer.
Key responsibilities:
- Hold one DashboardSession (snapshot, results, comparison) per process.
- Expose the live snapshot, process editing and simulation controls as JSON.
- Stream every new snapshot/result set to WebSocket clients.
Key entrypoints:
- startup_event(), shutdown_event()
- /api/* endpoints, /ws
Config/env vars:
- SCHEDULER_API_URL, SCHEDULER_STREAM_URL, STEP_INTERVAL_*, STRICT_ORDERING
- VIEWER_HOST, VIEWER_PORT, LOG_LEVEL
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from schedviz.analytics.formatting import algorithm_options, comparison_rows
from schedviz.session import DashboardSession
from schedviz.settings import settings
from schedviz.stream import ChannelNotInitializedError
from schedviz.ws import SnapshotBroadcaster

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s schedviz %(message)s")
logger = logging.getLogger("schedviz")

app = FastAPI(title="schedviz", version="1.0.0")
broadcaster = SnapshotBroadcaster()
_background: set[asyncio.Task] = set()
session = DashboardSession()


class AlgorithmBody(BaseModel):
    algorithm: str
    config: dict[str, Any] = Field(default_factory=dict)


class ProcessListBody(BaseModel):
    processes: list[dict[str, Any]]


class RandomProcessesBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(default=5, ge=1)
    max_burst_time: int = Field(default=10, alias="maxBurstTime", ge=1)
    max_io_burst_time: int = Field(default=5, alias="maxIoBurstTime", ge=0)
    max_priority: int = Field(default=10, alias="maxPriority", ge=1)
    max_arrival_time: int = Field(default=10, alias="maxArrivalTime", ge=0)


class StepIntervalBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    step_interval: Optional[int] = Field(default=None, alias="stepInterval", ge=0)


def get_session() -> DashboardSession:
    return session


def _spawn(coro: Coroutine[Any, Any, None]) -> None:
    """Start a background task and hold a reference until it finishes."""
    task = asyncio.create_task(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)


def _publish(current: DashboardSession) -> None:
    current.reconciler.subscribe(
        lambda snapshot: broadcaster.publish({"type": "snapshot", "snapshot": snapshot.to_payload()})
    )
    current.results.subscribe(
        lambda results: broadcaster.publish(
            {"type": "results", "results": [r.to_payload() for r in results]}
        )
    )


def _state(current: DashboardSession) -> dict[str, Any]:
    return {
        "snapshot": current.snapshot.to_payload(),
        "stepInterval": current.step_interval_ms,
        "message": current.message,
    }


async def _connect_stream() -> None:
    try:
        await session.open_stream()
    except Exception as exc:  # noqa: BLE001
        logger.warning("stream connect failed url=%s err=%s", session.channel.url, exc)
        session.message = "Socket connection not established. Please refresh the page and try again."


async def _command(current: DashboardSession, coro: Coroutine[Any, Any, Any]) -> JSONResponse:
    """Run a stream control command and map channel failures to HTTP errors."""
    try:
        await coro
    except ChannelNotInitializedError as exc:
        return JSONResponse(status_code=409, content={"status": "error", "message": str(exc)})
    except Exception as exc:  # noqa: BLE001
        logger.exception("stream command failed: %s", exc)
        return JSONResponse(status_code=502, content={"status": "error", "message": str(exc)})
    return JSONResponse(content={"status": "success", **_state(current)})


@app.on_event("startup")
async def startup_event() -> None:
    """Wire snapshot broadcasting and connect the stream channel in the background."""
    _publish(session)
    _spawn(broadcaster.run())
    _spawn(_connect_stream())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Tear the stream down so no handler fires after the session ends."""
    await session.close()
    for task in list(_background):
        task.cancel()


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness/readiness endpoint."""
    return {"status": "ok"}


@app.get("/api/config")
async def config(current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    """Return defaults for the UI, including the algorithm catalogue when reachable."""
    try:
        algorithms = await current.api.fetch_algorithms()
    except Exception as exc:  # noqa: BLE001
        logger.warning("algorithm catalogue unavailable err=%s", exc)
        algorithms = []
    return {
        "defaults": {
            "algorithm": settings.default_algorithm,
            "stepInterval": settings.step_interval_ms,
            "stepIntervalMin": settings.step_interval_min_ms,
            "stepIntervalMax": settings.step_interval_max_ms,
        },
        "algorithms": algorithm_options(algorithms),
    }


@app.get("/api/snapshot")
async def snapshot(current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    return _state(current)


@app.get("/api/processes")
async def list_processes(current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    return {"processes": [p.to_payload() for p in current.snapshot.processes]}


@app.put("/api/processes")
async def replace_processes(body: ProcessListBody, current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    snap = current.set_processes(body.processes)
    return {"processes": [p.to_payload() for p in snap.processes]}


@app.post("/api/processes")
async def add_process(body: dict[str, Any], current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    snap = current.add_process(body)
    return {"processes": [p.to_payload() for p in snap.processes]}


@app.delete("/api/processes/{process_id}")
async def remove_process(process_id: str, current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    snap = current.remove_process(process_id)
    return {"processes": [p.to_payload() for p in snap.processes]}


@app.post("/api/processes/random")
async def random_processes(
    body: RandomProcessesBody,
    current: DashboardSession = Depends(get_session),
) -> JSONResponse:
    ok = await current.load_random_processes(
        count=body.count,
        max_burst_time=body.max_burst_time,
        max_io_burst_time=body.max_io_burst_time,
        max_priority=body.max_priority,
        max_arrival_time=body.max_arrival_time,
    )
    if not ok:
        return JSONResponse(status_code=502, content={"status": "error", "message": current.message})
    return JSONResponse(content={"processes": [p.to_payload() for p in current.snapshot.processes]})


@app.put("/api/algorithm")
async def set_algorithm(body: AlgorithmBody, current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    snap = current.set_algorithm(body.algorithm, body.config)
    return {"algorithm": snap.algorithm, "algorithmConfig": dict(snap.algorithm_config)}


@app.post("/api/runs")
async def run_batch(current: DashboardSession = Depends(get_session)) -> JSONResponse:
    """Run the selected algorithm once and store the result for comparison."""
    run = await current.run_batch()
    if run is None:
        return JSONResponse(status_code=502, content={"status": "error", "message": current.message})
    return JSONResponse(content={"status": "success", "result": run.to_payload(), **_state(current)})


@app.post("/api/stream/start")
async def stream_start(body: StepIntervalBody, current: DashboardSession = Depends(get_session)) -> JSONResponse:
    return await _command(current, current.start_stream(body.step_interval))


@app.post("/api/stream/pause")
async def stream_pause(current: DashboardSession = Depends(get_session)) -> JSONResponse:
    return await _command(current, current.pause())


@app.post("/api/stream/resume")
async def stream_resume(current: DashboardSession = Depends(get_session)) -> JSONResponse:
    return await _command(current, current.resume())


@app.post("/api/stream/step")
async def stream_step(current: DashboardSession = Depends(get_session)) -> JSONResponse:
    return await _command(current, current.step())


@app.post("/api/stream/reset")
async def stream_reset(current: DashboardSession = Depends(get_session)) -> JSONResponse:
    return await _command(current, current.reset())


@app.post("/api/stream/tick-speed")
async def stream_tick_speed(body: StepIntervalBody, current: DashboardSession = Depends(get_session)) -> JSONResponse:
    interval = body.step_interval if body.step_interval is not None else current.step_interval_ms
    return await _command(current, current.change_tick_speed(interval))


@app.get("/api/results")
async def list_results(current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    return {"results": [r.to_payload() for r in current.results.results]}


@app.delete("/api/results")
async def clear_results(current: DashboardSession = Depends(get_session)) -> dict[str, Any]:
    current.results.clear()
    return {"results": []}


@app.get("/api/comparison")
async def comparison(
    throughput_scale: float = 1.0,
    current: DashboardSession = Depends(get_session),
) -> dict[str, Any]:
    """Per-metric bests, overall ranking and chart rows for the stored runs."""
    summary = current.comparison()
    return {
        **summary.to_payload(),
        "rows": comparison_rows(current.results.results, current.analytics.metrics, throughput_scale),
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint streaming snapshot and results updates."""
    await broadcaster.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await broadcaster.disconnect(websocket)


def main() -> None:
    import uvicorn

    uvicorn.run("schedviz.main:app", host=settings.viewer_host, port=settings.viewer_port)


if __name__ == "__main__":
    main()
