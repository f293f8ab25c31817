from __future__ import annotations

"""
File: schedviz/session.py
Purpose: One dashboard session: state owners plus the two producers feeding them.
Key responsibilities:
- Own the StateReconciler, ResultStore and ComparisonAnalytics for a UI session.
- Drive batch runs over HTTP and live runs over the stream channel.
- Route stream events into the reconciler/store; surface transport errors as state.
Key entrypoints:
- DashboardSession.open_stream(), run_batch(), start_stream(), close()
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from schedviz.analytics.comparison import ComparisonAnalytics, ComparisonSummary
from schedviz.api_client import SchedulerApiClient, SimulationApiError
from schedviz.ids import IdGenerator
from schedviz.settings import settings
from schedviz.store.entities import AlgorithmRunResult, SimulationSnapshot
from schedviz.store.parsing import parse_state
from schedviz.store.reconciler import StateReconciler
from schedviz.store.results import ResultStore
from schedviz.stream import StreamChannel, StreamHandlers

logger = logging.getLogger("schedviz-session")


class DashboardSession:
    """Constructed once per UI session; close() when the session ends."""
    def __init__(
        self,
        api: SchedulerApiClient | None = None,
        channel: StreamChannel | None = None,
        id_generator: IdGenerator | None = None,
        reconciler: StateReconciler | None = None,
        results: ResultStore | None = None,
        analytics: ComparisonAnalytics | None = None,
    ) -> None:
        ids = id_generator or IdGenerator(settings.session_salt)
        self.api = api or SchedulerApiClient()
        self.channel = channel or StreamChannel()
        self.reconciler = reconciler or StateReconciler(id_generator=ids)
        self.results = results or ResultStore(id_generator=ids)
        self.analytics = analytics or ComparisonAnalytics()
        self.step_interval_ms = settings.step_interval_ms
        self.message: Optional[str] = None
        self._stream_algorithm: Optional[str] = None

    @property
    def snapshot(self) -> SimulationSnapshot:
        return self.reconciler.snapshot

    def comparison(self) -> ComparisonSummary:
        return self.analytics.summarize(self.results.results)

    # -- process set / algorithm -------------------------------------------------

    def set_algorithm(self, algorithm: str, config: Mapping[str, Any] | None = None) -> SimulationSnapshot:
        return self.reconciler.set_algorithm(algorithm, config)

    def set_processes(self, processes: Any) -> SimulationSnapshot:
        return self.reconciler.set_processes(processes)

    def add_process(self, process: Mapping[str, Any]) -> SimulationSnapshot:
        """Append one hand-entered process to the flat list."""
        current = [p.to_payload() for p in self.snapshot.processes]
        return self.reconciler.set_processes(current + [dict(process)])

    def remove_process(self, process_id: str) -> SimulationSnapshot:
        remaining = [p.to_payload() for p in self.snapshot.processes if p.id != process_id]
        return self.reconciler.set_processes(remaining)

    async def load_random_processes(self, **params: int) -> bool:
        """Replace the process list with a service-generated random set."""
        try:
            processes = await self.api.fetch_random_processes(**params)
        except (httpx.HTTPError, SimulationApiError) as exc:
            logger.warning("random process generation failed err=%s", exc)
            self.message = f"Failed to generate random processes: {exc}"
            return False
        self.message = None
        self.reconciler.set_processes(processes)
        return True

    # -- batch producer ----------------------------------------------------------

    async def run_batch(self) -> Optional[AlgorithmRunResult]:
        """Run the current algorithm once over HTTP and record the result."""
        snapshot = self.snapshot
        algorithm = snapshot.algorithm
        self.message = None
        try:
            data = await self.api.run_simulation(
                algorithm,
                [p.to_payload() for p in snapshot.processes],
                dict(snapshot.algorithm_config),
            )
        except (httpx.HTTPError, SimulationApiError) as exc:
            logger.warning("batch run failed algorithm=%s err=%s", algorithm, exc)
            self._fail(f"Failed to run simulation: {exc}")
            return None

        statistics = data.get("statistics") or {}
        self.reconciler.apply_step(
            {
                "processes": data.get("results"),
                "statistics": statistics,
                "currentTime": statistics.get("totalTime", 0),
            }
        )
        run = self.results.record_completion(algorithm, data, sanitize=self.reconciler.sanitize_processes)
        if run is None:
            self._fail("Received invalid simulation data.")
            return None
        self.reconciler.set_status("completed")
        return run

    # -- streamed producer -------------------------------------------------------

    async def open_stream(self) -> None:
        """Connect the stream channel (re-initializing tears down the previous one)."""
        await self.channel.initialize(
            StreamHandlers(
                on_step=self.handle_step,
                on_completed=self.handle_completed,
                on_error=self.handle_error,
                on_state=self.handle_state,
            )
        )

    async def close(self) -> None:
        await self.channel.teardown()

    async def start_stream(self, step_interval_ms: int | None = None) -> None:
        snapshot = self.snapshot
        if step_interval_ms is not None:
            self.step_interval_ms = self._clamp_interval(step_interval_ms)
        self.message = None
        self._stream_algorithm = snapshot.algorithm
        config = {**snapshot.algorithm_config, "showDetailedMetrics": True}
        await self.channel.start(
            snapshot.algorithm,
            [p.to_payload() for p in snapshot.processes],
            self.step_interval_ms,
            config,
        )

    async def pause(self) -> None:
        await self.channel.pause()

    async def resume(self) -> None:
        await self.channel.resume()

    async def step(self) -> None:
        await self.channel.step()

    async def reset(self) -> None:
        """Reset the server-side run and the local snapshot (local reset always happens)."""
        try:
            await self.channel.reset()
        except Exception as exc:  # noqa: BLE001
            logger.warning("stream reset failed, resetting local state only err=%s", exc)
        finally:
            self._stream_algorithm = None
            self.reconciler.reset()

    async def change_tick_speed(self, step_interval_ms: int) -> int:
        """Clamp and store the step interval; pushed to the server only mid-run."""
        self.step_interval_ms = self._clamp_interval(step_interval_ms)
        if self.snapshot.status in {"running", "paused"}:
            await self.channel.change_tick_speed(self.step_interval_ms)
        return self.step_interval_ms

    async def speed_up(self) -> int:
        return await self.change_tick_speed(self.step_interval_ms - settings.step_interval_delta_ms)

    async def slow_down(self) -> int:
        return await self.change_tick_speed(self.step_interval_ms + settings.step_interval_delta_ms)

    # -- stream event handlers ---------------------------------------------------

    def handle_step(self, data: Any) -> None:
        self.reconciler.apply_step(data)

    def handle_completed(self, data: Any) -> None:
        self.reconciler.set_status("completed")
        algorithm = self._stream_algorithm or self.snapshot.algorithm
        run = self.results.record_completion(algorithm, data, sanitize=self.reconciler.sanitize_processes)
        if run is None:
            logger.error("invalid completion received algorithm=%s", algorithm)

    def handle_error(self, data: Any) -> None:
        if isinstance(data, Mapping):
            message = str(data.get("message") or data.get("error") or "Simulation error")
        else:
            message = str(data) if data else "Simulation error"
        logger.warning("simulation error message=%s", message)
        self._fail(message)

    def handle_state(self, data: Any) -> None:
        status, tick_speed = parse_state(data)
        if tick_speed is not None:
            self.step_interval_ms = self._clamp_interval(tick_speed)
        if status is not None:
            self.reconciler.set_status(status)

    # -- helpers -----------------------------------------------------------------

    def _fail(self, message: str) -> None:
        self.message = message
        self.reconciler.set_status("idle")

    @staticmethod
    def _clamp_interval(step_interval_ms: int) -> int:
        return max(settings.step_interval_min_ms, min(settings.step_interval_max_ms, int(step_interval_ms)))
