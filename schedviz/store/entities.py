from __future__ import annotations

"""
File: schedviz/store/entities.py
Purpose: Immutable value types for the live snapshot and completed runs.
Key responsibilities:
- Process, queue partitions, rolling statistics and detailed metrics.
- SimulationSnapshot (replaced wholesale on every mutation).
- AlgorithmRunResult and its statistics bundle.
- Camel-case payload rendering for UI consumers.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from schedviz.schemas import ProcessPayload, ProcessState, SimulationStatus

ZERO = "0.00"


def _num(value: float | None) -> float | int | None:
    """Render integral floats as ints for the wire."""
    if value is None:
        return None
    if float(value).is_integer():
        return int(value)
    return value


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Process:
    """A scheduling unit under simulation."""
    id: str
    name: str = ""
    arrival_time: float = 0.0
    burst_time: float = 0.0
    io_burst_time: Optional[float] = None
    priority: Optional[int] = None
    remaining_time: Optional[float] = None
    state: Optional[ProcessState] = None
    waiting_time: Optional[float] = None
    turnaround_time: Optional[float] = None
    response_time: Optional[float] = None
    completion_time: Optional[float] = None

    @classmethod
    def from_schema(cls, payload: ProcessPayload, process_id: str) -> "Process":
        return cls(
            id=process_id,
            name=payload.name,
            arrival_time=payload.arrival_time,
            burst_time=payload.burst_time,
            io_burst_time=payload.io_burst_time,
            priority=payload.priority,
            remaining_time=payload.remaining_time,
            state=payload.state,
            waiting_time=payload.waiting_time,
            turnaround_time=payload.turnaround_time,
            response_time=payload.response_time,
            completion_time=payload.completion_time,
        )

    @property
    def progress(self) -> float:
        """Percent of the burst already executed, clamped to [0, 100]."""
        if not self.burst_time or self.remaining_time is None:
            return 0.0
        done = (self.burst_time - self.remaining_time) / self.burst_time * 100.0
        return min(100.0, max(0.0, done))

    def to_payload(self, with_progress: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "arrivalTime": _num(self.arrival_time),
            "burstTime": _num(self.burst_time),
        }
        optional = {
            "ioBurstTime": _num(self.io_burst_time),
            "priority": self.priority,
            "remainingTime": _num(self.remaining_time),
            "state": self.state,
            "waitingTime": _num(self.waiting_time),
            "turnaroundTime": _num(self.turnaround_time),
            "responseTime": _num(self.response_time),
            "completionTime": _num(self.completion_time),
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if with_progress:
            payload["progress"] = round(self.progress, 2)
        return payload


@dataclass(frozen=True)
class Queues:
    """Queue partitions of the live snapshot.

    ``running`` is the last process the producer reported in the running slot and
    is kept across pause. Readers go through ``SimulationSnapshot.running_process``,
    which is None unless the status is ``running``.
    """
    ready: tuple[Process, ...] = ()
    running: Optional[Process] = None
    waiting: tuple[Process, ...] = ()
    completed: tuple[Process, ...] = ()


@dataclass(frozen=True)
class Statistics:
    """Rolling statistics, stored as two-decimal strings."""
    cpu_utilization: str = ZERO
    avg_waiting_time: str = ZERO
    avg_turnaround_time: str = ZERO
    avg_response_time: str = ZERO
    throughput: str = ZERO

    def to_payload(self) -> dict[str, str]:
        return {
            "cpuUtilization": self.cpu_utilization,
            "avgWaitingTime": self.avg_waiting_time,
            "avgTurnaroundTime": self.avg_turnaround_time,
            "avgResponseTime": self.avg_response_time,
            "throughput": self.throughput,
        }


STATISTIC_FIELDS: dict[str, str] = {
    "cpuUtilization": "cpu_utilization",
    "avgWaitingTime": "avg_waiting_time",
    "avgTurnaroundTime": "avg_turnaround_time",
    "avgResponseTime": "avg_response_time",
    "throughput": "throughput",
}


@dataclass(frozen=True)
class SimulationSnapshot:
    """Canonical current-time view of the running simulation."""
    current_time: int = 0
    processes: tuple[Process, ...] = ()
    queues: Queues = field(default_factory=Queues)
    statistics: Statistics = field(default_factory=Statistics)
    detailed_metrics: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))
    algorithm: str = "FCFS"
    algorithm_config: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))
    status: SimulationStatus = "idle"

    @property
    def running_process(self) -> Optional[Process]:
        """The running slot; only visible while the simulation is running."""
        if self.status != "running":
            return None
        return self.queues.running

    def to_payload(self) -> dict[str, Any]:
        running = self.running_process
        return {
            "currentTime": self.current_time,
            "processes": [p.to_payload() for p in self.processes],
            "queues": {
                "readyQueue": [p.to_payload() for p in self.queues.ready],
                "runningProcess": running.to_payload(with_progress=True) if running else None,
                "waitingQueue": [p.to_payload() for p in self.queues.waiting],
                "completedProcesses": [p.to_payload() for p in self.queues.completed],
            },
            "statistics": self.statistics.to_payload(),
            "detailedMetrics": dict(self.detailed_metrics),
            "algorithm": self.algorithm,
            "algorithmConfig": dict(self.algorithm_config),
            "status": self.status,
        }


@dataclass(frozen=True)
class StatisticsBundle:
    """Final statistics of a completed run (numeric-as-string except counts)."""
    total_processes: int = 0
    total_time: int = 0
    cpu_utilization: Optional[str] = None
    avg_waiting_time: Optional[str] = None
    avg_turnaround_time: Optional[str] = None
    avg_response_time: Optional[str] = None
    avg_arrivals_per_step: Optional[str] = None
    throughput: Optional[str] = None
    context_switches: Optional[int] = None
    cpu_idle_percentage: Optional[str] = None

    def get(self, key: str) -> Optional[str]:
        """Look up a metric string by its wire name (e.g. ``avgWaitingTime``)."""
        attr = BUNDLE_FIELDS.get(key)
        if attr is None:
            return None
        value = getattr(self, attr)
        return None if value is None else str(value)

    def to_payload(self) -> dict[str, Any]:
        payload = {key: getattr(self, attr) for key, attr in BUNDLE_FIELDS.items()}
        return {key: value for key, value in payload.items() if value is not None}


BUNDLE_FIELDS: dict[str, str] = {
    "totalProcesses": "total_processes",
    "totalTime": "total_time",
    "cpuUtilization": "cpu_utilization",
    "avgWaitingTime": "avg_waiting_time",
    "avgTurnaroundTime": "avg_turnaround_time",
    "avgResponseTime": "avg_response_time",
    "avgArrivalsPerStep": "avg_arrivals_per_step",
    "throughput": "throughput",
    "contextSwitches": "context_switches",
    "cpuIdlePercentage": "cpu_idle_percentage",
}


@dataclass(frozen=True)
class AlgorithmRunResult:
    """Immutable record of one completed simulation."""
    id: str
    algorithm: str
    processes: tuple[Process, ...]
    statistics: StatisticsBundle
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "algorithm": self.algorithm,
            "processes": [p.to_payload() for p in self.processes],
            "statistics": self.statistics.to_payload(),
            "timestamp": self.timestamp,
        }
