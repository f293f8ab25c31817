from __future__ import annotations

"""
File: schedviz/store/reconciler.py
Purpose: Owner of the live SimulationSnapshot.
Key responsibilities:
- Merge partial step payloads from the batch and streamed producers.
- Guarantee process identity (id synthesis on missing or colliding ids).
- Keep queue partitions disjoint and the running slot consistent with status.
- Publish each new immutable snapshot to subscribers.
Key entrypoints:
- StateReconciler.apply_step(), set_algorithm(), set_processes(), set_status(), reset()
"""

from dataclasses import replace
import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from schedviz.ids import IdGenerator
from schedviz.schemas import SIMULATION_STATUSES, ProcessPayload
from schedviz.settings import settings
from schedviz.store.entities import STATISTIC_FIELDS, Process, Queues, SimulationSnapshot
from schedviz.store.parsing import StepUpdate, parse_process_list, parse_step

logger = logging.getLogger("schedviz-state")

SnapshotListener = Callable[[SimulationSnapshot], None]

# Active partitions claim ids in this order when a producer reports one id twice.
ACTIVE_PARTITIONS = ("running", "ready", "waiting")


def initial_snapshot(algorithm: str | None = None) -> SimulationSnapshot:
    """Zero time, no processes, empty queues, zeroed statistics, idle."""
    return SimulationSnapshot(algorithm=algorithm or settings.default_algorithm)


class StateReconciler:
    """Maintains one authoritative snapshot from heterogeneous partial inputs."""
    def __init__(
        self,
        id_generator: IdGenerator | None = None,
        default_algorithm: str | None = None,
        strict_ordering: bool | None = None,
    ) -> None:
        self.ids = id_generator or IdGenerator(settings.session_salt)
        self.default_algorithm = default_algorithm or settings.default_algorithm
        self.strict_ordering = settings.strict_ordering if strict_ordering is None else strict_ordering
        self._snapshot = initial_snapshot(self.default_algorithm)
        self._last_seq: int | None = None
        self._listeners: list[SnapshotListener] = []

    @property
    def snapshot(self) -> SimulationSnapshot:
        """Current snapshot; never mutated in place."""
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a callback for every new snapshot; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def sanitize_process(self, raw: ProcessPayload | Mapping[str, Any]) -> Optional[Process]:
        """Return the process with a guaranteed non-empty id; None if it cannot be parsed."""
        if isinstance(raw, ProcessPayload):
            payload = raw
        elif isinstance(raw, Mapping):
            parsed = parse_process_list([dict(raw)], "process")
            if not parsed:
                return None
            payload = parsed[0]
        else:
            logger.warning("drop non-object process type=%s", type(raw).__name__)
            return None
        process_id = payload.id if payload.id else self.ids.next_id()
        return Process.from_schema(payload, process_id)

    def sanitize_processes(self, payloads: Iterable[ProcessPayload], field_name: str) -> tuple[Process, ...]:
        """Sanitize a list; a repeated id inside the list gets a synthesized one."""
        seen: set[str] = set()
        sanitized: list[Process] = []
        for payload in payloads:
            process = self.sanitize_process(payload)
            if process is None:
                continue
            if process.id in seen:
                new_id = self.ids.next_id()
                logger.warning("duplicate process id field=%s id=%s reassigned=%s", field_name, process.id, new_id)
                process = replace(process, id=new_id)
            seen.add(process.id)
            sanitized.append(process)
        return tuple(sanitized)

    def apply_step(self, partial: Any, seq: int | None = None) -> SimulationSnapshot:
        """Merge a partial update; unsupplied or malformed fields keep their previous value."""
        update = parse_step(partial)
        seq = seq if seq is not None else update.seq
        if self.strict_ordering and seq is not None:
            if self._last_seq is not None and seq <= self._last_seq:
                logger.info("drop stale step seq=%s last_seq=%s", seq, self._last_seq)
                return self._snapshot
            self._last_seq = seq

        prev = self._snapshot
        current_time = update.current_time if update.current_time is not None else prev.current_time
        processes = (
            self.sanitize_processes(update.processes, "processes")
            if update.processes is not None
            else prev.processes
        )
        queues = self._merge_queues(prev.queues, update)

        statistics = prev.statistics
        if update.statistics:
            statistics = replace(
                statistics,
                **{STATISTIC_FIELDS[key]: value for key, value in update.statistics.items()},
            )

        detailed_metrics = prev.detailed_metrics
        if update.detailed_metrics:
            detailed_metrics = MappingProxyType({**prev.detailed_metrics, **update.detailed_metrics})

        return self._commit(
            replace(
                prev,
                current_time=current_time,
                processes=processes,
                queues=queues,
                statistics=statistics,
                detailed_metrics=detailed_metrics,
            )
        )

    def set_algorithm(self, algorithm: str, config: Mapping[str, Any] | None = None) -> SimulationSnapshot:
        """Select an algorithm and its configuration; allowed in any status."""
        return self._commit(
            replace(
                self._snapshot,
                algorithm=algorithm,
                algorithm_config=MappingProxyType(dict(config or {})),
            )
        )

    def set_processes(self, processes: Any) -> SimulationSnapshot:
        """Replace the flat process list (hand edits before a run); queues untouched."""
        payloads = parse_process_list(processes, "processes")
        if payloads is None:
            return self._snapshot
        return self._commit(replace(self._snapshot, processes=self.sanitize_processes(payloads, "processes")))

    def set_status(self, status: str) -> SimulationSnapshot:
        """Record a lifecycle status; legality of the transition is not checked here."""
        if status not in SIMULATION_STATUSES:
            logger.warning("ignore unknown status value=%r", status)
            return self._snapshot
        queues = self._snapshot.queues
        if status in {"idle", "completed"} and queues.running is not None:
            queues = replace(queues, running=None)
        return self._commit(replace(self._snapshot, status=status, queues=queues))

    def reset(self) -> SimulationSnapshot:
        """Restore the initial snapshot; the only way processes are discarded."""
        self._last_seq = None
        return self._commit(initial_snapshot(self.default_algorithm))

    def _merge_queues(self, prev: Queues, update: StepUpdate) -> Queues:
        fresh: dict[str, tuple[Process, ...]] = {}
        for name in ("ready", "waiting", "completed"):
            payloads = getattr(update, name)
            if payloads is not None:
                fresh[name] = self.sanitize_processes(payloads, name)
        if update.running_supplied:
            running = self.sanitize_process(update.running) if update.running is not None else None
            fresh["running"] = (running,) if running is not None else ()

        partitions: dict[str, tuple[Process, ...]] = {
            "ready": prev.ready,
            "running": (prev.running,) if prev.running is not None else (),
            "waiting": prev.waiting,
            "completed": prev.completed,
        }
        partitions.update(fresh)

        # Completion is irreversible, then fresh partitions win over retained ones.
        claimed: set[str] = set()
        order = ["completed"]
        order += [name for name in ACTIVE_PARTITIONS if name in fresh]
        order += [name for name in ACTIVE_PARTITIONS if name not in fresh]
        for name in order:
            kept = tuple(p for p in partitions[name] if p.id not in claimed)
            if len(kept) != len(partitions[name]):
                logger.debug("moved ids out of stale partition=%s dropped=%s", name, len(partitions[name]) - len(kept))
            partitions[name] = kept
            claimed.update(p.id for p in kept)

        return Queues(
            ready=partitions["ready"],
            running=partitions["running"][0] if partitions["running"] else None,
            waiting=partitions["waiting"],
            completed=partitions["completed"],
        )

    def _commit(self, snapshot: SimulationSnapshot) -> SimulationSnapshot:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.exception("snapshot listener error: %s", exc)
        return snapshot
