from __future__ import annotations

"""
File: schedviz/store/results.py
Purpose: Registry of completed algorithm runs.
Key responsibilities:
- Keep at most one run per algorithm (last write wins, position kept).
- Validate raw completion payloads before they become runs.
"""

import logging
import time
from typing import Any, Callable, Iterable, Optional

from schedviz.ids import IdGenerator
from schedviz.schemas import ProcessPayload
from schedviz.settings import settings
from schedviz.store.entities import AlgorithmRunResult, Process
from schedviz.store.parsing import parse_completion, parse_statistics_bundle

logger = logging.getLogger("schedviz-results")

ResultsListener = Callable[[tuple[AlgorithmRunResult, ...]], None]
Sanitizer = Callable[[Iterable[ProcessPayload], str], tuple[Process, ...]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ResultStore:
    """Append/replace registry keyed by algorithm id."""
    def __init__(self, id_generator: IdGenerator | None = None, clock: Callable[[], int] = _now_ms) -> None:
        self.ids = id_generator or IdGenerator(settings.session_salt)
        self.clock = clock
        self._results: tuple[AlgorithmRunResult, ...] = ()
        self._listeners: list[ResultsListener] = []

    @property
    def results(self) -> tuple[AlgorithmRunResult, ...]:
        """Stored runs in insertion order."""
        return self._results

    def __len__(self) -> int:
        return len(self._results)

    def algorithms(self) -> list[str]:
        return [result.algorithm for result in self._results]

    def get_by_algorithm(self, algorithm: str) -> Optional[AlgorithmRunResult]:
        for result in self._results:
            if result.algorithm == algorithm:
                return result
        return None

    def subscribe(self, listener: ResultsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def add_result(self, run: AlgorithmRunResult) -> None:
        """Store a run, replacing any previous run of the same algorithm in place."""
        results = list(self._results)
        for idx, existing in enumerate(results):
            if existing.algorithm == run.algorithm:
                results[idx] = run
                logger.info("result replaced algorithm=%s run_id=%s", run.algorithm, run.id)
                break
        else:
            results.append(run)
            logger.info("result added algorithm=%s run_id=%s total=%s", run.algorithm, run.id, len(results))
        self._commit(tuple(results))

    def clear(self) -> None:
        self._commit(())

    def record_completion(
        self,
        algorithm: str,
        payload: Any,
        sanitize: Sanitizer | None = None,
    ) -> Optional[AlgorithmRunResult]:
        """Validate a completion payload and store it; malformed payloads are dropped."""
        completion = parse_completion(payload)
        if completion is None:
            logger.warning("drop completion without results/statistics algorithm=%s", algorithm)
            return None
        if sanitize is not None:
            processes = sanitize(completion.results, "results")
        else:
            processes = tuple(
                Process.from_schema(p, p.id if p.id else self.ids.next_id()) for p in completion.results
            )
        run = AlgorithmRunResult(
            id=self.ids.next_id("run"),
            algorithm=algorithm,
            processes=processes,
            statistics=parse_statistics_bundle(completion.statistics),
            timestamp=self.clock(),
        )
        self.add_result(run)
        return run

    def _commit(self, results: tuple[AlgorithmRunResult, ...]) -> None:
        self._results = results
        for listener in list(self._listeners):
            try:
                listener(results)
            except Exception as exc:  # noqa: BLE001
                logger.exception("results listener error: %s", exc)
