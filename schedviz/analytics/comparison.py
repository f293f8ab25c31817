from __future__ import annotations

"""
File: schedviz/analytics/comparison.py
Purpose: Comparable, ranked insights over completed algorithm runs.
Key responsibilities:
- Project each run's statistics bundle to numeric metric values.
- Pick the best algorithm per metric (first seen wins ties).
- Min-max normalize, direction-correct and sum metrics into an overall score.
Key entrypoints:
- ComparisonAnalytics.summarize()
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from schedviz.store.entities import AlgorithmRunResult
from schedviz.store.parsing import parse_number


@dataclass(frozen=True)
class MetricSpec:
    """A tracked metric and the direction in which it improves."""
    key: str
    label: str
    unit: str
    higher_is_better: bool
    weight: float = 1.0


DEFAULT_METRICS: tuple[MetricSpec, ...] = (
    MetricSpec("cpuUtilization", "CPU Utilization", "%", higher_is_better=True),
    MetricSpec("avgWaitingTime", "Avg Waiting Time", "ms", higher_is_better=False),
    MetricSpec("avgTurnaroundTime", "Avg Turnaround Time", "ms", higher_is_better=False),
    MetricSpec("avgResponseTime", "Avg Response Time", "ms", higher_is_better=False),
    MetricSpec("throughput", "Throughput", "proc/ms", higher_is_better=True),
)

INSUFFICIENT_DATA = "insufficient data"


@dataclass
class MetricProjection:
    """Numeric metric values of one run; None when missing or unparseable."""
    algorithm: str
    values: dict[str, Optional[float]]


@dataclass
class BestMetric:
    metric: str
    algorithm: str
    value: float


@dataclass
class RankedRun:
    """Overall score of one run; contributions holds each metric's normalized share."""
    algorithm: str
    score: float
    percentage: float
    contributions: dict[str, float] = field(default_factory=dict)


@dataclass
class ComparisonSummary:
    sufficient: bool
    projections: list[MetricProjection]
    best: dict[str, BestMetric]
    ranking: list[RankedRun]
    reason: Optional[str] = None

    @property
    def winner(self) -> Optional[RankedRun]:
        return self.ranking[0] if self.ranking else None

    def to_payload(self) -> dict:
        return {
            "sufficient": self.sufficient,
            "reason": self.reason,
            "projections": [{"algorithm": p.algorithm, **p.values} for p in self.projections],
            "best": {
                key: {"algorithm": best.algorithm, "value": round(best.value, 6)}
                for key, best in self.best.items()
            },
            "ranking": [
                {
                    "algorithm": r.algorithm,
                    "score": round(r.score, 6),
                    "percentage": round(r.percentage, 2),
                    "contributions": {key: round(value, 6) for key, value in r.contributions.items()},
                }
                for r in self.ranking
            ],
            "winner": self.winner.algorithm if self.winner else None,
        }


class ComparisonAnalytics:
    """Derives per-metric bests and an overall ranking from stored runs."""
    def __init__(self, metrics: Sequence[MetricSpec] = DEFAULT_METRICS) -> None:
        if not metrics:
            raise ValueError("at least one metric is required")
        self.metrics = tuple(metrics)

    def project(self, results: Sequence[AlgorithmRunResult]) -> list[MetricProjection]:
        """Parse every tracked metric of every run into a float."""
        return [
            MetricProjection(
                algorithm=result.algorithm,
                values={m.key: parse_number(result.statistics.get(m.key)) for m in self.metrics},
            )
            for result in results
        ]

    def best_per_metric(self, projections: Sequence[MetricProjection]) -> dict[str, BestMetric]:
        """Best run per metric; strict comparison keeps the first seen on ties."""
        best: dict[str, BestMetric] = {}
        for metric in self.metrics:
            current: Optional[BestMetric] = None
            for projection in projections:
                value = projection.values.get(metric.key)
                if value is None:
                    continue
                if current is None:
                    current = BestMetric(metric.key, projection.algorithm, value)
                elif (value > current.value) if metric.higher_is_better else (value < current.value):
                    current = BestMetric(metric.key, projection.algorithm, value)
            if current is not None:
                best[metric.key] = current
        return best

    def rank(self, projections: Sequence[MetricProjection]) -> list[RankedRun]:
        """Sum of direction-corrected min-max normalized metrics, best first."""
        bounds: dict[str, tuple[float, float]] = {}
        for metric in self.metrics:
            present = [p.values[metric.key] for p in projections if p.values.get(metric.key) is not None]
            if present:
                bounds[metric.key] = (min(present), max(present))

        total_weight = sum(m.weight for m in self.metrics)
        ranked: list[RankedRun] = []
        for projection in projections:
            contributions: dict[str, float] = {}
            for metric in self.metrics:
                contributions[metric.key] = self._contribution(metric, projection.values.get(metric.key), bounds)
            score = sum(m.weight * contributions[m.key] for m in self.metrics)
            percentage = score / total_weight * 100.0 if total_weight else 0.0
            ranked.append(RankedRun(projection.algorithm, score, percentage, contributions))

        # sorted() is stable: equal scores keep stored order.
        return sorted(ranked, key=lambda r: r.score, reverse=True)

    def summarize(self, results: Sequence[AlgorithmRunResult]) -> ComparisonSummary:
        projections = self.project(results)
        if len(results) < 2:
            return ComparisonSummary(
                sufficient=False,
                projections=projections,
                best={},
                ranking=[],
                reason=INSUFFICIENT_DATA,
            )
        return ComparisonSummary(
            sufficient=True,
            projections=projections,
            best=self.best_per_metric(projections),
            ranking=self.rank(projections),
        )

    @staticmethod
    def _contribution(
        metric: MetricSpec,
        value: Optional[float],
        bounds: dict[str, tuple[float, float]],
    ) -> float:
        if value is None or metric.key not in bounds:
            return 0.0
        low, high = bounds[metric.key]
        if high == low:
            # Zero spread (all equal or a single value): no metric signal.
            return 0.0
        normalized = (value - low) / (high - low)
        return normalized if metric.higher_is_better else 1.0 - normalized
