from __future__ import annotations

"""
File: schedviz/analytics/formatting.py
Purpose: Display helpers for statistics and comparison charts.
Key responsibilities:
- Percentage/time formatting of numeric-as-string statistics.
- Algorithm display names and select options.
- Chart rows with optional throughput scaling.
"""

from typing import Any, Optional, Sequence

from schedviz.analytics.comparison import DEFAULT_METRICS, MetricSpec
from schedviz.settings import ALGORITHM_NAMES
from schedviz.store.entities import AlgorithmRunResult
from schedviz.store.parsing import format_number, parse_number


def format_percentage(value: Any) -> str:
    number = parse_number(value)
    return f"{format_number(number or 0.0)}%"


def format_time(value: Any) -> str:
    number = parse_number(value)
    return format_number(number or 0.0)


def algorithm_full_name(algorithm: str) -> str:
    return ALGORITHM_NAMES.get(algorithm, algorithm)


def algorithm_options(algorithms: Sequence[str]) -> list[dict[str, str]]:
    """Value/label pairs for an algorithm picker."""
    return [{"value": algorithm, "label": algorithm_full_name(algorithm)} for algorithm in algorithms]


def scale_statistic(value: Any, factor: float) -> Optional[str]:
    """Parse, multiply and re-stringify a numeric-as-string statistic."""
    number = parse_number(value)
    if number is None:
        return None
    return format_number(number * factor)


def comparison_rows(
    results: Sequence[AlgorithmRunResult],
    metrics: Sequence[MetricSpec] = DEFAULT_METRICS,
    throughput_scale: float = 1.0,
) -> list[dict[str, Any]]:
    """One numeric row per run for bar/radar charts; throughput can be scaled for visibility."""
    rows: list[dict[str, Any]] = []
    for result in results:
        row: dict[str, Any] = {
            "algorithm": result.algorithm,
            "label": algorithm_full_name(result.algorithm),
        }
        for metric in metrics:
            raw = result.statistics.get(metric.key)
            if metric.key == "throughput" and throughput_scale != 1.0:
                raw = scale_statistic(raw, throughput_scale)
            row[metric.key] = parse_number(raw)
        rows.append(row)
    return rows
