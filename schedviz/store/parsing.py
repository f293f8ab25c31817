from __future__ import annotations

"""
File: schedviz/store/parsing.py
Purpose: Field-tolerant parsing of scheduler service payloads.
Key responsibilities:
- Turn a raw partial step payload into a typed StepUpdate, field by field.
- Normalize numeric statistics to two-decimal strings.
- Validate completion payloads and simulation-state events.
Key entrypoints:
- parse_step(), parse_completion(), parse_statistics_bundle(), parse_state()
"""

from dataclasses import dataclass, field
import logging
import math
from typing import Any, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from schedviz.schemas import SIMULATION_STATUSES, CompletionPayload, ProcessPayload, StatePayload
from schedviz.store.entities import BUNDLE_FIELDS, STATISTIC_FIELDS, StatisticsBundle

logger = logging.getLogger("schedviz-state")

_PROCESS_LIST = TypeAdapter(list[ProcessPayload])

QUEUE_KEYS: dict[str, str] = {
    "readyQueue": "ready",
    "waitingQueue": "waiting",
    "completedProcesses": "completed",
}

COUNT_METRICS = ("contextSwitches", "readyQueueLength", "waitingQueueLength", "tickSpeed")
BUNDLE_COUNTS = ("totalProcesses", "totalTime", "contextSwitches")


def parse_number(value: Any) -> Optional[float]:
    """Parse a number or numeric string; None for missing, NaN or infinite values."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def format_number(number: float) -> str:
    """Canonical two-decimal representation used for every statistic."""
    return f"{number:.2f}"


def normalize_statistic(value: Any) -> Optional[str]:
    number = parse_number(value)
    if number is None:
        return None
    return format_number(number)


def parse_count(value: Any) -> Optional[int]:
    number = parse_number(value)
    if number is None or number < 0:
        return None
    return int(number)


@dataclass
class StepUpdate:
    """Typed view of a partial step payload; None means "not supplied or malformed"."""
    current_time: Optional[int] = None
    processes: Optional[list[ProcessPayload]] = None
    ready: Optional[list[ProcessPayload]] = None
    waiting: Optional[list[ProcessPayload]] = None
    completed: Optional[list[ProcessPayload]] = None
    running: Optional[ProcessPayload] = None
    running_supplied: bool = False
    statistics: dict[str, str] = field(default_factory=dict)
    detailed_metrics: dict[str, Any] = field(default_factory=dict)
    seq: Optional[int] = None


def parse_process_list(value: Any, field_name: str) -> Optional[list[ProcessPayload]]:
    """Validate a whole process array; any bad entry rejects the array."""
    if not isinstance(value, list):
        if value is not None:
            logger.warning("drop non-array field=%s type=%s", field_name, type(value).__name__)
        return None
    try:
        return _PROCESS_LIST.validate_python(value)
    except ValidationError as exc:
        logger.warning("drop malformed array field=%s entries=%s errors=%s", field_name, len(value), exc.error_count())
        return None


def _parse_running(queues: Mapping[str, Any], update: StepUpdate) -> None:
    if "runningProcess" not in queues:
        return
    value = queues["runningProcess"]
    if value is None:
        update.running_supplied = True
        return
    if not isinstance(value, Mapping):
        logger.warning("drop malformed runningProcess type=%s", type(value).__name__)
        return
    try:
        update.running = ProcessPayload.model_validate(dict(value))
    except ValidationError as exc:
        logger.warning("drop malformed runningProcess errors=%s", exc.error_count())
        return
    update.running_supplied = True


def _parse_detailed(source: Mapping[str, Any], into: dict[str, Any]) -> None:
    parsers = {key: parse_count for key in COUNT_METRICS}
    parsers["cpuIdleTime"] = parse_number
    parsers["cpuIdlePercentage"] = normalize_statistic
    for key, parser in parsers.items():
        if key not in source:
            continue
        value = parser(source[key])
        if value is not None:
            into[key] = value
    if isinstance(source.get("algorithmType"), str):
        into["algorithmType"] = source["algorithmType"]


def parse_step(raw: Any) -> StepUpdate:
    """Parse a partial step payload; malformed fields are dropped individually."""
    update = StepUpdate()
    if not isinstance(raw, Mapping):
        logger.warning("drop non-object step payload type=%s", type(raw).__name__)
        return update

    if "currentTime" in raw:
        update.current_time = parse_count(raw["currentTime"])
        if update.current_time is None:
            logger.warning("drop malformed currentTime value=%r", raw["currentTime"])

    if "processes" in raw:
        update.processes = parse_process_list(raw["processes"], "processes")

    queues = raw.get("queues")
    if isinstance(queues, Mapping):
        for wire_key, attr in QUEUE_KEYS.items():
            if wire_key in queues:
                setattr(update, attr, parse_process_list(queues[wire_key], wire_key))
        _parse_running(queues, update)
    elif queues is not None:
        logger.warning("drop non-object queues type=%s", type(queues).__name__)

    statistics = raw.get("statistics")
    if isinstance(statistics, Mapping):
        for key in STATISTIC_FIELDS:
            if key not in statistics:
                continue
            normalized = normalize_statistic(statistics[key])
            if normalized is None:
                logger.warning("drop malformed statistic key=%s value=%r", key, statistics[key])
                continue
            update.statistics[key] = normalized
        _parse_detailed(statistics, update.detailed_metrics)

    detailed = raw.get("detailedMetrics")
    if isinstance(detailed, Mapping):
        _parse_detailed(detailed, update.detailed_metrics)

    if "seq" in raw:
        update.seq = parse_count(raw["seq"])
    return update


def parse_statistics_bundle(raw: Mapping[str, Any]) -> StatisticsBundle:
    """Build a statistics bundle; unparseable metrics become None."""
    values: dict[str, Any] = {}
    for key, attr in BUNDLE_FIELDS.items():
        if key not in raw:
            continue
        if key in BUNDLE_COUNTS:
            parsed: Any = parse_count(raw[key])
        else:
            parsed = normalize_statistic(raw[key])
        if parsed is None:
            logger.warning("ignore malformed bundle statistic key=%s value=%r", key, raw[key])
            continue
        values[attr] = parsed
    return StatisticsBundle(**values)


def parse_completion(raw: Any) -> Optional[CompletionPayload]:
    """Validate a completion payload; None when results/statistics are missing or malformed."""
    if not isinstance(raw, Mapping):
        logger.warning("drop non-object completion payload type=%s", type(raw).__name__)
        return None
    try:
        return CompletionPayload.model_validate(dict(raw))
    except ValidationError as exc:
        logger.warning("drop malformed completion payload errors=%s keys=%s", exc.error_count(), sorted(raw.keys()))
        return None


def parse_state(raw: Any) -> tuple[Optional[str], Optional[int]]:
    """Return (status, tick_speed) from a simulation-state event (string or object form)."""
    if isinstance(raw, str):
        status = raw.strip().lower()
        if status in SIMULATION_STATUSES:
            return status, None
        logger.warning("drop unknown simulation state value=%r", raw)
        return None, None
    if isinstance(raw, Mapping):
        try:
            payload = StatePayload.model_validate(dict(raw))
        except ValidationError as exc:
            logger.warning("drop malformed simulation state errors=%s", exc.error_count())
            return None, None
        return payload.resolved_status(), payload.tick_speed
    logger.warning("drop non-object simulation state type=%s", type(raw).__name__)
    return None, None
