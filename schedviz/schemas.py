from __future__ import annotations

"""
File: schedviz/schemas.py
Purpose: Pydantic models for the scheduler service request/response contracts.
Key responsibilities:
- Validate inbound process records, completion events and batch responses.
- Enforce the per-process timing invariants at the boundary.
- Define the outbound batch simulation request body.
Key entrypoints:
- ProcessPayload, CompletionPayload, SimulateRequest, StatePayload
"""

import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ProcessState = Literal["new", "ready", "running", "blocked", "terminated"]
SimulationStatus = Literal["idle", "running", "paused", "completed"]
SIMULATION_STATUSES: tuple[str, ...] = ("idle", "running", "paused", "completed")


def _scalar_text(value: Any) -> Optional[str]:
    """Text form of a finite number (``1.0`` -> ``"1"``); None for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ProcessPayload(BaseModel):
    """Process record as reported by the scheduler service."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    id: Optional[str] = None
    name: str = ""
    arrival_time: float = Field(default=0, alias="arrivalTime", ge=0)
    burst_time: float = Field(default=0, alias="burstTime", ge=0)
    io_burst_time: Optional[float] = Field(default=None, alias="ioBurstTime")
    priority: Optional[int] = None
    remaining_time: Optional[float] = Field(default=None, alias="remainingTime")
    state: Optional[ProcessState] = None
    waiting_time: Optional[float] = Field(default=None, alias="waitingTime")
    turnaround_time: Optional[float] = Field(default=None, alias="turnaroundTime")
    response_time: Optional[float] = Field(default=None, alias="responseTime")
    completion_time: Optional[float] = Field(default=None, alias="completionTime")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Unusable ids become None so the reconciler synthesizes one.
        if isinstance(value, str):
            return value
        return _scalar_text(value)

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        return _scalar_text(value) or ""

    @field_validator("state", mode="before")
    @classmethod
    def _normalize_state(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return "blocked" if value == "waiting" else value
        return value

    @model_validator(mode="after")
    def _enforce_remaining(self) -> "ProcessPayload":
        # remaining_time stays within [0, burst_time]; a drained process is terminated.
        # Without a reported burst_time only the lower bound is known.
        if self.remaining_time is None:
            return self
        self.remaining_time = max(self.remaining_time, 0)
        if "burst_time" not in self.model_fields_set:
            return self
        self.remaining_time = min(self.remaining_time, self.burst_time)
        if self.remaining_time == 0:
            self.state = "terminated"
        return self


class CompletionPayload(BaseModel):
    """Final result of a run (stream completion event or batch response)."""
    model_config = ConfigDict(extra="ignore")

    results: list[ProcessPayload]
    statistics: dict[str, Any]


class SimulateResponse(CompletionPayload):
    """Response body of POST /api/scheduler/simulate."""
    status: str = "success"


class StatePayload(BaseModel):
    """Object form of the simulation-state event."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    state: Optional[SimulationStatus] = None
    status: Optional[SimulationStatus] = None
    tick_speed: Optional[int] = Field(default=None, alias="tickSpeed", ge=0)

    def resolved_status(self) -> Optional[str]:
        return self.state or self.status


class SimulateRequest(BaseModel):
    """Request body for POST /api/scheduler/simulate."""
    model_config = ConfigDict(populate_by_name=True)

    algorithm: str
    processes: list[dict[str, Any]]
    config: dict[str, Any] = Field(default_factory=dict)
