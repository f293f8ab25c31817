from __future__ import annotations

"""
File: schedviz/api_client.py
Purpose: HTTP client for the scheduler service request/response endpoints.
Key responsibilities:
- Fetch the algorithm catalogue, descriptions and process parameter info.
- Fetch randomly generated process sets.
- Run one-shot (batch) simulations and validate the response envelope.
Config/env vars:
- SCHEDULER_API_URL, HTTP_TIMEOUT_S
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from schedviz.schemas import SimulateRequest, SimulateResponse
from schedviz.settings import settings

logger = logging.getLogger("schedviz-api")


class SimulationApiError(RuntimeError):
    """Error envelope (``status != "success"``) or unusable body from the scheduler service."""


def _unwrap(resp: httpx.Response, what: str) -> dict[str, Any]:
    """Return the JSON body of a success envelope or raise SimulationApiError."""
    try:
        data = resp.json()
    except ValueError:
        resp.raise_for_status()
        raise SimulationApiError(f"Failed to {what}: invalid JSON response")
    if not isinstance(data, dict) or data.get("status") != "success":
        message = data.get("message") if isinstance(data, dict) else None
        logger.warning("api error what=%s http_status=%s message=%s", what, resp.status_code, message)
        raise SimulationApiError(message or f"Failed to {what}")
    return data


class SchedulerApiClient:
    """Async client for the scheduler service REST API."""
    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.scheduler_api_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.http_timeout_s
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s, transport=self.transport)

    async def fetch_algorithms(self) -> list[str]:
        async with self._client() as client:
            resp = await client.get("/api/scheduler/algorithms")
        data = _unwrap(resp, "fetch algorithms")
        return [str(name) for name in data.get("algorithms", [])]

    async def fetch_algorithm_descriptions(self) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get("/api/algorithms/descriptions")
        return dict(_unwrap(resp, "fetch algorithm descriptions").get("descriptions", {}))

    async def fetch_process_parameters(self) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get("/api/processes/parameters")
        return dict(_unwrap(resp, "fetch process parameters").get("parameterInfo", {}))

    async def fetch_random_processes(
        self,
        count: int = 5,
        max_burst_time: int = 10,
        max_io_burst_time: int = 5,
        max_priority: int = 10,
        max_arrival_time: int = 10,
    ) -> list[dict[str, Any]]:
        """Ask the service for a random process set (raw records, sanitized by the caller)."""
        params = {
            "count": count,
            "maxBurstTime": max_burst_time,
            "maxIoBurstTime": max_io_burst_time,
            "maxPriority": max_priority,
            "maxArrivalTime": max_arrival_time,
        }
        async with self._client() as client:
            resp = await client.get("/api/processes/random", params=params)
        processes = _unwrap(resp, "fetch random processes").get("processes", [])
        if not isinstance(processes, list):
            raise SimulationApiError("Failed to fetch random processes: processes is not a list")
        return processes

    async def run_simulation(
        self,
        algorithm: str,
        processes: list[dict[str, Any]],
        config: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run a one-shot simulation and return the validated body (results + statistics).

        Raises SimulationApiError for error envelopes or bodies without results/statistics,
        httpx.HTTPError for transport failures.
        """
        request = SimulateRequest(algorithm=algorithm, processes=processes, config=dict(config or {}))
        async with self._client() as client:
            resp = await client.post("/api/scheduler/simulate", json=request.model_dump())
        data = _unwrap(resp, "run simulation")
        try:
            response = SimulateResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning("malformed simulate response algorithm=%s errors=%s", algorithm, exc.error_count())
            raise SimulationApiError("Received invalid simulation data") from exc
        logger.info(
            "batch simulation done algorithm=%s processes=%s",
            algorithm,
            len(response.results),
        )
        return data
