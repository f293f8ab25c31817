"""
File: schedviz/settings.py
Purpose: Environment-backed configuration for the dashboard client runtime.
Key responsibilities:
- Parse scheduler service endpoints and HTTP timeout.
- Parse simulation defaults (algorithm, step interval bounds, ordering mode).
- Provide the algorithm display-name catalogue.
"""

from dataclasses import dataclass
import os


ALGORITHM_NAMES = {
    "FCFS": "First-Come, First-Served",
    "SJF": "Shortest Job First",
    "SRTF": "Shortest Remaining Time First",
    "RR": "Round Robin",
    "PRIORITY": "Priority (Non-preemptive)",
    "PRIORITY_P": "Priority (Preemptive)",
    "RANDOM": "Random",
}


def _int_env(name: str, default: int = 0) -> int:
    """Parse an integer env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return int(raw)


def _bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean env var (1/true/yes/on) with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Client runtime configuration parsed from environment."""
    scheduler_api_url: str = os.getenv("SCHEDULER_API_URL", "http://localhost:8000")
    scheduler_stream_url: str = os.getenv("SCHEDULER_STREAM_URL", os.getenv("SCHEDULER_API_URL", "http://localhost:8000"))
    http_timeout_s: float = float(os.getenv("HTTP_TIMEOUT_S", "10.0"))
    default_algorithm: str = os.getenv("DEFAULT_ALGORITHM", "FCFS")
    step_interval_ms: int = _int_env("STEP_INTERVAL_MS", 1000)
    step_interval_min_ms: int = _int_env("STEP_INTERVAL_MIN_MS", 100)
    step_interval_max_ms: int = _int_env("STEP_INTERVAL_MAX_MS", 2000)
    step_interval_delta_ms: int = _int_env("STEP_INTERVAL_DELTA_MS", 200)
    strict_ordering: bool = _bool_env("STRICT_ORDERING", False)
    session_salt: str = os.getenv("SESSION_SALT", "")
    viewer_host: str = os.getenv("VIEWER_HOST", "0.0.0.0")
    viewer_port: int = _int_env("VIEWER_PORT", 8080)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
