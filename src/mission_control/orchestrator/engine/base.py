"""Engine interface for job execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class EngineRunRequest:
    """Inputs required to execute one claimed job."""

    job_id: str
    engine: str
    command_template: str
    model: str
    prompt: str
    workdir: Path
    timeout_seconds: int
    command: str | None = None
    mcp_servers: list[str] = field(default_factory=list)
    shutdown_requested: Callable[[], bool] | None = None
    graceful_shutdown_seconds: int | None = None


@dataclass(slots=True)
class EngineRunResult:
    """Execution outcome from the engine subprocess."""

    exit_code: int
    timed_out: bool
    stdout_path: Path
    stderr_path: Path
    prompt_path: Path
    duration_ms: int = 0


class JobEngine(Protocol):
    """Protocol implemented by engine runners."""

    def run(self, request: EngineRunRequest) -> EngineRunResult:
        """Run a job and return execution metadata."""
