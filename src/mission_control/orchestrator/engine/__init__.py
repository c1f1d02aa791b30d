"""Engine adapters that execute one claimed job as a subprocess."""

from mission_control.orchestrator.engine.base import EngineRunRequest, EngineRunResult, JobEngine
from mission_control.orchestrator.engine.cli_engine import CliJobEngine, EngineRunError

__all__ = [
    "CliJobEngine",
    "EngineRunError",
    "EngineRunRequest",
    "EngineRunResult",
    "JobEngine",
]
