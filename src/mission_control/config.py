"""Runtime configuration for the job orchestration engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

KNOWN_ENGINES = ("claude", "gemini", "openai", "shell")
LLM_ENGINES = ("claude", "gemini", "openai")

_ENVELOPE = "{python} -m mission_control.orchestrator.engine.envelope --"

DEFAULT_COMMAND_TEMPLATES = {
    "claude": f"{_ENVELOPE} claude -p --model {{model}} --permission-mode dontAsk -- {{prompt}}",
    "gemini": f"{_ENVELOPE} gemini --model {{model}} --approval-mode auto_edit --prompt {{prompt}}",
    "openai": f"{_ENVELOPE} codex exec --model {{model}} {{prompt}}",
    "shell": f"{_ENVELOPE} sh -c {{command}}",
}
DEFAULT_ENGINE_MODELS = {
    "claude": "sonnet",
    "gemini": "gemini-2.5-pro",
    "openai": "gpt-5-codex",
    "shell": "",
}
TEMPLATE_INPUT_PLACEHOLDERS = ("{prompt}", "{prompt_file}", "{command}")


@dataclass(slots=True)
class EngineSettings:
    """Subprocess engine settings."""

    primary_engine: str = "claude"
    command_templates: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMMAND_TEMPLATES),
    )
    models: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENGINE_MODELS))
    timeout_seconds: int = 1_800
    human_intervention_exit_code: int = 20
    transient_exit_codes: tuple[int, ...] = (137, 143)
    workdir_root: Path = Path(".mission_control/runs")


@dataclass(slots=True)
class SchedulerSettings:
    """Poll loop settings."""

    base_interval_seconds: float = 30.0
    max_backoff_seconds: float = 300.0
    health_url: str | None = None
    health_timeout_seconds: float = 3.0
    parallel_cap: int = 5
    default_concurrency: int = 2
    runner_id: str = field(default_factory=lambda: f"runner-{os.getpid()}")


@dataclass(slots=True)
class HealthSettings:
    """Stalled-job, auto-retry and agent auto-pause thresholds."""

    stalled_after_minutes: int = 10
    auto_retry_enabled: bool = True
    auto_retry_limit: int = 3
    agent_pause_failures: int = 3


@dataclass(slots=True)
class AssistantSettings:
    """Chat boundary settings."""

    command_template: str = "claude -p --model {model} -- {prompt}"
    fast_model: str = "haiku"
    deep_model: str = "sonnet"
    timeout_seconds: int = 180


@dataclass(slots=True)
class ApiSettings:
    """HTTP boundary settings."""

    runner_token: str | None = None
    host: str = "127.0.0.1"
    port: int = 8787


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".mission_control.db")
    sqlite_busy_timeout_ms: int = 5_000
    engine: EngineSettings = field(default_factory=EngineSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    assistant: AssistantSettings = field(default_factory=AssistantSettings)
    api: ApiSettings = field(default_factory=ApiSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        command_templates = {
            engine: os.getenv(
                f"MISSION_CONTROL_ENGINE_{engine.upper()}_TEMPLATE",
                DEFAULT_COMMAND_TEMPLATES[engine],
            )
            for engine in KNOWN_ENGINES
        }
        models = {
            engine: os.getenv(
                f"MISSION_CONTROL_ENGINE_{engine.upper()}_MODEL",
                DEFAULT_ENGINE_MODELS[engine],
            )
            for engine in KNOWN_ENGINES
        }
        return cls(
            db_path=db_path or Path(os.getenv("MISSION_CONTROL_DB_PATH", ".mission_control.db")),
            sqlite_busy_timeout_ms=int(os.getenv("MISSION_CONTROL_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            engine=EngineSettings(
                primary_engine=os.getenv("MISSION_CONTROL_ENGINE_PRIMARY", "claude")
                .strip()
                .lower(),
                command_templates=command_templates,
                models=models,
                timeout_seconds=int(os.getenv("MISSION_CONTROL_ENGINE_TIMEOUT_SECONDS", "1800")),
                human_intervention_exit_code=int(
                    os.getenv("MISSION_CONTROL_HUMAN_EXIT_CODE", "20"),
                ),
                transient_exit_codes=_env_int_tuple(
                    "MISSION_CONTROL_TRANSIENT_EXIT_CODES",
                    default=(137, 143),
                ),
                workdir_root=Path(
                    os.getenv("MISSION_CONTROL_WORKDIR_ROOT", ".mission_control/runs"),
                ),
            ),
            scheduler=SchedulerSettings(
                base_interval_seconds=float(
                    os.getenv("MISSION_CONTROL_SCHEDULER_BASE_INTERVAL_SECONDS", "30"),
                ),
                max_backoff_seconds=float(
                    os.getenv("MISSION_CONTROL_SCHEDULER_MAX_BACKOFF_SECONDS", "300"),
                ),
                health_url=os.getenv("MISSION_CONTROL_SCHEDULER_HEALTH_URL") or None,
                health_timeout_seconds=float(
                    os.getenv("MISSION_CONTROL_SCHEDULER_HEALTH_TIMEOUT_SECONDS", "3"),
                ),
                parallel_cap=int(os.getenv("MISSION_CONTROL_SCHEDULER_PARALLEL_CAP", "5")),
                default_concurrency=int(
                    os.getenv("MISSION_CONTROL_SCHEDULER_DEFAULT_CONCURRENCY", "2"),
                ),
                runner_id=os.getenv("MISSION_CONTROL_RUNNER_ID", f"runner-{os.getpid()}"),
            ),
            health=HealthSettings(
                stalled_after_minutes=int(
                    os.getenv("MISSION_CONTROL_STALLED_AFTER_MINUTES", "10"),
                ),
                auto_retry_enabled=_env_bool("MISSION_CONTROL_AUTO_RETRY", default=True),
                auto_retry_limit=int(os.getenv("MISSION_CONTROL_AUTO_RETRY_LIMIT", "3")),
                agent_pause_failures=int(
                    os.getenv("MISSION_CONTROL_AGENT_PAUSE_FAILURES", "3"),
                ),
            ),
            assistant=AssistantSettings(
                command_template=os.getenv(
                    "MISSION_CONTROL_CHAT_TEMPLATE",
                    "claude -p --model {model} -- {prompt}",
                ),
                fast_model=os.getenv("MISSION_CONTROL_CHAT_FAST_MODEL", "haiku"),
                deep_model=os.getenv("MISSION_CONTROL_CHAT_DEEP_MODEL", "sonnet"),
                timeout_seconds=int(os.getenv("MISSION_CONTROL_CHAT_TIMEOUT_SECONDS", "180")),
            ),
            api=ApiSettings(
                runner_token=os.getenv("MISSION_CONTROL_RUNNER_TOKEN") or None,
                host=os.getenv("MISSION_CONTROL_API_HOST", "127.0.0.1"),
                port=int(os.getenv("MISSION_CONTROL_API_PORT", "8787")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error naming the offending variable."""

        if self.engine.primary_engine not in LLM_ENGINES:
            raise ValueError(
                "MISSION_CONTROL_ENGINE_PRIMARY must be one of "
                f"{', '.join(LLM_ENGINES)}, got {self.engine.primary_engine!r}.",
            )
        for engine in KNOWN_ENGINES:
            template = self.engine.command_templates.get(engine, "").strip()
            variable = f"MISSION_CONTROL_ENGINE_{engine.upper()}_TEMPLATE"
            if not template:
                raise ValueError(f"{variable} must not be empty.")
            if not any(placeholder in template for placeholder in TEMPLATE_INPUT_PLACEHOLDERS):
                raise ValueError(
                    f"{variable} must include one of {', '.join(TEMPLATE_INPUT_PLACEHOLDERS)}.",
                )
        if self.engine.timeout_seconds <= 0:
            raise ValueError("MISSION_CONTROL_ENGINE_TIMEOUT_SECONDS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("MISSION_CONTROL_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.scheduler.base_interval_seconds <= 0:
            raise ValueError("MISSION_CONTROL_SCHEDULER_BASE_INTERVAL_SECONDS must be > 0.")
        if self.scheduler.max_backoff_seconds < self.scheduler.base_interval_seconds:
            raise ValueError(
                "MISSION_CONTROL_SCHEDULER_MAX_BACKOFF_SECONDS must be >= the base interval.",
            )
        if self.scheduler.parallel_cap < 1:
            raise ValueError("MISSION_CONTROL_SCHEDULER_PARALLEL_CAP must be >= 1.")
        if self.scheduler.default_concurrency < 1:
            raise ValueError("MISSION_CONTROL_SCHEDULER_DEFAULT_CONCURRENCY must be >= 1.")
        if self.health.stalled_after_minutes <= 0:
            raise ValueError("MISSION_CONTROL_STALLED_AFTER_MINUTES must be > 0.")
        if self.health.auto_retry_limit < 0:
            raise ValueError("MISSION_CONTROL_AUTO_RETRY_LIMIT must be >= 0.")
        if self.health.agent_pause_failures < 1:
            raise ValueError("MISSION_CONTROL_AGENT_PAUSE_FAILURES must be >= 1.")
        if not 0 < self.api.port < 65_536:
            raise ValueError(f"MISSION_CONTROL_API_PORT out of range: {self.api.port}")


def _env_int_tuple(name: str, *, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    values: list[int] = []
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError as error:
            raise ValueError(f"Invalid integer in {name}: {token!r}") from error
    return tuple(values)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
