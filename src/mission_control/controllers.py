"""Controllers for CLI commands: parse nothing, format everything as lines."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mission_control.assistant.tier_router import route_message
from mission_control.boards.models import BoardStatus
from mission_control.config import KNOWN_ENGINES, Settings
from mission_control.orchestrator.models import (
    JobCreate,
    JobSource,
    JobStatus,
    NotificationStatus,
)
from mission_control.orchestrator.repository import (
    MASTER_INTENT_KEY,
    MAX_CONCURRENCY_KEY,
    PARALLEL_JOBS_KEY,
    PAUSE_ALL_KEY,
)
from mission_control.orchestrator.runner import RunOutcome
from mission_control.orchestrator.scheduler import HttpHealthCheck, Scheduler
from mission_control.org.models import AgentCreate
from mission_control.org.project_spec import parse_master_intent, parse_project_spec
from mission_control.services import Services, open_services


@dataclass(slots=True)
class JobEnqueueCommand:
    db_path: Path | None
    title: str
    prompt: str | None
    command: str | None
    engine: str | None
    priority: int
    parent_job_id: str | None
    agent_name: str | None
    project_name: str | None
    mcp_servers: tuple[str, ...] = ()


@dataclass(slots=True)
class JobListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobRefCommand:
    """CLI input for commands acting on one job."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobRequeueCommand:
    db_path: Path | None
    job_id: str
    force_stalled: bool


@dataclass(slots=True)
class JobApproveCommand:
    db_path: Path | None
    job_id: str
    note: str | None


@dataclass(slots=True)
class JobRunCommand:
    db_path: Path | None
    parallel: int


@dataclass(slots=True)
class SchedulerRunCommand:
    db_path: Path | None
    max_ticks: int | None


@dataclass(slots=True)
class SchedulerSettingCommand:
    db_path: Path | None
    value: int


@dataclass(slots=True)
class DbCommand:
    """CLI input for commands that only need the database."""

    db_path: Path | None


@dataclass(slots=True)
class AgentAddCommand:
    db_path: Path | None
    name: str
    role: str
    engine: str
    department: str | None
    model_id: str | None
    persona: str | None
    cost_tier: str


@dataclass(slots=True)
class SkillAddCommand:
    db_path: Path | None
    key: str
    usage_guidelines: str | None
    mcp_server_name: str | None


@dataclass(slots=True)
class SkillGrantCommand:
    db_path: Path | None
    agent_name: str
    skill_key: str


@dataclass(slots=True)
class ProjectAddCommand:
    db_path: Path | None
    name: str
    description: str | None
    pm_agent_name: str | None
    revenue_target_monthly: float | None
    spec_file: Path | None


@dataclass(slots=True)
class MasterIntentCommand:
    db_path: Path | None
    intent_file: Path


@dataclass(slots=True)
class BoardCreateCommand:
    db_path: Path | None
    title: str
    context: str
    options: tuple[str, ...]
    challengers: tuple[str, ...]
    project_name: str | None


@dataclass(slots=True)
class BoardRefCommand:
    db_path: Path | None
    board_id: str


@dataclass(slots=True)
class BoardRecordCommand:
    db_path: Path | None
    board_id: str
    agent_name: str
    position: str
    argument: str


@dataclass(slots=True)
class BoardDecideCommand:
    db_path: Path | None
    board_id: str
    decision: str
    rationale: str | None


@dataclass(slots=True)
class NotificationListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class NotificationAckCommand:
    db_path: Path | None
    notification_id: str


class JobsCliController:
    """Queue operations: enqueue, inspect, human overrides, claim-and-run."""

    def enqueue(self, command: JobEnqueueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        engine = (command.engine or settings.engine.primary_engine).strip().lower()
        if engine not in KNOWN_ENGINES:
            raise ValueError(f"Unsupported engine: {engine!r}")
        with _services(settings) as services:
            agent_id = None
            if command.agent_name:
                agent = services.org.get_agent_by_name(name=command.agent_name)
                if agent is None:
                    raise ValueError(f"Unknown agent: {command.agent_name}")
                agent_id = agent.agent_id
            project_id = None
            if command.project_name:
                project = services.org.get_project_by_name(name=command.project_name)
                if project is None:
                    raise ValueError(f"Unknown project: {command.project_name}")
                project_id = project.project_id
            job = services.jobs.enqueue_job(
                JobCreate(
                    title=command.title,
                    engine=engine,
                    prompt_text=command.prompt,
                    command=command.command,
                    source=JobSource.CLI,
                    priority=command.priority,
                    parent_job_id=command.parent_job_id,
                    agent_id=agent_id,
                    project_id=project_id,
                    mcp_servers=command.mcp_servers,
                ),
            )
        return [
            f"Job enqueued: job_id={job.job_id} engine={job.engine} "
            f"priority={job.priority} status={job.status.value}",
        ]

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = _parse_status(command.status)
        with _services(settings) as services:
            jobs = services.jobs.list_jobs(status=status, limit=command.limit)
        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} type={job.job_type.value} status={job.status.value} "
                f"priority={job.priority} engine={job.engine} title={job.title}",
            )
        return lines

    def inspect(self, command: JobRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            details = services.jobs.get_job_details(job_id=command.job_id)
            reviews = services.jobs.list_reviews(job_id=command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        lines = [
            f"Job: {job.job_id}",
            f"Title: {job.title}",
            f"Type: {job.job_type.value}",
            f"Status: {job.status.value}",
            f"Engine: {job.engine}",
            f"Priority: {job.priority}",
            f"Agent: {job.agent_id or '-'}",
            f"Parent: {job.parent_job_id or '-'}",
            f"Retry count: {job.retry_count}",
            f"Failure class: {job.failure_class.value if job.failure_class else '-'}",
            f"Error: {job.last_error or '-'}",
            f"Quality score: {job.quality_score if job.quality_score is not None else '-'}",
            f"Evidence: {job.evidence_log_path or '-'} sha256={job.evidence_sha256 or '-'}",
            f"Children: {len(details.children)}",
            f"Artifacts: {len(details.artifacts)}",
            f"Reviews: {len(reviews)}",
            f"Events: {len(details.events)}",
        ]
        for child in details.children:
            lines.append(
                f"  child {child.job_id} type={child.job_type.value} status={child.status.value}",
            )
        for review in reviews:
            lines.append(
                f"  review total={review.total_score} passed={review.passed} "
                f"malformed={review.malformed} feedback={review.feedback}",
            )
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def requeue(self, command: JobRequeueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            changed = services.jobs.requeue_job(
                job_id=command.job_id,
                force_stalled=command.force_stalled,
            )
        if not changed:
            return [f"Job already queued: {command.job_id}"]
        return [f"Job re-queued: {command.job_id}"]

    def approve(self, command: JobApproveCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            job = services.jobs.force_approve(job_id=command.job_id, note=command.note)
        return [f"Job force-approved: {job.job_id} status={job.status.value}"]

    def decompose(self, command: JobRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            job = services.decomposer.request_decomposition(job_id=command.job_id)
        return [f"Decomposition queued: job_id={job.job_id} parent={job.parent_job_id}"]

    def run(self, command: JobRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            if command.parallel > 1:
                outcomes = services.runner.run_parallel(
                    max_jobs=min(command.parallel, settings.scheduler.parallel_cap),
                )
            else:
                outcomes = [services.runner.run_once()]
        return [_outcome_line(outcome) for outcome in outcomes]


class SchedulerCliController:
    """Scheduler loop and the operator switches it reads every tick."""

    def run(self, command: SchedulerRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        health_check = (
            HttpHealthCheck(
                settings.scheduler.health_url,
                timeout_seconds=settings.scheduler.health_timeout_seconds,
            )
            if settings.scheduler.health_url
            else None
        )
        try:
            with _services(settings) as services:
                scheduler = Scheduler(
                    jobs=services.jobs,
                    runner=services.runner,
                    settings=settings.scheduler,
                    health_check=health_check,
                )
                summary = scheduler.run_loop(max_ticks=command.max_ticks)
        finally:
            if health_check is not None:
                health_check.close()
        return [
            "Scheduler summary: "
            f"ticks={summary.ticks} claimed={summary.claimed} conflicts={summary.conflicts} "
            f"idle={summary.idle} skipped={summary.skipped}",
        ]

    def pause(self, command: DbCommand) -> list[str]:
        version = _set_setting(command.db_path, PAUSE_ALL_KEY, {"enabled": True})
        return [f"Scheduler paused (settings version {version})"]

    def resume(self, command: DbCommand) -> list[str]:
        version = _set_setting(command.db_path, PAUSE_ALL_KEY, {"enabled": False})
        return [f"Scheduler resumed (settings version {version})"]

    def set_concurrency(self, command: SchedulerSettingCommand) -> list[str]:
        if command.value < 1:
            raise ValueError("Concurrency limit must be >= 1.")
        version = _set_setting(command.db_path, MAX_CONCURRENCY_KEY, {"limit": command.value})
        return [f"Max concurrency set to {command.value} (settings version {version})"]

    def set_parallel(self, command: SchedulerSettingCommand) -> list[str]:
        if command.value < 1:
            raise ValueError("Parallel job count must be >= 1.")
        version = _set_setting(command.db_path, PARALLEL_JOBS_KEY, {"count": command.value})
        return [f"Parallel jobs set to {command.value} (settings version {version})"]

    def status(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            snapshot = services.jobs.read_runtime_settings(
                default_concurrency=settings.scheduler.default_concurrency,
            )
            counts = services.jobs.count_by_status()
        return [
            f"Paused: {snapshot.paused}",
            f"Max concurrency: {snapshot.max_concurrency}",
            f"Parallel jobs: {snapshot.parallel_jobs}",
            f"Settings version: {snapshot.version}",
            "Jobs: "
            + (", ".join(f"{key}={value}" for key, value in sorted(counts.items())) or "-"),
        ]

    def health(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            report = services.health.check()
        return report.lines()


class OrgCliController:
    """Agent, skill and project registry."""

    def add_agent(self, command: AgentAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            agent = services.org.add_agent(
                AgentCreate(
                    name=command.name,
                    role=command.role,
                    default_engine=command.engine,
                    department=command.department,
                    model_id=command.model_id,
                    system_prompt=command.persona,
                    cost_tier=command.cost_tier,
                ),
            )
        return [f"Agent added: {agent.name} agent_id={agent.agent_id} role={agent.role}"]

    def list_agents(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            agents = services.org.list_agents()
        lines = [f"Agents: {len(agents)}"]
        for agent in agents:
            lines.append(
                f"  {agent.name} role={agent.role} engine={agent.default_engine} "
                f"status={agent.status.value} cost={agent.cost_tier} "
                f"quality={agent.quality_score_avg:.1f} failures={agent.consecutive_failures} "
                f"completed={agent.total_jobs_completed}",
            )
        return lines

    def add_skill(self, command: SkillAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            skill = services.org.upsert_skill(
                key=command.key,
                usage_guidelines=command.usage_guidelines,
                mcp_server_name=command.mcp_server_name,
            )
        return [f"Skill saved: {skill.key} mcp={skill.mcp_server_name or '-'}"]

    def grant_skill(self, command: SkillGrantCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            agent = services.org.get_agent_by_name(name=command.agent_name)
            if agent is None:
                raise ValueError(f"Unknown agent: {command.agent_name}")
            skill = services.org.grant_skill(agent_id=agent.agent_id, skill_key=command.skill_key)
        return [f"Skill granted: {skill.key} -> {agent.name}"]

    def add_project(self, command: ProjectAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        spec: dict[str, object] = {}
        if command.spec_file is not None:
            spec = parse_project_spec(_read_json(command.spec_file)).model_dump()
        with _services(settings) as services:
            pm_agent_id = None
            if command.pm_agent_name:
                pm = services.org.get_agent_by_name(name=command.pm_agent_name)
                if pm is None:
                    raise ValueError(f"Unknown agent: {command.pm_agent_name}")
                pm_agent_id = pm.agent_id
            project = services.org.add_project(
                name=command.name,
                description=command.description,
                pm_agent_id=pm_agent_id,
                revenue_target_monthly=command.revenue_target_monthly,
                spec=spec,
            )
        return [f"Project added: {project.name} project_id={project.project_id}"]

    def list_projects(self, command: DbCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            projects = services.org.list_projects()
        lines = [f"Projects: {len(projects)}"]
        for project in projects:
            lines.append(
                f"  {project.name} project_id={project.project_id} "
                f"pm={project.pm_agent_id or '-'} description={project.description or '-'}",
            )
        return lines

    def set_intent(self, command: MasterIntentCommand) -> list[str]:
        intent = parse_master_intent(_read_json(command.intent_file))
        if intent is None:
            raise ValueError(f"Invalid master intent file: {command.intent_file}")
        version = _set_setting(command.db_path, MASTER_INTENT_KEY, intent.model_dump())
        return [f"Master intent updated (settings version {version})"]


class BoardsCliController:
    """Challenge Board lifecycle."""

    def create(self, command: BoardCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            project_id = None
            if command.project_name:
                project = services.org.get_project_by_name(name=command.project_name)
                if project is None:
                    raise ValueError(f"Unknown project: {command.project_name}")
                project_id = project.project_id
            created = services.boards.create(
                title=command.title,
                context=command.context,
                options=list(command.options),
                challengers=list(command.challengers),
                project_id=project_id,
                requested_by="cli",
            )
        return [
            f"Board created: board_id={created.board.board_id} "
            f"challenger_jobs={len(created.job_ids)}",
            *(f"  option {option.label}: {option.summary}" for option in created.board.options),
        ]

    def show(self, command: BoardRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            summary = services.boards.summary(board_id=command.board_id)
        return _board_lines(summary.board, summary.responses)

    def record(self, command: BoardRecordCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            response = services.boards.record_response(
                board_id=command.board_id,
                agent_name=command.agent_name,
                position=command.position,
                argument=command.argument,
            )
        return [f"Response recorded: {response.agent_name} -> {response.position or '-'}"]

    def synthesise(self, command: BoardRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            summary = services.boards.synthesise(board_id=command.board_id)
            if summary is None:
                current = services.boards.summary(board_id=command.board_id)
                if current.board.status == BoardStatus.DECIDED:
                    return [f"Board already decided: {command.board_id}"]
                return [f"No responses yet: {command.board_id}"]
        return _board_lines(summary.board, summary.responses)

    def decide(self, command: BoardDecideCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            board = services.boards.decide(
                board_id=command.board_id,
                decision=command.decision,
                rationale=command.rationale,
            )
        return [f"Board decided: {board.board_id} decision={board.final_decision}"]


class NotificationsCliController:
    def list_notifications(self, command: NotificationListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = NotificationStatus(command.status) if command.status else None
        with _services(settings) as services:
            notices = services.notifications.list_notifications(status=status, limit=command.limit)
        lines = [f"Notifications: {len(notices)}"]
        for notice in notices:
            lines.append(
                f"  {notice.notification_id} [{notice.category.value}/{notice.priority.value}] "
                f"{notice.status.value} {notice.title}",
            )
        return lines

    def acknowledge(self, command: NotificationAckCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            changed = services.notifications.acknowledge(notification_id=command.notification_id)
        if not changed:
            return [f"Notification already acknowledged: {command.notification_id}"]
        return [f"Notification acknowledged: {command.notification_id}"]


def classify_message(message: str, *, has_images: bool = False) -> list[str]:
    decision = route_message(message, has_images=has_images)
    topic = decision.quick_topic.value if decision.quick_topic is not None else "-"
    return [f"tier={decision.tier.value} rule={decision.rule} topic={topic}"]


@contextmanager
def _services(settings: Settings) -> Iterator[Services]:
    settings.validate()
    with open_services(settings) as services:
        yield services


def _set_setting(db_path: Path | None, key: str, value: dict[str, Any]) -> int:
    settings = Settings.from_env(db_path=db_path)
    with _services(settings) as services:
        return services.jobs.set_runtime_setting(key=key, value=value)


def _parse_status(raw: str | None) -> JobStatus | None:
    if raw is None:
        return None
    try:
        return JobStatus(raw)
    except ValueError as error:
        raise ValueError(f"Unsupported job status: {raw!r}") from error


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Invalid JSON in {path}: {error}") from error


def _outcome_line(outcome: RunOutcome) -> str:
    if outcome.job_id is None:
        return "No queued jobs."
    return (
        f"job={outcome.job_id} claim={outcome.claim_status.value} "
        f"status={outcome.status.value if outcome.status is not None else '-'} "
        f"post={outcome.post_action or '-'} error={outcome.error or '-'}"
    )


def _board_lines(board, responses) -> list[str]:  # noqa: ANN001
    lines = [
        f"Board: {board.board_id}",
        f"Title: {board.decision_title}",
        f"Status: {board.status.value}",
        f"Decision: {board.final_decision or '-'}",
    ]
    for option in board.options:
        lines.append(
            f"  {option.label}: {option.summary} "
            f"recommended_by={','.join(option.recommended_by) or '-'}",
        )
        lines.extend(f"    + {pro}" for pro in option.pros)
        lines.extend(f"    - {con}" for con in option.cons)
    lines.append(f"Responses: {len(responses)}")
    lines.extend(
        f"  {response.agent_name} ({response.perspective}) -> {response.position or '-'}"
        for response in responses
    )
    return lines
