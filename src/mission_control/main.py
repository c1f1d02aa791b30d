"""CLI entrypoint for mission-control."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from mission_control import __version__
from mission_control.config import KNOWN_ENGINES, Settings
from mission_control.controllers import (
    AgentAddCommand,
    BoardCreateCommand,
    BoardDecideCommand,
    BoardRecordCommand,
    BoardRefCommand,
    BoardsCliController,
    DbCommand,
    JobApproveCommand,
    JobEnqueueCommand,
    JobListCommand,
    JobRefCommand,
    JobRequeueCommand,
    JobRunCommand,
    JobsCliController,
    MasterIntentCommand,
    NotificationAckCommand,
    NotificationListCommand,
    NotificationsCliController,
    OrgCliController,
    ProjectAddCommand,
    SchedulerCliController,
    SchedulerRunCommand,
    SchedulerSettingCommand,
    SkillAddCommand,
    SkillGrantCommand,
    classify_message,
)
from mission_control.orchestrator.models import JobStatus, NotificationStatus
from mission_control.org.models import COST_TIER_RANK, AgentRole

click.rich_click.USE_MARKDOWN = True
JOBS_CONTROLLER = JobsCliController()
SCHEDULER_CONTROLLER = SchedulerCliController()
ORG_CONTROLLER = OrgCliController()
BOARDS_CONTROLLER = BoardsCliController()
NOTIFICATIONS_CONTROLLER = NotificationsCliController()

CommandT = TypeVar("CommandT")

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="mission-control")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
def mission_control(verbose: bool) -> None:
    """Mission control CLI: queue, run and review work for an AI agent workforce."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@mission_control.group()
def jobs() -> None:
    """Job queue commands."""


@jobs.command("enqueue")
@db_path_option
@click.option("--title", required=True, help="Short job title.")
@click.option("--prompt", default=None, help="Prompt text for LLM engines.")
@click.option("--command", "shell_command", default=None, help="Command for the shell engine.")
@click.option(
    "--engine",
    type=click.Choice(KNOWN_ENGINES, case_sensitive=False),
    default=None,
    help="Execution engine. Defaults to MISSION_CONTROL_ENGINE_PRIMARY.",
)
@click.option(
    "--priority",
    type=click.IntRange(min=1, max=10),
    default=5,
    show_default=True,
    help="1 is most urgent.",
)
@click.option("--parent", "parent_job_id", default=None, help="Parent job id for fan-out.")
@click.option("--agent", "agent_name", default=None, help="Pin the job to an agent by name.")
@click.option("--project", "project_name", default=None, help="Project name.")
@click.option(
    "--mcp-server",
    "mcp_servers",
    multiple=True,
    help="Extra MCP server for the job. Can be repeated.",
)
def jobs_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    title: str,
    prompt: str | None,
    shell_command: str | None,
    engine: str | None,
    priority: int,
    parent_job_id: str | None,
    agent_name: str | None,
    project_name: str | None,
    mcp_servers: tuple[str, ...],
) -> None:
    """Put a new job in the queue."""

    _emit_lines(
        _invoke(
            JOBS_CONTROLLER.enqueue,
            JobEnqueueCommand(
                db_path=db_path,
                title=title,
                prompt=prompt,
                command=shell_command,
                engine=engine.lower() if engine else None,
                priority=priority,
                parent_job_id=parent_job_id,
                agent_name=agent_name,
                project_name=project_name,
                mcp_servers=mcp_servers,
            ),
        ),
    )


@jobs.command("list")
@db_path_option
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus]),
    default=None,
    help="Filter by status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent jobs."""

    _emit_lines(
        _invoke(
            JOBS_CONTROLLER.list_jobs,
            JobListCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@jobs.command("inspect")
@db_path_option
@click.argument("job_id")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Show one job with its children, reviews and audit trail."""

    _emit_lines(_invoke(JOBS_CONTROLLER.inspect, JobRefCommand(db_path=db_path, job_id=job_id)))


@jobs.command("requeue")
@db_path_option
@click.argument("job_id")
@click.option(
    "--force-stalled",
    is_flag=True,
    help="Also requeue a job stuck in `running`.",
)
def jobs_requeue(db_path: Path | None, job_id: str, force_stalled: bool) -> None:
    """Put a failed, rejected or paused job back in the queue."""

    _emit_lines(
        _invoke(
            JOBS_CONTROLLER.requeue,
            JobRequeueCommand(db_path=db_path, job_id=job_id, force_stalled=force_stalled),
        ),
    )


@jobs.command("approve")
@db_path_option
@click.argument("job_id")
@click.option("--note", default=None, help="Reason recorded in the audit trail.")
def jobs_approve(db_path: Path | None, job_id: str, note: str | None) -> None:
    """Force-approve a job straight to `done`."""

    _emit_lines(
        _invoke(
            JOBS_CONTROLLER.approve,
            JobApproveCommand(db_path=db_path, job_id=job_id, note=note),
        ),
    )


@jobs.command("decompose")
@db_path_option
@click.argument("job_id")
def jobs_decompose(db_path: Path | None, job_id: str) -> None:
    """Queue a decomposition job that splits JOB_ID into sub-tasks."""

    _emit_lines(_invoke(JOBS_CONTROLLER.decompose, JobRefCommand(db_path=db_path, job_id=job_id)))


@jobs.command("run-once")
@db_path_option
@click.option(
    "--parallel",
    type=click.IntRange(min=1, max=5),
    default=1,
    show_default=True,
    help="Claim and run up to this many jobs concurrently.",
)
def jobs_run_once(db_path: Path | None, parallel: int) -> None:
    """Claim and execute queued jobs once, without the scheduler loop."""

    _emit_lines(_invoke(JOBS_CONTROLLER.run, JobRunCommand(db_path=db_path, parallel=parallel)))


@mission_control.group()
def scheduler() -> None:
    """Scheduler loop and operator switches."""


@scheduler.command("run")
@db_path_option
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after N ticks. Runs until SIGINT/SIGTERM when omitted.",
)
def scheduler_run(db_path: Path | None, max_ticks: int | None) -> None:
    """Run the scheduler poll loop."""

    _emit_lines(
        _invoke(
            SCHEDULER_CONTROLLER.run,
            SchedulerRunCommand(db_path=db_path, max_ticks=max_ticks),
        ),
    )


@scheduler.command("pause")
@db_path_option
def scheduler_pause(db_path: Path | None) -> None:
    """Stop claiming new jobs."""

    _emit_lines(_invoke(SCHEDULER_CONTROLLER.pause, DbCommand(db_path=db_path)))


@scheduler.command("resume")
@db_path_option
def scheduler_resume(db_path: Path | None) -> None:
    """Resume claiming jobs."""

    _emit_lines(_invoke(SCHEDULER_CONTROLLER.resume, DbCommand(db_path=db_path)))


@scheduler.command("set-concurrency")
@db_path_option
@click.argument("limit", type=click.IntRange(min=1))
def scheduler_set_concurrency(db_path: Path | None, limit: int) -> None:
    """Set the maximum number of running jobs."""

    _emit_lines(
        _invoke(
            SCHEDULER_CONTROLLER.set_concurrency,
            SchedulerSettingCommand(db_path=db_path, value=limit),
        ),
    )


@scheduler.command("set-parallel")
@db_path_option
@click.argument("count", type=click.IntRange(min=1))
def scheduler_set_parallel(db_path: Path | None, count: int) -> None:
    """Set how many jobs one tick may claim."""

    _emit_lines(
        _invoke(
            SCHEDULER_CONTROLLER.set_parallel,
            SchedulerSettingCommand(db_path=db_path, value=count),
        ),
    )


@scheduler.command("status")
@db_path_option
def scheduler_status(db_path: Path | None) -> None:
    """Show operator switches and job counts."""

    _emit_lines(_invoke(SCHEDULER_CONTROLLER.status, DbCommand(db_path=db_path)))


@mission_control.group()
def health() -> None:
    """Health monitoring."""


@health.command("check")
@db_path_option
def health_check(db_path: Path | None) -> None:
    """Alert on stalled jobs, auto-retry transient failures, pause failing agents."""

    _emit_lines(_invoke(SCHEDULER_CONTROLLER.health, DbCommand(db_path=db_path)))


@mission_control.group()
def agents() -> None:
    """Agent and skill registry."""


@agents.command("add")
@db_path_option
@click.argument("name")
@click.option(
    "--role",
    type=click.Choice([role.value for role in AgentRole]),
    required=True,
    help="Agent role.",
)
@click.option(
    "--engine",
    type=click.Choice(KNOWN_ENGINES, case_sensitive=False),
    default="claude",
    show_default=True,
    help="Default engine.",
)
@click.option("--department", default=None, help="Department name.")
@click.option("--model", "model_id", default=None, help="Model id used with the default engine.")
@click.option("--persona", default=None, help="Persona text prepended to prompts.")
@click.option(
    "--cost-tier",
    type=click.Choice(list(COST_TIER_RANK)),
    default="medium",
    show_default=True,
    help="Cost tier used as routing tie-breaker.",
)
def agents_add(  # noqa: PLR0913
    db_path: Path | None,
    name: str,
    role: str,
    engine: str,
    department: str | None,
    model_id: str | None,
    persona: str | None,
    cost_tier: str,
) -> None:
    """Register an agent."""

    _emit_lines(
        _invoke(
            ORG_CONTROLLER.add_agent,
            AgentAddCommand(
                db_path=db_path,
                name=name,
                role=role,
                engine=engine.lower(),
                department=department,
                model_id=model_id,
                persona=persona,
                cost_tier=cost_tier,
            ),
        ),
    )


@agents.command("list")
@db_path_option
def agents_list(db_path: Path | None) -> None:
    """List agents with their quality stats."""

    _emit_lines(_invoke(ORG_CONTROLLER.list_agents, DbCommand(db_path=db_path)))


@agents.command("add-skill")
@db_path_option
@click.argument("key")
@click.option("--guidelines", default=None, help="Usage guidelines shown in prompts.")
@click.option("--mcp-server", default=None, help="MCP server the skill needs.")
def agents_add_skill(
    db_path: Path | None,
    key: str,
    guidelines: str | None,
    mcp_server: str | None,
) -> None:
    """Create or update a skill."""

    _emit_lines(
        _invoke(
            ORG_CONTROLLER.add_skill,
            SkillAddCommand(
                db_path=db_path,
                key=key,
                usage_guidelines=guidelines,
                mcp_server_name=mcp_server,
            ),
        ),
    )


@agents.command("grant-skill")
@db_path_option
@click.argument("agent_name")
@click.argument("skill_key")
def agents_grant_skill(db_path: Path | None, agent_name: str, skill_key: str) -> None:
    """Allow AGENT_NAME to use SKILL_KEY."""

    _emit_lines(
        _invoke(
            ORG_CONTROLLER.grant_skill,
            SkillGrantCommand(db_path=db_path, agent_name=agent_name, skill_key=skill_key),
        ),
    )


@mission_control.group()
def projects() -> None:
    """Project registry and intent."""


@projects.command("add")
@db_path_option
@click.argument("name")
@click.option("--description", default=None, help="Project description.")
@click.option("--pm", "pm_agent_name", default=None, help="PM agent name.")
@click.option("--revenue-target", type=float, default=None, help="Monthly revenue target.")
@click.option(
    "--spec-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON project spec (objective, constraints, milestones, evaluation).",
)
def projects_add(  # noqa: PLR0913
    db_path: Path | None,
    name: str,
    description: str | None,
    pm_agent_name: str | None,
    revenue_target: float | None,
    spec_file: Path | None,
) -> None:
    """Register a project."""

    _emit_lines(
        _invoke(
            ORG_CONTROLLER.add_project,
            ProjectAddCommand(
                db_path=db_path,
                name=name,
                description=description,
                pm_agent_name=pm_agent_name,
                revenue_target_monthly=revenue_target,
                spec_file=spec_file,
            ),
        ),
    )


@projects.command("list")
@db_path_option
def projects_list(db_path: Path | None) -> None:
    """List projects."""

    _emit_lines(_invoke(ORG_CONTROLLER.list_projects, DbCommand(db_path=db_path)))


@projects.command("set-intent")
@db_path_option
@click.argument("intent_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
def projects_set_intent(db_path: Path | None, intent_file: Path) -> None:
    """Store the master intent injected into every agent prompt."""

    _emit_lines(
        _invoke(
            ORG_CONTROLLER.set_intent,
            MasterIntentCommand(db_path=db_path, intent_file=intent_file),
        ),
    )


@mission_control.group()
def boards() -> None:
    """Challenge Board commands."""


@boards.command("create")
@db_path_option
@click.option("--title", required=True, help="Decision to deliberate.")
@click.option("--context", default="", help="Background for the challengers.")
@click.option("--option", "options", multiple=True, required=True, help="Option. Can be repeated.")
@click.option(
    "--challenger",
    "challengers",
    multiple=True,
    help="Executive agent name. Can be repeated.",
)
@click.option("--project", "project_name", default=None, help="Project name.")
def boards_create(  # noqa: PLR0913
    db_path: Path | None,
    title: str,
    context: str,
    options: tuple[str, ...],
    challengers: tuple[str, ...],
    project_name: str | None,
) -> None:
    """Open a board and queue one challenger job per executive."""

    _emit_lines(
        _invoke(
            BOARDS_CONTROLLER.create,
            BoardCreateCommand(
                db_path=db_path,
                title=title,
                context=context,
                options=options,
                challengers=challengers,
                project_name=project_name,
            ),
        ),
    )


@boards.command("show")
@db_path_option
@click.argument("board_id")
def boards_show(db_path: Path | None, board_id: str) -> None:
    """Show a board with its options and responses."""

    _emit_lines(
        _invoke(BOARDS_CONTROLLER.show, BoardRefCommand(db_path=db_path, board_id=board_id)),
    )


@boards.command("record")
@db_path_option
@click.argument("board_id")
@click.option("--agent", "agent_name", required=True, help="Executive name.")
@click.option("--position", required=True, help="Recommended option label.")
@click.option("--argument", required=True, help="Reasoning.")
def boards_record(
    db_path: Path | None,
    board_id: str,
    agent_name: str,
    position: str,
    argument: str,
) -> None:
    """Record a challenger response by hand."""

    _emit_lines(
        _invoke(
            BOARDS_CONTROLLER.record,
            BoardRecordCommand(
                db_path=db_path,
                board_id=board_id,
                agent_name=agent_name,
                position=position,
                argument=argument,
            ),
        ),
    )


@boards.command("synthesise")
@db_path_option
@click.argument("board_id")
def boards_synthesise(db_path: Path | None, board_id: str) -> None:
    """Rank options by recommendations and open the board for a decision."""

    _emit_lines(
        _invoke(BOARDS_CONTROLLER.synthesise, BoardRefCommand(db_path=db_path, board_id=board_id)),
    )


@boards.command("decide")
@db_path_option
@click.argument("board_id")
@click.option("--decision", required=True, help="Chosen option or free text.")
@click.option("--rationale", default=None, help="Why.")
def boards_decide(
    db_path: Path | None,
    board_id: str,
    decision: str,
    rationale: str | None,
) -> None:
    """Record the final decision."""

    _emit_lines(
        _invoke(
            BOARDS_CONTROLLER.decide,
            BoardDecideCommand(
                db_path=db_path,
                board_id=board_id,
                decision=decision,
                rationale=rationale,
            ),
        ),
    )


@mission_control.group()
def notifications() -> None:
    """Operator notifications."""


@notifications.command("list")
@db_path_option
@click.option(
    "--status",
    type=click.Choice([status.value for status in NotificationStatus]),
    default=None,
    help="Filter by status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max notifications to print.",
)
def notifications_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List notifications, newest first."""

    _emit_lines(
        _invoke(
            NOTIFICATIONS_CONTROLLER.list_notifications,
            NotificationListCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@notifications.command("ack")
@db_path_option
@click.argument("notification_id")
def notifications_ack(db_path: Path | None, notification_id: str) -> None:
    """Acknowledge a notification."""

    _emit_lines(
        _invoke(
            NOTIFICATIONS_CONTROLLER.acknowledge,
            NotificationAckCommand(db_path=db_path, notification_id=notification_id),
        ),
    )


@mission_control.command("route")
@click.argument("message")
@click.option("--images", is_flag=True, help="Treat the message as carrying images.")
def route(message: str, images: bool) -> None:
    """Show which model tier a chat message would be routed to."""

    _emit_lines(classify_message(message, has_images=images))


@mission_control.command("serve")
@db_path_option
@click.option("--host", default=None, help="Bind host. Defaults to MISSION_CONTROL_API_HOST.")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65_535),
    default=None,
    help="Bind port. Defaults to MISSION_CONTROL_API_PORT.",
)
def serve(db_path: Path | None, host: str | None, port: int | None) -> None:
    """Serve the HTTP API."""

    import uvicorn  # noqa: PLC0415

    from mission_control.api.app import create_app  # noqa: PLC0415

    settings = Settings.from_env(db_path=db_path)
    try:
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    uvicorn.run(
        create_app(settings),
        host=host or settings.api.host,
        port=port or settings.api.port,
    )


def _invoke(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (RuntimeError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)
