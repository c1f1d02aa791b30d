"""Turn an orchestrator's JSON sub-task list into child jobs."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from mission_control.config import KNOWN_ENGINES
from mission_control.orchestrator.models import (
    JobCreate,
    JobSource,
    JobStatus,
    JobType,
    JobView,
)
from mission_control.orchestrator.output_parsing import (
    Malformed,
    Parsed,
    ParseResult,
    extract_json_array,
)
from mission_control.orchestrator.repository import MAX_PRIORITY, MIN_PRIORITY, JobRepository
from mission_control.org.models import AgentRole
from mission_control.org.prompt_composer import build_decomposition_prompt
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

DEFAULT_SUBTASK_PRIORITY = 5
DECOMPOSITION_PRIORITY = 2


@dataclass(slots=True, frozen=True)
class SubTask:
    title: str
    suggested_agent: str
    priority: int
    engine: str
    prompt_text: str


def parse_subtasks(text: str | None, *, primary_engine: str) -> ParseResult[list[SubTask]]:
    """Extract and validate sub-tasks; invalid entries are dropped silently."""

    extracted = extract_json_array(text)
    if isinstance(extracted, Malformed):
        return extracted
    subtasks = [
        subtask
        for item in extracted.value
        if (subtask := _coerce_subtask(item, primary_engine=primary_engine)) is not None
    ]
    return Parsed(subtasks)


class Decomposer:
    """Create child jobs from a finished decomposition job."""

    def __init__(self, *, jobs: JobRepository, org: OrgRepository, primary_engine: str) -> None:
        self.jobs = jobs
        self.org = org
        self.primary_engine = primary_engine

    def apply(self, *, decomposition_job: JobView, result: str | None) -> list[JobView]:
        """Enqueue one task per valid sub-task; malformed output creates nothing."""

        parsed = parse_subtasks(result, primary_engine=self.primary_engine)
        if isinstance(parsed, Malformed):
            logger.warning(
                "decomposition-malformed job=%s reason=%s",
                decomposition_job.job_id,
                parsed.reason,
            )
            return []
        if not parsed.value:
            logger.info("decomposition-empty job=%s", decomposition_job.job_id)
            return []

        parent_job_id = decomposition_job.parent_job_id or decomposition_job.job_id
        children = self.create_children(
            parent_job_id=parent_job_id,
            project_id=decomposition_job.project_id,
            subtasks=parsed.value,
        )
        logger.info(
            "decomposition-created job=%s sub_tasks=%d",
            decomposition_job.job_id,
            len(children),
        )
        return children

    def create_children(
        self,
        *,
        parent_job_id: str,
        project_id: str | None,
        subtasks: list[SubTask],
    ) -> list[JobView]:
        agent_ids = self.org.resolve_agent_ids([item.suggested_agent for item in subtasks])
        return [
            self.jobs.enqueue_job(
                JobCreate(
                    title=item.title,
                    engine=item.engine,
                    prompt_text=item.prompt_text,
                    command=item.prompt_text if item.engine == "shell" else None,
                    job_type=JobType.TASK,
                    source=JobSource.ORCHESTRATOR,
                    priority=item.priority,
                    parent_job_id=parent_job_id,
                    agent_id=agent_ids.get(item.suggested_agent.lower()),
                    project_id=project_id,
                ),
            )
            for item in subtasks
        ]

    def request_decomposition(self, *, job_id: str) -> JobView:
        """Ask the orchestrator agent to split an existing, settled job."""

        job = self.jobs.require_job(job_id=job_id)
        if job.status in {JobStatus.QUEUED, JobStatus.RUNNING}:
            raise RuntimeError(f"Job cannot be decomposed while status={job.status.value}")

        agents = self.org.list_agents(available_only=True)
        orchestrator = next(
            (agent for agent in agents if agent.role == AgentRole.ORCHESTRATOR.value),
            None,
        )
        project = (
            self.org.get_project(project_id=job.project_id) if job.project_id is not None else None
        )
        prompt = build_decomposition_prompt(
            job=job,
            agents=agents,
            project_name=project.name if project is not None else None,
            orchestrator_name=orchestrator.name
            if orchestrator is not None
            else "the Chief Orchestrator",
        )
        created = self.jobs.enqueue_job(
            JobCreate(
                title=f"Decompose: {job.title}",
                engine=self.primary_engine,
                prompt_text=prompt,
                job_type=JobType.DECOMPOSITION,
                source=JobSource.ORCHESTRATOR,
                priority=DECOMPOSITION_PRIORITY,
                parent_job_id=job.job_id,
                agent_id=orchestrator.agent_id if orchestrator is not None else None,
                project_id=job.project_id,
            ),
        )
        logger.info("decomposition-queued job=%s decomposition=%s", job_id, created.job_id)
        return created


def _coerce_subtask(item: object, *, primary_engine: str) -> SubTask | None:
    if not isinstance(item, dict):
        return None
    title = str(item.get("title") or "").strip()
    suggested_agent = str(item.get("suggested_agent") or "").strip()
    if not title or not suggested_agent:
        return None
    engine = str(item.get("estimated_engine") or primary_engine).strip().lower()
    if engine not in KNOWN_ENGINES:
        engine = primary_engine
    prompt_text = str(item.get("prompt_text") or "").strip() or title
    return SubTask(
        title=title,
        suggested_agent=suggested_agent,
        priority=_coerce_priority(item.get("priority")),
        engine=engine,
        prompt_text=prompt_text,
    )


def _coerce_priority(value: object) -> int:
    if isinstance(value, bool):
        return DEFAULT_SUBTASK_PRIORITY
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_SUBTASK_PRIORITY
    if math.isnan(number) or math.isinf(number):
        return DEFAULT_SUBTASK_PRIORITY
    return max(MIN_PRIORITY, min(MAX_PRIORITY, round(number)))
