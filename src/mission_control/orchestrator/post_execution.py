"""Route a finished job to its follow-up: QA review, scoring, decomposition, fan-in."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mission_control.boards.service import ChallengeBoardService
from mission_control.orchestrator.models import (
    FAN_IN_READY_STATUSES,
    JobCreate,
    JobSource,
    JobStatus,
    JobType,
    JobView,
    NotificationCategory,
    NotificationCreate,
    NotificationPriority,
)
from mission_control.orchestrator.notifications import NotificationRepository
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.decomposer import Decomposer
from mission_control.org.models import AgentRole
from mission_control.org.quality_scorer import QualityScorer
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

SMOKE_TEST_TITLE = "__SMOKE_TEST"
SHELL_ENGINE = "shell"
REVIEW_PRIORITY = 2
INTEGRATION_PRIORITY = 3

REVIEW_INSTRUCTIONS = """## QA Review

Score the work above on five dimensions from 1 to 10:
completeness, accuracy, actionability, revenue_relevance, evidence.

Respond with one JSON object and nothing else:
{"completeness": 7, "accuracy": 8, "actionability": 6, "revenue_relevance": 5, "evidence": 7, \
"feedback": "What to improve next time."}"""


@dataclass(slots=True)
class PostExecutionOutcome:
    """What the router did with one finished job."""

    action: str
    review_job_id: str | None = None
    integration_job_id: str | None = None
    child_job_ids: list[str] = field(default_factory=list)


def skips_review(job: JobView) -> bool:
    """Shell tasks and smoke tests end `done` without QA."""

    return job.engine == SHELL_ENGINE or job.title.strip() == SMOKE_TEST_TITLE


def needs_review(job: JobView) -> bool:
    """True when a successful run of this job is followed by a QA review."""

    return job.job_type == JobType.TASK and job.board_id is None and not skips_review(job)


def build_review_prompt(job: JobView, result: str | None) -> str:
    parts = [
        f"## Job Under Review: {job.title}",
        "",
        "### Original Instructions",
        job.prompt_text or job.title,
        "",
        "### Output",
        result or "(no output)",
        "",
        REVIEW_INSTRUCTIONS,
    ]
    return "\n".join(parts)


class PostExecutionRouter:
    """Follow-up work for a finished job, keyed on its type."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        notifications: NotificationRepository,
        boards: ChallengeBoardService,
        scorer: QualityScorer,
        decomposer: Decomposer,
        primary_engine: str,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.notifications = notifications
        self.boards = boards
        self.scorer = scorer
        self.decomposer = decomposer
        self.primary_engine = primary_engine

    def handle(self, job: JobView, *, result: str | None) -> PostExecutionOutcome:
        """Dispatch on a job that the runner has just finished."""

        succeeded = job.status in FAN_IN_READY_STATUSES
        if job.board_id is not None:
            return self._handle_challenger(job, result=result)
        if not succeeded:
            logger.info("post-exec-failed job=%s type=%s", job.job_id, job.job_type.value)
            return PostExecutionOutcome(action="none")

        if job.job_type == JobType.REVIEW:
            self.scorer.score(review_job=job, result=result)
            return PostExecutionOutcome(action="scored")
        if job.job_type == JobType.DECOMPOSITION:
            children = self.decomposer.apply(decomposition_job=job, result=result)
            return PostExecutionOutcome(
                action="decomposed",
                child_job_ids=[child.job_id for child in children],
            )
        if job.job_type == JobType.INTEGRATION:
            logger.info("integration-complete job=%s parent=%s", job.job_id, job.parent_job_id)
            return PostExecutionOutcome(action="integrated")

        outcome = PostExecutionOutcome(action="qa-skipped")
        if skips_review(job):
            logger.info("qa-skipped job=%s", job.job_id)
        else:
            review = self._enqueue_review(job, result=result)
            outcome.action = "review-queued"
            outcome.review_job_id = review.job_id
        integration = self._maybe_integrate(job)
        if integration is not None:
            outcome.integration_job_id = integration.job_id
        return outcome

    def _enqueue_review(self, job: JobView, *, result: str | None) -> JobView:
        qa_agent = next(
            (
                agent
                for agent in self.org.list_agents(available_only=True)
                if agent.role == AgentRole.QA.value
            ),
            None,
        )
        review = self.jobs.enqueue_job(
            JobCreate(
                title=f"Review: {job.title}",
                engine=self.primary_engine,
                prompt_text=build_review_prompt(job, result),
                job_type=JobType.REVIEW,
                source=JobSource.ORCHESTRATOR,
                priority=REVIEW_PRIORITY,
                parent_job_id=job.job_id,
                agent_id=qa_agent.agent_id if qa_agent is not None else None,
                project_id=job.project_id,
            ),
        )
        logger.info("review-queued job=%s review=%s", job.job_id, review.job_id)
        return review

    def _maybe_integrate(self, job: JobView) -> JobView | None:
        if job.parent_job_id is None:
            return None
        siblings = self.jobs.list_fan_in_siblings(parent_job_id=job.parent_job_id)
        if not siblings or any(item.status not in FAN_IN_READY_STATUSES for item in siblings):
            return None
        parent = self.jobs.get_job(job_id=job.parent_job_id)
        if parent is None:
            return None

        summary = "\n".join(f"- {item.title} ({item.status.value})" for item in siblings)
        integration = self.jobs.enqueue_integration_job(
            JobCreate(
                title=f"Integrate: {parent.title}",
                engine=self.primary_engine,
                prompt_text=(
                    f"All sub-tasks of '{parent.title}' have finished.\n\n"
                    f"{summary}\n\n"
                    "Combine their results into one coherent deliverable."
                ),
                job_type=JobType.INTEGRATION,
                source=JobSource.ORCHESTRATOR,
                priority=INTEGRATION_PRIORITY,
                parent_job_id=parent.job_id,
                project_id=parent.project_id,
            ),
        )
        if integration is not None:
            logger.info(
                "integration-queued parent=%s integration=%s",
                parent.job_id,
                integration.job_id,
            )
        return integration

    def _handle_challenger(self, job: JobView, *, result: str | None) -> PostExecutionOutcome:
        board_id = job.board_id
        if board_id is None:
            raise RuntimeError(f"Job is not a challenger job: {job.job_id}")
        if job.status == JobStatus.DONE:
            self.boards.record_job_result(job=job, result=result)
        if not self.boards.deliberation_complete(board_id=board_id):
            return PostExecutionOutcome(action="board-response")

        summary = self.boards.synthesise(board_id=board_id)
        if summary is None:
            logger.warning("board-not-synthesised board=%s", board_id)
            return PostExecutionOutcome(action="board-response")
        if self.notifications.has_open(
            category=NotificationCategory.DECISION_NEEDED,
            source_id=board_id,
        ):
            return PostExecutionOutcome(action="board-synthesised")
        top = summary.board.options[0] if summary.board.options else None
        self.notifications.emit(
            NotificationCreate(
                title=f"Decision needed: {summary.board.decision_title}",
                body=(
                    f"{len(summary.responses)} challengers responded."
                    + (
                        f" Leading option {top.label}: {top.summary}"
                        if top is not None and top.recommended_by
                        else ""
                    )
                ),
                category=NotificationCategory.DECISION_NEEDED,
                priority=NotificationPriority.HIGH,
                source_type="challenge_board",
                source_id=board_id,
            ),
        )
        return PostExecutionOutcome(action="board-synthesised")
