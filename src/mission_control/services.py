"""Wiring of repositories and services over one SQLite database."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from mission_control.assistant.actions import ActionExecutor
from mission_control.assistant.repository import AssistantRepository
from mission_control.assistant.streaming import AssistantService, ChatCall
from mission_control.boards.repository import BoardRepository
from mission_control.boards.service import ChallengeBoardService
from mission_control.config import Settings
from mission_control.orchestrator.engine import CliJobEngine, JobEngine
from mission_control.orchestrator.health import HealthProbe
from mission_control.orchestrator.notifications import NotificationRepository
from mission_control.orchestrator.post_execution import PostExecutionRouter
from mission_control.orchestrator.repository import JobRepository
from mission_control.orchestrator.runner import JobRunner
from mission_control.org.agent_router import AgentRouter
from mission_control.org.decomposer import Decomposer
from mission_control.org.prompt_composer import PromptComposer
from mission_control.org.quality_scorer import QualityScorer
from mission_control.org.repository import OrgRepository


@dataclass(slots=True)
class Services:
    """Everything a CLI command or API request needs."""

    settings: Settings
    jobs: JobRepository
    org: OrgRepository
    boards_repo: BoardRepository
    notifications: NotificationRepository
    assistant_repo: AssistantRepository
    router: AgentRouter
    composer: PromptComposer
    decomposer: Decomposer
    scorer: QualityScorer
    boards: ChallengeBoardService
    post_execution: PostExecutionRouter
    runner: JobRunner
    health: HealthProbe
    assistant: AssistantService

    def close(self) -> None:
        for repository in (
            self.jobs,
            self.org,
            self.boards_repo,
            self.notifications,
            self.assistant_repo,
        ):
            repository.close()


def build_services(
    settings: Settings,
    *,
    engine: JobEngine | None = None,
    chat: ChatCall | None = None,
) -> Services:
    """Create the service graph and apply migrations."""

    busy = settings.sqlite_busy_timeout_ms
    primary = settings.engine.primary_engine
    jobs = JobRepository(settings.db_path, busy_timeout_ms=busy)
    jobs.init_schema()
    org = OrgRepository(settings.db_path, busy_timeout_ms=busy)
    boards_repo = BoardRepository(settings.db_path, busy_timeout_ms=busy)
    notifications = NotificationRepository(settings.db_path, busy_timeout_ms=busy)
    assistant_repo = AssistantRepository(settings.db_path, busy_timeout_ms=busy)

    router = AgentRouter(jobs=jobs, org=org, primary_engine=primary)
    composer = PromptComposer(jobs=jobs, org=org)
    decomposer = Decomposer(jobs=jobs, org=org, primary_engine=primary)
    scorer = QualityScorer(jobs=jobs, org=org)
    boards = ChallengeBoardService(boards=boards_repo, jobs=jobs, org=org, primary_engine=primary)
    post_execution = PostExecutionRouter(
        jobs=jobs,
        org=org,
        notifications=notifications,
        boards=boards,
        scorer=scorer,
        decomposer=decomposer,
        primary_engine=primary,
    )
    runner = JobRunner(
        jobs=jobs,
        org=org,
        notifications=notifications,
        router=router,
        composer=composer,
        post_execution=post_execution,
        engine=engine or CliJobEngine(),
        settings=settings.engine,
        runner_id=settings.scheduler.runner_id,
    )
    executor = ActionExecutor(
        jobs=jobs,
        org=org,
        boards=boards,
        assistant=assistant_repo,
        primary_engine=primary,
    )
    return Services(
        settings=settings,
        jobs=jobs,
        org=org,
        boards_repo=boards_repo,
        notifications=notifications,
        assistant_repo=assistant_repo,
        router=router,
        composer=composer,
        decomposer=decomposer,
        scorer=scorer,
        boards=boards,
        post_execution=post_execution,
        runner=runner,
        health=HealthProbe(
            jobs=jobs,
            org=org,
            notifications=notifications,
            settings=settings.health,
        ),
        assistant=AssistantService(
            jobs=jobs,
            org=org,
            boards=boards,
            notifications=notifications,
            assistant=assistant_repo,
            executor=executor,
            settings=settings.assistant,
            chat=chat,
        ),
    )


@contextmanager
def open_services(settings: Settings) -> Iterator[Services]:
    services = build_services(settings)
    try:
        yield services
    finally:
        services.close()
