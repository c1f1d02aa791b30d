"""Periodic health probe: stalled jobs, transient auto-retry, agent auto-pause."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from mission_control.config import HealthSettings
from mission_control.orchestrator.models import (
    FailureClass,
    NotificationCategory,
    NotificationCreate,
    NotificationPriority,
)
from mission_control.orchestrator.notifications import NotificationRepository
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.models import AgentStatus
from mission_control.org.repository import OrgRepository
from mission_control.storage.common import utc_now

logger = logging.getLogger(__name__)

AUTO_RETRY_CLASSES = (FailureClass.ENGINE_TRANSIENT,)
AUTO_RETRY_BATCH = 5


@dataclass(slots=True)
class HealthReport:
    stalled_job_ids: list[str] = field(default_factory=list)
    alerted_job_ids: list[str] = field(default_factory=list)
    retried_job_ids: list[str] = field(default_factory=list)
    paused_agent_ids: list[str] = field(default_factory=list)

    def lines(self) -> list[str]:
        return [
            "Health check: "
            f"stalled={len(self.stalled_job_ids)} alerted={len(self.alerted_job_ids)} "
            f"retried={len(self.retried_job_ids)} paused_agents={len(self.paused_agent_ids)}",
            *(f"  stalled job={job_id}" for job_id in self.stalled_job_ids),
            *(f"  requeued job={job_id}" for job_id in self.retried_job_ids),
            *(f"  paused agent={agent_id}" for agent_id in self.paused_agent_ids),
        ]


class HealthProbe:
    """Surfaces problems; only transient failures are ever recovered automatically."""

    def __init__(
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        notifications: NotificationRepository,
        settings: HealthSettings,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.notifications = notifications
        self.settings = settings

    def check(self) -> HealthReport:
        report = HealthReport()
        self._check_stalled(report)
        if self.settings.auto_retry_enabled:
            self._auto_retry(report)
        self._pause_failing_agents(report)
        return report

    def _check_stalled(self, report: HealthReport) -> None:
        cutoff = utc_now() - timedelta(minutes=self.settings.stalled_after_minutes)
        for job in self.jobs.list_stalled_jobs(started_before=cutoff):
            report.stalled_job_ids.append(job.job_id)
            if self.notifications.has_open(
                category=NotificationCategory.ALERT,
                source_id=job.job_id,
            ):
                continue
            self.notifications.emit(
                NotificationCreate(
                    title=f"Stalled job: {job.title}",
                    body=(
                        f"Running for more than {self.settings.stalled_after_minutes} minutes. "
                        f"Requeue with `mission-control jobs requeue {job.job_id} --force-stalled`."
                    ),
                    category=NotificationCategory.ALERT,
                    priority=NotificationPriority.HIGH,
                    source_type="job",
                    source_id=job.job_id,
                ),
            )
            report.alerted_job_ids.append(job.job_id)
            logger.warning("stalled job=%s started_at=%s", job.job_id, job.started_at)

    def _auto_retry(self, report: HealthReport) -> None:
        candidates = self.jobs.list_auto_retry_candidates(
            failure_classes=AUTO_RETRY_CLASSES,
            max_retry_count=self.settings.auto_retry_limit,
            limit=AUTO_RETRY_BATCH,
        )
        for job in candidates:
            if not self.jobs.requeue_job(
                job_id=job.job_id,
                max_retry_count=self.settings.auto_retry_limit,
                event_type="auto_retried",
            ):
                continue
            report.retried_job_ids.append(job.job_id)
            self.notifications.emit(
                NotificationCreate(
                    title=f"Auto-retry: {job.title}",
                    body=f"Transient failure, retry {job.retry_count + 1}/"
                    f"{self.settings.auto_retry_limit}.",
                    category=NotificationCategory.INFO,
                    priority=NotificationPriority.LOW,
                    source_type="job",
                    source_id=job.job_id,
                ),
            )
            logger.info("auto-retried job=%s retry=%d", job.job_id, job.retry_count + 1)

    def _pause_failing_agents(self, report: HealthReport) -> None:
        for agent in self.org.list_agents(available_only=True):
            if agent.consecutive_failures < self.settings.agent_pause_failures:
                continue
            if not self.org.set_agent_status(agent_id=agent.agent_id, status=AgentStatus.PAUSED):
                continue
            report.paused_agent_ids.append(agent.agent_id)
            self.notifications.emit(
                NotificationCreate(
                    title=f"Agent paused: {agent.name}",
                    body=(
                        f"{agent.consecutive_failures} consecutive QA failures. "
                        "Review recent output before re-activating."
                    ),
                    category=NotificationCategory.ALERT,
                    priority=NotificationPriority.HIGH,
                    source_type="agent",
                    source_id=agent.agent_id,
                ),
            )
            logger.warning(
                "agent-paused agent=%s failures=%d",
                agent.name,
                agent.consecutive_failures,
            )
