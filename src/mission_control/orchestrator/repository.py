"""Persistent job store: enqueue, claim, finish, requeue and runtime settings."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from mission_control.config import KNOWN_ENGINES
from mission_control.orchestrator.models import (
    FORCE_APPROVABLE_STATUSES,
    REQUEUEABLE_STATUSES,
    ClaimOutcome,
    ClaimStatus,
    FailureClass,
    JobArtifactView,
    JobArtifactWrite,
    JobCreate,
    JobDetails,
    JobEventView,
    JobFinish,
    JobReviewView,
    JobReviewWrite,
    JobStatus,
    JobType,
    JobView,
    RuntimeSettingsSnapshot,
)
from mission_control.storage.alembic_runner import upgrade_head
from mission_control.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    dump_json,
    load_json_list,
    load_json_object,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import (
    Job,
    JobArtifact,
    JobEvent,
    JobReview,
    RuntimeSetting,
)

logger = logging.getLogger(__name__)

PAUSE_ALL_KEY = "pause_all"
MAX_CONCURRENCY_KEY = "max_concurrency"
PARALLEL_JOBS_KEY = "parallel_jobs"
MASTER_INTENT_KEY = "master_intent"

MIN_PRIORITY = 1
MAX_PRIORITY = 10


class JobRepository:
    """Job queue persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        upgrade_head(self.db_path)

    def enqueue_job(self, payload: JobCreate) -> JobView:
        """Create a queued job."""

        _validate_job_create(payload)
        now = utc_now()
        job_id = payload.job_id or str(uuid4())
        with Session(self.engine) as session:
            row = Job(
                job_id=job_id,
                title=payload.title.strip(),
                job_type=payload.job_type.value,
                engine=payload.engine,
                source=payload.source.value,
                status=JobStatus.QUEUED.value,
                priority=payload.priority,
                parent_job_id=payload.parent_job_id,
                agent_id=payload.agent_id,
                project_id=payload.project_id,
                board_id=payload.board_id,
                prompt_text=payload.prompt_text,
                command=payload.command,
                mcp_servers_json=dump_json(list(payload.mcp_servers))
                if payload.mcp_servers
                else None,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="enqueued",
                status_from=None,
                status_to=JobStatus.QUEUED,
                details={
                    "job_type": payload.job_type.value,
                    "engine": payload.engine,
                    "source": payload.source.value,
                    "priority": payload.priority,
                    "parent_job_id": payload.parent_job_id,
                },
            )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def enqueue_integration_job(self, payload: JobCreate) -> JobView | None:
        """Create the single integration job of a parent, or return None if one exists."""

        if payload.job_type != JobType.INTEGRATION or payload.parent_job_id is None:
            raise ValueError("Integration jobs need job_type=integration and a parent_job_id.")
        if self.find_integration_job(parent_job_id=payload.parent_job_id) is not None:
            return None
        try:
            return self.enqueue_job(payload)
        except IntegrityError:
            logger.info(
                "integration-exists parent=%s (lost concurrent insert)",
                payload.parent_job_id,
            )
            return None

    def find_integration_job(self, *, parent_job_id: str) -> JobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Job).where(
                    Job.parent_job_id == parent_job_id,
                    Job.job_type == JobType.INTEGRATION.value,
                ),
            ).first()
        return _to_job_view(row) if row is not None else None

    def claim_next_job(self, *, runner_id: str) -> ClaimOutcome:
        """Claim the most urgent, oldest queued job; never retries on conflict."""

        with Session(self.engine) as session:
            candidate_id = session.exec(
                select(Job.job_id)
                .where(Job.status == JobStatus.QUEUED.value)
                .order_by(col(Job.priority).asc(), col(Job.created_at).asc())
                .limit(1),
            ).first()
        if candidate_id is None:
            return ClaimOutcome(status=ClaimStatus.EMPTY)
        return self.claim_job(job_id=candidate_id, runner_id=runner_id)

    def claim_job(self, *, job_id: str, runner_id: str) -> ClaimOutcome:
        """Conditionally move one queued job to running."""

        now = to_db_datetime(utc_now())
        claim_token = str(uuid4())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Job)
                .where(
                    col(Job.job_id) == job_id,
                    col(Job.status) == JobStatus.QUEUED.value,
                )
                .values(
                    status=JobStatus.RUNNING.value,
                    started_at=now,
                    completed_at=None,
                    claim_token=claim_token,
                    runner_id=runner_id,
                    last_error=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                logger.info("claim-conflict job=%s runner=%s", job_id, runner_id)
                return ClaimOutcome(status=ClaimStatus.CONFLICT, job_id=job_id)

            self._add_event(
                session=session,
                job_id=job_id,
                event_type="claimed",
                status_from=JobStatus.QUEUED,
                status_to=JobStatus.RUNNING,
                details={"runner_id": runner_id, "claim_token": claim_token},
            )
            claimed = session.exec(select(Job).where(Job.job_id == job_id)).one()
            view = _to_job_view(claimed)
            session.commit()
        logger.info("claimed job=%s runner=%s", job_id, runner_id)
        return ClaimOutcome(status=ClaimStatus.CLAIMED, job=view, job_id=job_id)

    def assign_agent(self, *, job_id: str, agent_id: str, reason: str) -> bool:
        """Persist the routed agent unless another caller already assigned one."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Job)
                .where(col(Job.job_id) == job_id, col(Job.agent_id).is_(None))
                .values(agent_id=agent_id, updated_at=now),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="agent_assigned",
                status_from=None,
                status_to=None,
                details={"agent_id": agent_id, "reason": reason},
            )
            session.commit()
            return True

    def finish_job(self, finish: JobFinish) -> bool:
        """Write the terminal result of a claimed run if the claim is still current."""

        if finish.status in {JobStatus.QUEUED, JobStatus.RUNNING}:
            raise ValueError(f"Unsupported finish status: {finish.status.value}")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Job)
                .where(
                    col(Job.job_id) == finish.job_id,
                    col(Job.status) == JobStatus.RUNNING.value,
                    col(Job.claim_token) == finish.claim_token,
                )
                .values(
                    status=finish.status.value,
                    result=finish.result,
                    last_run_json=dump_json(finish.last_run),
                    last_error=finish.error,
                    failure_class=finish.failure_class.value
                    if finish.failure_class is not None
                    else None,
                    exit_code=finish.exit_code,
                    evidence_log_path=finish.evidence_log_path,
                    evidence_sha256=finish.evidence_sha256,
                    completed_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                self._add_event(
                    session=session,
                    job_id=finish.job_id,
                    event_type="late_result_discarded",
                    status_from=None,
                    status_to=None,
                    details={
                        "claim_token": finish.claim_token,
                        "discarded_status": finish.status.value,
                    },
                )
                session.commit()
                logger.warning(
                    "late-result-discarded job=%s status=%s",
                    finish.job_id,
                    finish.status.value,
                )
                return False

            self._add_event(
                session=session,
                job_id=finish.job_id,
                event_type="finished",
                status_from=JobStatus.RUNNING,
                status_to=finish.status,
                details={
                    "exit_code": finish.exit_code,
                    "failure_class": finish.failure_class.value
                    if finish.failure_class is not None
                    else None,
                    "error": finish.error,
                },
            )
            session.commit()
            return True

    def apply_review_outcome(
        self,
        *,
        job_id: str,
        quality_score: int,
        review_notes: str,
        passed: bool,
    ) -> JobStatus | None:
        """Store QA score on a job; move it out of `reviewing` when it is there."""

        now = to_db_datetime(utc_now())
        target = JobStatus.DONE if passed else JobStatus.REJECTED
        with Session(self.engine) as session:
            self._get_job_row(session=session, job_id=job_id)
            session.exec(
                sa_update(Job)
                .where(col(Job.job_id) == job_id)
                .values(quality_score=quality_score, review_notes=review_notes, updated_at=now),
            )
            result = session.exec(
                sa_update(Job)
                .where(
                    col(Job.job_id) == job_id,
                    col(Job.status) == JobStatus.REVIEWING.value,
                )
                .values(status=target.value, completed_at=now, updated_at=now),
            )
            moved = result.rowcount == 1
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="review_scored",
                status_from=JobStatus.REVIEWING if moved else None,
                status_to=target if moved else None,
                details={"quality_score": quality_score, "passed": passed},
            )
            session.commit()
        return target if moved else None

    def requeue_job(
        self,
        *,
        job_id: str,
        force_stalled: bool = False,
        max_retry_count: int | None = None,
        event_type: str = "requeued",
    ) -> bool:
        """Put a failed/rejected/paused job back in the queue; queued jobs are a no-op."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_job_row(session=session, job_id=job_id)
            previous = JobStatus(row.status)
            if previous == JobStatus.QUEUED:
                return False
            allowed = set(REQUEUEABLE_STATUSES)
            if force_stalled:
                allowed.add(JobStatus.RUNNING)
            if previous not in allowed:
                raise RuntimeError(f"Job cannot be requeued from status={row.status}")

            statement = sa_update(Job).where(
                col(Job.job_id) == job_id,
                col(Job.status) == previous.value,
                col(Job.retry_count) == row.retry_count,
            )
            if max_retry_count is not None:
                statement = statement.where(col(Job.retry_count) < max_retry_count)
            result = session.exec(
                statement.values(
                    status=JobStatus.QUEUED.value,
                    retry_count=row.retry_count + 1,
                    last_error=None,
                    failure_class=None,
                    exit_code=None,
                    claim_token=None,
                    runner_id=None,
                    started_at=None,
                    completed_at=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                if max_retry_count is not None:
                    return False
                raise RuntimeError(
                    "Job state changed concurrently while requeueing; "
                    f"please retry command (job_id={job_id}).",
                )
            self._add_event(
                session=session,
                job_id=job_id,
                event_type=event_type,
                status_from=previous,
                status_to=JobStatus.QUEUED,
                details={"retry_count": row.retry_count + 1, "force_stalled": force_stalled},
            )
            session.commit()
            return True

    def force_approve(self, *, job_id: str, note: str | None = None) -> JobView:
        """Human override: jump a failed/rejected/paused/reviewing job straight to done."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_job_row(session=session, job_id=job_id)
            previous = JobStatus(row.status)
            if previous not in FORCE_APPROVABLE_STATUSES:
                raise RuntimeError(f"Job cannot be force-approved from status={row.status}")
            result = session.exec(
                sa_update(Job)
                .where(col(Job.job_id) == job_id, col(Job.status) == previous.value)
                .values(status=JobStatus.DONE.value, completed_at=now, updated_at=now),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(
                    "Job state changed concurrently while approving; "
                    f"please retry command (job_id={job_id}).",
                )
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="force_approved",
                status_from=previous,
                status_to=JobStatus.DONE,
                details={"note": note} if note else {},
            )
            session.commit()
            updated = session.exec(select(Job).where(Job.job_id == job_id)).one()
            return _to_job_view(updated)

    def get_job(self, *, job_id: str) -> JobView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
        return _to_job_view(row) if row is not None else None

    def require_job(self, *, job_id: str) -> JobView:
        job = self.get_job(job_id=job_id)
        if job is None:
            raise RuntimeError(f"Job not found: {job_id}")
        return job

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        board_id: str | None = None,
        limit: int = 50,
    ) -> list[JobView]:
        """List recent jobs, optionally filtered by status or board."""

        with Session(self.engine) as session:
            statement = select(Job).order_by(col(Job.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(Job.status == status.value)
            if board_id is not None:
                statement = statement.where(Job.board_id == board_id)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def list_claim_candidates(self, *, limit: int) -> list[JobView]:
        """Queued jobs in claim order: most urgent first, then oldest."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Job)
                .where(Job.status == JobStatus.QUEUED.value)
                .order_by(col(Job.priority).asc(), col(Job.created_at).asc())
                .limit(limit),
            ).all()
        return [_to_job_view(row) for row in rows]

    def list_children(self, *, parent_job_id: str) -> list[JobView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job)
                .where(Job.parent_job_id == parent_job_id)
                .order_by(col(Job.created_at).asc()),
            ).all()
        return [_to_job_view(row) for row in rows]

    def list_fan_in_siblings(self, *, parent_job_id: str) -> list[JobView]:
        """Children of a parent that count towards integration (no reviews/integrations)."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Job)
                .where(
                    Job.parent_job_id == parent_job_id,
                    col(Job.job_type).not_in(
                        [JobType.REVIEW.value, JobType.INTEGRATION.value],
                    ),
                )
                .order_by(col(Job.created_at).asc()),
            ).all()
        return [_to_job_view(row) for row in rows]

    def list_board_jobs(self, *, board_id: str) -> list[JobView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job).where(Job.board_id == board_id).order_by(col(Job.created_at).asc()),
            ).all()
        return [_to_job_view(row) for row in rows]

    def list_stalled_jobs(self, *, started_before: datetime) -> list[JobView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job)
                .where(
                    Job.status == JobStatus.RUNNING.value,
                    col(Job.started_at).is_not(None),
                    col(Job.started_at) < to_db_datetime(started_before),
                )
                .order_by(col(Job.started_at).asc()),
            ).all()
        return [_to_job_view(row) for row in rows]

    def list_auto_retry_candidates(
        self,
        *,
        failure_classes: tuple[FailureClass, ...],
        max_retry_count: int,
        limit: int = 5,
    ) -> list[JobView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job)
                .where(
                    Job.status == JobStatus.FAILED.value,
                    col(Job.failure_class).in_([item.value for item in failure_classes]),
                    col(Job.retry_count) < max_retry_count,
                )
                .order_by(col(Job.completed_at).desc())
                .limit(limit),
            ).all()
        return [_to_job_view(row) for row in rows]

    def count_running(self) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count())
                .select_from(Job)
                .where(Job.status == JobStatus.RUNNING.value),
            ).one()

    def count_by_status(self) -> dict[str, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job.status, func.count()).group_by(Job.status),
            ).all()
        return {status: count for status, count in rows}

    def running_load_by_agent(self) -> dict[str, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Job.agent_id, func.count())
                .where(
                    Job.status == JobStatus.RUNNING.value,
                    col(Job.agent_id).is_not(None),
                )
                .group_by(Job.agent_id),
            ).all()
        return {agent_id: count for agent_id, count in rows if agent_id is not None}

    def get_job_details(self, *, job_id: str) -> JobDetails | None:
        """Return job details with event stream, artifacts and children."""

        with Session(self.engine) as session:
            job = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
            if job is None:
                return None
            event_rows = session.exec(
                select(JobEvent)
                .where(JobEvent.job_id == job_id)
                .order_by(col(JobEvent.created_at).asc(), col(JobEvent.id).asc()),
            ).all()
            artifact_rows = session.exec(
                select(JobArtifact)
                .where(JobArtifact.job_id == job_id)
                .order_by(col(JobArtifact.id).asc()),
            ).all()
            job_view = _to_job_view(job)

        events = [
            JobEventView(
                event_id=row.id or 0,
                job_id=row.job_id,
                event_type=row.event_type,
                status_from=JobStatus(row.status_from) if row.status_from is not None else None,
                status_to=JobStatus(row.status_to) if row.status_to is not None else None,
                created_at=to_utc_aware_datetime(row.created_at),
                details=load_json_object(row.details_json),
            )
            for row in event_rows
        ]
        artifacts = [
            JobArtifactView(
                kind=row.kind,
                path=row.path,
                size_bytes=row.size_bytes,
                checksum_sha256=row.checksum_sha256,
                created_at=to_utc_aware_datetime(row.created_at),
            )
            for row in artifact_rows
        ]
        return JobDetails(
            job=job_view,
            events=events,
            artifacts=artifacts,
            children=self.list_children(parent_job_id=job_id),
        )

    def add_job_event(
        self,
        *,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None = None,
        status_to: JobStatus | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Append an audit event outside of a state transition."""

        with Session(self.engine) as session:
            self._get_job_row(session=session, job_id=job_id)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type=event_type,
                status_from=status_from,
                status_to=status_to,
                details=details or {},
            )
            session.commit()

    def add_artifact(self, *, job_id: str, artifact: JobArtifactWrite) -> None:
        """Persist artifact metadata."""

        with Session(self.engine) as session:
            session.add(
                JobArtifact(
                    job_id=job_id,
                    kind=artifact.kind,
                    path=artifact.path,
                    size_bytes=artifact.size_bytes,
                    checksum_sha256=artifact.checksum_sha256,
                    created_at=utc_now(),
                ),
            )
            session.commit()

    def add_review(self, review: JobReviewWrite) -> JobReviewView:
        """Insert an immutable QA review row."""

        with Session(self.engine) as session:
            row = JobReview(
                review_id=str(uuid4()),
                job_id=review.job_id,
                review_job_id=review.review_job_id,
                reviewer_agent_id=review.reviewer_agent_id,
                reviewed_agent_id=review.reviewed_agent_id,
                completeness=review.completeness,
                accuracy=review.accuracy,
                actionability=review.actionability,
                revenue_relevance=review.revenue_relevance,
                evidence=review.evidence,
                total_score=review.total_score,
                passed=review.passed,
                malformed=review.malformed,
                feedback=review.feedback,
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_review_view(row)

    def list_reviews(self, *, job_id: str) -> list[JobReviewView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(JobReview)
                .where(JobReview.job_id == job_id)
                .order_by(col(JobReview.created_at).asc()),
            ).all()
        return [_to_review_view(row) for row in rows]

    def recent_review_totals(self, *, reviewed_agent_id: str, limit: int = 20) -> list[int]:
        """Most recent review totals for work done by one agent."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(JobReview.total_score)
                .where(JobReview.reviewed_agent_id == reviewed_agent_id)
                .order_by(col(JobReview.created_at).desc())
                .limit(limit),
            ).all()
        return list(rows)

    def set_runtime_setting(self, *, key: str, value: dict[str, Any]) -> int:
        """Upsert one operator switch; returns the new global settings version."""

        now = utc_now()
        with Session(self.engine) as session:
            current = session.exec(select(func.max(RuntimeSetting.version))).one()
            version = (current or 0) + 1
            row = session.exec(
                select(RuntimeSetting).where(RuntimeSetting.key == key),
            ).one_or_none()
            if row is None:
                row = RuntimeSetting(
                    key=key,
                    value_json=dump_json(value),
                    version=version,
                    updated_at=now,
                )
            else:
                row.value_json = dump_json(value)
                row.version = version
                row.updated_at = now
            session.add(row)
            session.commit()
        logger.info("runtime-setting key=%s version=%d", key, version)
        return version

    def get_runtime_setting(self, *, key: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(RuntimeSetting).where(RuntimeSetting.key == key),
            ).one_or_none()
        return load_json_object(row.value_json) if row is not None else None

    def read_runtime_settings(self, *, default_concurrency: int = 2) -> RuntimeSettingsSnapshot:
        """Read pause/concurrency/parallelism in one transaction as a frozen snapshot."""

        with Session(self.engine) as session:
            rows = session.exec(select(RuntimeSetting)).all()
        values = {row.key: load_json_object(row.value_json) for row in rows}
        return RuntimeSettingsSnapshot(
            paused=bool(values.get(PAUSE_ALL_KEY, {}).get("enabled", False)),
            max_concurrency=_positive_int(
                values.get(MAX_CONCURRENCY_KEY, {}).get("limit"),
                default=default_concurrency,
            ),
            parallel_jobs=_positive_int(values.get(PARALLEL_JOBS_KEY, {}).get("count"), default=1),
            version=max((row.version for row in rows), default=0),
        )

    def _get_job_row(self, *, session: Session, job_id: str) -> Job:
        row = session.exec(select(Job).where(Job.job_id == job_id)).one_or_none()
        if row is None:
            raise RuntimeError(f"Job not found: {job_id}")
        return row

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None,
        status_to: JobStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            JobEvent(
                job_id=job_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=dump_json(details) if details else None,
                created_at=utc_now(),
            ),
        )


def _validate_job_create(payload: JobCreate) -> None:
    if not payload.title.strip():
        raise ValueError("Job title must not be empty.")
    if payload.engine not in KNOWN_ENGINES:
        raise ValueError(
            f"Unknown engine {payload.engine!r}; expected one of {', '.join(KNOWN_ENGINES)}.",
        )
    if not MIN_PRIORITY <= payload.priority <= MAX_PRIORITY:
        raise ValueError(
            f"Job priority must be within {MIN_PRIORITY}..{MAX_PRIORITY}, got {payload.priority}.",
        )
    if not (payload.prompt_text or "").strip() and not (payload.command or "").strip():
        raise ValueError("Job needs prompt_text or command.")


def _positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= 1 else default


def _to_job_view(row: Job) -> JobView:
    return JobView(
        job_id=row.job_id,
        title=row.title,
        job_type=JobType(row.job_type),
        engine=row.engine,
        source=row.source,
        status=JobStatus(row.status),
        priority=row.priority,
        parent_job_id=row.parent_job_id,
        agent_id=row.agent_id,
        project_id=row.project_id,
        board_id=row.board_id,
        prompt_text=row.prompt_text,
        command=row.command,
        mcp_servers=[str(item) for item in load_json_list(row.mcp_servers_json)],
        result=row.result,
        last_run=load_json_object(row.last_run_json),
        last_error=row.last_error,
        failure_class=FailureClass(row.failure_class) if row.failure_class is not None else None,
        exit_code=row.exit_code,
        quality_score=row.quality_score,
        review_notes=row.review_notes,
        retry_count=row.retry_count,
        claim_token=row.claim_token,
        runner_id=row.runner_id,
        evidence_log_path=row.evidence_log_path,
        evidence_sha256=row.evidence_sha256,
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=optional_utc(row.started_at),
        completed_at=optional_utc(row.completed_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_review_view(row: JobReview) -> JobReviewView:
    return JobReviewView(
        review_id=row.review_id,
        job_id=row.job_id,
        review_job_id=row.review_job_id,
        reviewer_agent_id=row.reviewer_agent_id,
        reviewed_agent_id=row.reviewed_agent_id,
        completeness=row.completeness,
        accuracy=row.accuracy,
        actionability=row.actionability,
        revenue_relevance=row.revenue_relevance,
        evidence=row.evidence,
        total_score=row.total_score,
        passed=row.passed,
        malformed=row.malformed,
        feedback=row.feedback,
        created_at=to_utc_aware_datetime(row.created_at),
    )
