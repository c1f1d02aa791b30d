"""Domain models for the job queue, runtime settings and notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    REVIEWING = "reviewing"
    DONE = "done"
    FAILED = "failed"
    REJECTED = "rejected"
    PAUSED_HUMAN = "paused_human"


TERMINAL_STATUSES = frozenset(
    {JobStatus.DONE, JobStatus.FAILED, JobStatus.REJECTED, JobStatus.PAUSED_HUMAN},
)
REQUEUEABLE_STATUSES = frozenset({JobStatus.FAILED, JobStatus.REJECTED, JobStatus.PAUSED_HUMAN})
FORCE_APPROVABLE_STATUSES = frozenset(
    {JobStatus.FAILED, JobStatus.REJECTED, JobStatus.PAUSED_HUMAN, JobStatus.REVIEWING},
)
FAN_IN_READY_STATUSES = frozenset({JobStatus.DONE, JobStatus.REVIEWING})


class JobType(str, Enum):
    """What the post-execution router does with a finished job."""

    TASK = "task"
    REVIEW = "review"
    DECOMPOSITION = "decomposition"
    INTEGRATION = "integration"


class JobSource(str, Enum):
    """Who created a job."""

    DASHBOARD = "dashboard"
    TELEGRAM = "telegram"
    CRON = "cron"
    ORCHESTRATOR = "orchestrator"
    API = "api"
    CLI = "cli"
    CHALLENGE_BOARD = "challenge_board"


class FailureClass(str, Enum):
    """Normalized failure classes used by the auto-retry policy."""

    TIMEOUT = "timeout"
    ENGINE_TRANSIENT = "engine_transient"
    ENGINE_NON_RETRYABLE = "engine_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    OUTPUT_INVALID_JSON = "output_invalid_json"


class ClaimStatus(str, Enum):
    """Outcome of one conditional claim attempt."""

    CLAIMED = "claimed"
    CONFLICT = "conflict"
    EMPTY = "empty"


class NotificationCategory(str, Enum):
    JOB_COMPLETE = "job_complete"
    JOB_FAILED = "job_failed"
    DECISION_NEEDED = "decision_needed"
    APPROVAL_NEEDED = "approval_needed"
    DEPLOY_READY = "deploy_ready"
    ALERT = "alert"
    INFO = "info"
    REMINDER = "reminder"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    DISMISSED = "dismissed"


@dataclass(slots=True)
class JobCreate:
    """Input payload for enqueuing a job."""

    title: str
    engine: str
    prompt_text: str | None = None
    command: str | None = None
    job_id: str | None = None
    job_type: JobType = JobType.TASK
    source: JobSource = JobSource.CLI
    priority: int = 5
    parent_job_id: str | None = None
    agent_id: str | None = None
    project_id: str | None = None
    board_id: str | None = None
    mcp_servers: tuple[str, ...] = ()


@dataclass(slots=True)
class JobView:
    """Readable job view for CLI, API and runner logic."""

    job_id: str
    title: str
    job_type: JobType
    engine: str
    source: str
    status: JobStatus
    priority: int
    parent_job_id: str | None
    agent_id: str | None
    project_id: str | None
    board_id: str | None
    prompt_text: str | None
    command: str | None
    mcp_servers: list[str]
    result: str | None
    last_run: dict[str, Any]
    last_error: str | None
    failure_class: FailureClass | None
    exit_code: int | None
    quality_score: int | None
    review_notes: str | None
    retry_count: int
    claim_token: str | None
    runner_id: str | None
    evidence_log_path: str | None
    evidence_sha256: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    updated_at: datetime


@dataclass(slots=True)
class JobEventView:
    """Job event entry for audit trail."""

    event_id: int
    job_id: str
    event_type: str
    status_from: JobStatus | None
    status_to: JobStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class JobArtifactWrite:
    """Artifact metadata captured during execution."""

    kind: str
    path: str
    size_bytes: int
    checksum_sha256: str | None = None


@dataclass(slots=True)
class JobArtifactView:
    kind: str
    path: str
    size_bytes: int
    checksum_sha256: str | None
    created_at: datetime


@dataclass(slots=True)
class JobDetails:
    """Job details with event stream, artifacts and children."""

    job: JobView
    events: list[JobEventView]
    artifacts: list[JobArtifactView]
    children: list[JobView]


@dataclass(slots=True)
class ClaimOutcome:
    """Result of a claim attempt; `job` is set only when claimed."""

    status: ClaimStatus
    job: JobView | None = None
    job_id: str | None = None

    @property
    def claimed(self) -> bool:
        return self.status == ClaimStatus.CLAIMED


@dataclass(slots=True)
class JobFinish:
    """Terminal write performed by the runner for one claimed job."""

    job_id: str
    claim_token: str
    status: JobStatus
    result: str | None
    last_run: dict[str, Any]
    error: str | None
    exit_code: int | None
    failure_class: FailureClass | None = None
    evidence_log_path: str | None = None
    evidence_sha256: str | None = None


@dataclass(slots=True)
class JobReviewWrite:
    """Immutable QA review attached to one parent job."""

    job_id: str
    review_job_id: str | None
    reviewer_agent_id: str | None
    reviewed_agent_id: str | None
    completeness: int
    accuracy: int
    actionability: int
    revenue_relevance: int
    evidence: int
    total_score: int
    passed: bool
    feedback: str
    malformed: bool = False


@dataclass(slots=True)
class JobReviewView:
    review_id: str
    job_id: str
    review_job_id: str | None
    reviewer_agent_id: str | None
    reviewed_agent_id: str | None
    completeness: int
    accuracy: int
    actionability: int
    revenue_relevance: int
    evidence: int
    total_score: int
    passed: bool
    malformed: bool
    feedback: str
    created_at: datetime


@dataclass(slots=True, frozen=True)
class RuntimeSettingsSnapshot:
    """Operator switches read once per scheduler tick."""

    paused: bool
    max_concurrency: int
    parallel_jobs: int
    version: int


@dataclass(slots=True)
class NotificationCreate:
    title: str
    category: NotificationCategory
    body: str = ""
    priority: NotificationPriority = NotificationPriority.NORMAL
    source_type: str | None = None
    source_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class NotificationView:
    notification_id: str
    title: str
    body: str
    category: NotificationCategory
    priority: NotificationPriority
    status: NotificationStatus
    source_type: str | None
    source_id: str | None
    metadata: dict[str, Any]
    created_at: datetime
    delivered_at: datetime | None
    acknowledged_at: datetime | None
