"""Request and response bodies of the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from mission_control.orchestrator.models import JobView

MAX_PARALLEL_JOBS = 5


class JobCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    engine: str | None = None
    prompt: str | None = None
    command: str | None = None
    priority: int = Field(default=5, ge=1, le=10)
    parent_job_id: str | None = None
    agent_name: str | None = None
    project_name: str | None = None
    mcp_servers: list[str] = Field(default_factory=list)


class RunParallelRequest(BaseModel):
    max_jobs: int = Field(default=2, ge=1)


class RequeueRequest(BaseModel):
    force_stalled: bool = False


class ApproveRequest(BaseModel):
    note: str | None = None


class ChatRequest(BaseModel):
    message: str
    has_images: bool = False


class JobOut(BaseModel):
    job_id: str
    title: str
    job_type: str
    engine: str
    status: str
    priority: int
    parent_job_id: str | None
    agent_id: str | None
    project_id: str | None
    board_id: str | None
    result: str | None
    last_error: str | None
    failure_class: str | None
    quality_score: int | None
    retry_count: int
    evidence_log_path: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_view(cls, job: JobView) -> JobOut:
        return cls(
            job_id=job.job_id,
            title=job.title,
            job_type=job.job_type.value,
            engine=job.engine,
            status=job.status.value,
            priority=job.priority,
            parent_job_id=job.parent_job_id,
            agent_id=job.agent_id,
            project_id=job.project_id,
            board_id=job.board_id,
            result=job.result,
            last_error=job.last_error,
            failure_class=job.failure_class.value if job.failure_class else None,
            quality_score=job.quality_score,
            retry_count=job.retry_count,
            evidence_log_path=job.evidence_log_path,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class JobEventOut(BaseModel):
    event_type: str
    status_from: str | None
    status_to: str | None
    created_at: datetime
    details: dict[str, Any]


class JobDetailsOut(BaseModel):
    job: JobOut
    children: list[JobOut]
    events: list[JobEventOut]
