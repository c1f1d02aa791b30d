"""SQLModel ORM tables for the mission control datastore."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, text
from sqlmodel import Field, SQLModel


class Agent(SQLModel, table=True):
    __tablename__ = "agents"  # type: ignore[bad-override]

    agent_id: str = Field(primary_key=True)
    name: str = Field(index=True, unique=True)
    role: str = Field(index=True)
    department: str | None = Field(default=None, index=True)
    default_engine: str = Field(default="claude")
    model_id: str | None = None
    system_prompt: str | None = Field(default=None, sa_column=Column(Text))
    cost_tier: str = Field(default="medium")
    active: bool = Field(default=True, index=True)
    status: str = Field(default="active", index=True)
    quality_score_avg: float = 0.0
    consecutive_failures: int = 0
    total_jobs_completed: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Skill(SQLModel, table=True):
    __tablename__ = "skills"  # type: ignore[bad-override]

    skill_id: str = Field(primary_key=True)
    key: str = Field(index=True, unique=True)
    usage_guidelines: str | None = Field(default=None, sa_column=Column(Text))
    mcp_server_name: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentSkill(SQLModel, table=True):
    __tablename__ = "agent_skills"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("agent_id", "skill_id", name="uq_agent_skills_pair"),)

    id: int | None = Field(default=None, primary_key=True)
    agent_id: str = Field(
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    skill_id: str = Field(
        sa_column=Column(
            ForeignKey("skills.skill_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    allowed: bool = True
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Project(SQLModel, table=True):
    __tablename__ = "projects"  # type: ignore[bad-override]

    project_id: str = Field(primary_key=True)
    name: str = Field(index=True, unique=True)
    description: str | None = Field(default=None, sa_column=Column(Text))
    pm_agent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    revenue_target_monthly: float | None = None
    spec_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ChallengeBoard(SQLModel, table=True):
    __tablename__ = "challenge_boards"  # type: ignore[bad-override]

    board_id: str = Field(primary_key=True)
    decision_title: str
    decision_context: str = Field(default="", sa_column=Column(Text, nullable=False))
    project_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    requested_by: str = Field(default="orchestrator")
    status: str = Field(index=True)
    options_json: str = Field(sa_column=Column(Text, nullable=False))
    final_decision: str | None = None
    rationale: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    decided_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class ChallengeResponse(SQLModel, table=True):
    __tablename__ = "challenge_responses"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_challenge_responses_board_time", "board_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    board_id: str = Field(
        sa_column=Column(
            ForeignKey("challenge_boards.board_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    agent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    agent_name: str
    perspective: str = Field(default="balanced")
    position: str
    argument: str = Field(default="", sa_column=Column(Text, nullable=False))
    risk_flags_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Job(SQLModel, table=True):
    __tablename__ = "jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_jobs_queue", "status", "priority", "created_at"),
        Index(
            "uq_jobs_integration_per_parent",
            "parent_job_id",
            unique=True,
            sqlite_where=text("job_type = 'integration'"),
        ),
    )

    job_id: str = Field(primary_key=True)
    title: str
    job_type: str = Field(index=True)
    engine: str
    source: str
    status: str = Field(index=True)
    priority: int = Field(default=5, index=True)
    parent_job_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    agent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    project_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    board_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("challenge_boards.board_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    prompt_text: str | None = Field(default=None, sa_column=Column(Text))
    command: str | None = Field(default=None, sa_column=Column(Text))
    mcp_servers_json: str | None = Field(default=None, sa_column=Column(Text))
    result: str | None = Field(default=None, sa_column=Column(Text))
    last_run_json: str | None = Field(default=None, sa_column=Column(Text))
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    failure_class: str | None = Field(default=None, index=True)
    exit_code: int | None = None
    quality_score: int | None = None
    review_notes: str | None = Field(default=None, sa_column=Column(Text))
    retry_count: int = Field(default=0)
    claim_token: str | None = None
    runner_id: str | None = None
    evidence_log_path: str | None = None
    evidence_sha256: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class JobEvent(SQLModel, table=True):
    __tablename__ = "job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class JobArtifact(SQLModel, table=True):
    __tablename__ = "job_artifacts"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_job_artifacts_job_kind", "job_id", "kind"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    kind: str
    path: str
    size_bytes: int
    checksum_sha256: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class JobReview(SQLModel, table=True):
    __tablename__ = "job_reviews"  # type: ignore[bad-override]

    review_id: str = Field(primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    review_job_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    reviewer_agent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    reviewed_agent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    completeness: int
    accuracy: int
    actionability: int
    revenue_relevance: int
    evidence: int
    total_score: int
    passed: bool
    malformed: bool = False
    feedback: str = Field(default="", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class RuntimeSetting(SQLModel, table=True):
    __tablename__ = "runtime_settings"  # type: ignore[bad-override]

    key: str = Field(primary_key=True)
    value_json: str = Field(sa_column=Column(Text, nullable=False))
    version: int = Field(default=1)
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_notifications_status_time", "status", "created_at"),)

    notification_id: str = Field(primary_key=True)
    title: str
    body: str = Field(default="", sa_column=Column(Text, nullable=False))
    category: str = Field(index=True)
    priority: str = Field(default="normal")
    status: str = Field(default="pending")
    source_type: str | None = None
    source_id: str | None = Field(default=None, index=True)
    metadata_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    delivered_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    acknowledged_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )


class HumanTask(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]

    task_id: str = Field(primary_key=True)
    title: str = Field(index=True)
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    status: str = Field(default="todo", index=True)
    priority: int = Field(default=5)
    assigned_to: str | None = None
    project_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"  # type: ignore[bad-override]

    message_id: str = Field(primary_key=True)
    role: str
    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    tier: str | None = None
    actions_json: str | None = Field(default=None, sa_column=Column(Text))
    duration_ms: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
