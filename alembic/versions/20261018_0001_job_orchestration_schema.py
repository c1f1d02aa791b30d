"""Job orchestration baseline: agents, projects, jobs, reviews, challenge boards."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("default_engine", sa.String(), nullable=False, server_default="claude"),
        sa.Column("model_id", sa.String(), nullable=True),
        sa.Column("system_prompt", sa.Text(), nullable=True),
        sa.Column("cost_tier", sa.String(), nullable=False, server_default="medium"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("quality_score_avg", sa.Float(), nullable=False, server_default="0"),
        sa.Column("consecutive_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_jobs_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("agent_id"),
        sa.UniqueConstraint("name", name="uq_agents_name"),
    )

    op.create_table(
        "skills",
        sa.Column("skill_id", sa.String(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("usage_guidelines", sa.Text(), nullable=True),
        sa.Column("mcp_server_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("skill_id"),
        sa.UniqueConstraint("key", name="uq_skills_key"),
    )

    op.create_table(
        "agent_skills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("skill_id", sa.String(), nullable=False),
        sa.Column("allowed", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.agent_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["skill_id"], ["skills.skill_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("agent_id", "skill_id", name="uq_agent_skills_pair"),
    )

    op.create_table(
        "projects",
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pm_agent_id", sa.String(), nullable=True),
        sa.Column("revenue_target_monthly", sa.Float(), nullable=True),
        sa.Column("spec_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["pm_agent_id"], ["agents.agent_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("project_id"),
        sa.UniqueConstraint("name", name="uq_projects_name"),
    )

    op.create_table(
        "challenge_boards",
        sa.Column("board_id", sa.String(), nullable=False),
        sa.Column("decision_title", sa.String(), nullable=False),
        sa.Column("decision_context", sa.Text(), nullable=False, server_default=""),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("requested_by", sa.String(), nullable=False, server_default="orchestrator"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("options_json", sa.Text(), nullable=False),
        sa.Column("final_decision", sa.String(), nullable=True),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("board_id"),
    )

    op.create_table(
        "challenge_responses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("board_id", sa.String(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("agent_name", sa.String(), nullable=False),
        sa.Column("perspective", sa.String(), nullable=False, server_default="balanced"),
        sa.Column("position", sa.String(), nullable=False),
        sa.Column("argument", sa.Text(), nullable=False, server_default=""),
        sa.Column("risk_flags_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["board_id"],
            ["challenge_boards.board_id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.agent_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("engine", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("parent_job_id", sa.String(), nullable=True),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("board_id", sa.String(), nullable=True),
        sa.Column("prompt_text", sa.Text(), nullable=True),
        sa.Column("command", sa.Text(), nullable=True),
        sa.Column("mcp_servers_json", sa.Text(), nullable=True),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("last_run_json", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("failure_class", sa.String(), nullable=True),
        sa.Column("exit_code", sa.Integer(), nullable=True),
        sa.Column("quality_score", sa.Integer(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("claim_token", sa.String(), nullable=True),
        sa.Column("runner_id", sa.String(), nullable=True),
        sa.Column("evidence_log_path", sa.String(), nullable=True),
        sa.Column("evidence_sha256", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["parent_job_id"], ["jobs.job_id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.agent_id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["board_id"],
            ["challenge_boards.board_id"],
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("job_id"),
    )

    op.create_table(
        "job_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "job_artifacts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("checksum_sha256", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "job_reviews",
        sa.Column("review_id", sa.String(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("review_job_id", sa.String(), nullable=True),
        sa.Column("reviewer_agent_id", sa.String(), nullable=True),
        sa.Column("reviewed_agent_id", sa.String(), nullable=True),
        sa.Column("completeness", sa.Integer(), nullable=False),
        sa.Column("accuracy", sa.Integer(), nullable=False),
        sa.Column("actionability", sa.Integer(), nullable=False),
        sa.Column("revenue_relevance", sa.Integer(), nullable=False),
        sa.Column("evidence", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("malformed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("feedback", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.job_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["review_job_id"], ["jobs.job_id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["reviewer_agent_id"],
            ["agents.agent_id"],
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["reviewed_agent_id"],
            ["agents.agent_id"],
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("review_id"),
    )

    op.create_table(
        "runtime_settings",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_index("idx_jobs_queue", "jobs", ["status", "priority", "created_at"])
    op.create_index("idx_jobs_parent", "jobs", ["parent_job_id"])
    op.create_index("idx_jobs_agent", "jobs", ["agent_id"])
    op.create_index("idx_jobs_board", "jobs", ["board_id"])
    op.create_index(
        "uq_jobs_integration_per_parent",
        "jobs",
        ["parent_job_id"],
        unique=True,
        sqlite_where=sa.text("job_type = 'integration'"),
    )
    op.create_index("idx_job_events_job_time", "job_events", ["job_id", "created_at"])
    op.create_index("idx_job_artifacts_job_kind", "job_artifacts", ["job_id", "kind"])
    op.create_index("idx_job_reviews_job", "job_reviews", ["job_id"])
    op.create_index("idx_job_reviews_reviewed_agent", "job_reviews", ["reviewed_agent_id"])
    op.create_index(
        "idx_challenge_responses_board_time",
        "challenge_responses",
        ["board_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_challenge_responses_board_time", table_name="challenge_responses")
    op.drop_index("idx_job_reviews_reviewed_agent", table_name="job_reviews")
    op.drop_index("idx_job_reviews_job", table_name="job_reviews")
    op.drop_index("idx_job_artifacts_job_kind", table_name="job_artifacts")
    op.drop_index("idx_job_events_job_time", table_name="job_events")
    op.drop_index("uq_jobs_integration_per_parent", table_name="jobs")
    op.drop_index("idx_jobs_board", table_name="jobs")
    op.drop_index("idx_jobs_agent", table_name="jobs")
    op.drop_index("idx_jobs_parent", table_name="jobs")
    op.drop_index("idx_jobs_queue", table_name="jobs")
    op.drop_table("runtime_settings")
    op.drop_table("job_reviews")
    op.drop_table("job_artifacts")
    op.drop_table("job_events")
    op.drop_table("jobs")
    op.drop_table("challenge_responses")
    op.drop_table("challenge_boards")
    op.drop_table("projects")
    op.drop_table("agent_skills")
    op.drop_table("skills")
    op.drop_table("agents")
