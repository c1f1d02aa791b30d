from pathlib import Path

import allure
from sqlalchemy import inspect

from mission_control.orchestrator.repository import JobRepository
from mission_control.storage.alembic_runner import current_revision, head_revision

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "migrations.db"
    assert current_revision(tmp_path / "fresh.db") is None

    repository = JobRepository(db_path)
    repository.init_schema()

    assert head_revision(db_path) == "20261018_0002"
    assert current_revision(db_path) == "20261018_0002"

    inspector = inspect(repository.engine)
    assert {
        "agents",
        "skills",
        "agent_skills",
        "projects",
        "challenge_boards",
        "challenge_responses",
        "jobs",
        "job_events",
        "job_artifacts",
        "job_reviews",
        "runtime_settings",
        "notifications",
        "tasks",
        "chat_messages",
    } <= set(inspector.get_table_names())
    job_indexes = {index["name"] for index in inspector.get_indexes("jobs")}
    assert "uq_jobs_integration_per_parent" in job_indexes
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "twice.db"
    first = JobRepository(db_path)
    first.init_schema()
    first.close()

    second = JobRepository(db_path)
    second.init_schema()

    assert current_revision(db_path) == head_revision(db_path)
    second.close()
