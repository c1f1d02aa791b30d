from __future__ import annotations

import threading
from pathlib import Path

import allure
import pytest

from mission_control.orchestrator.models import (
    ClaimStatus,
    FailureClass,
    JobCreate,
    JobFinish,
    JobStatus,
    JobType,
)
from mission_control.orchestrator.repository import (
    MAX_CONCURRENCY_KEY,
    PARALLEL_JOBS_KEY,
    PAUSE_ALL_KEY,
    JobRepository,
)

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Job Queue Reliability"),
]


def _repository(tmp_path: Path) -> JobRepository:
    repository = JobRepository(tmp_path / "jobs.db")
    repository.init_schema()
    return repository


def _enqueue(repository: JobRepository, title: str = "Write summary", **overrides):
    payload = JobCreate(title=title, engine="claude", prompt_text="Do the thing.", **overrides)
    return repository.enqueue_job(payload)


def _fail(repository: JobRepository, job_id: str, failure_class: FailureClass) -> None:
    claim = repository.claim_job(job_id=job_id, runner_id="runner-a")
    assert claim.job is not None and claim.job.claim_token is not None
    assert repository.finish_job(
        JobFinish(
            job_id=job_id,
            claim_token=claim.job.claim_token,
            status=JobStatus.FAILED,
            result=None,
            last_run={},
            error="boom",
            exit_code=1,
            failure_class=failure_class,
        ),
    )


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (JobCreate(title="  ", engine="claude", prompt_text="x"), "title"),
        (JobCreate(title="t", engine="cobol", prompt_text="x"), "Unknown engine"),
        (JobCreate(title="t", engine="claude", prompt_text="x", priority=0), "priority"),
        (JobCreate(title="t", engine="claude", prompt_text="x", priority=11), "priority"),
        (JobCreate(title="t", engine="claude"), "prompt_text or command"),
    ],
)
def test_enqueue_rejects_invalid_payloads(tmp_path: Path, payload: JobCreate, message: str) -> None:
    repository = _repository(tmp_path)
    with pytest.raises(ValueError, match=message):
        repository.enqueue_job(payload)
    assert repository.list_jobs() == []
    repository.close()


def test_enqueue_records_queued_job_and_event(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository, mcp_servers=("github",))

    assert job.status == JobStatus.QUEUED
    assert job.job_type == JobType.TASK
    assert job.retry_count == 0
    assert job.mcp_servers == ["github"]

    details = repository.get_job_details(job_id=job.job_id)
    assert details is not None
    assert [event.event_type for event in details.events] == ["enqueued"]
    assert details.events[0].status_to == JobStatus.QUEUED
    assert repository.get_job_details(job_id="missing") is None
    repository.close()


def test_claim_prefers_lower_priority_number_then_oldest(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    first_normal = _enqueue(repository, "normal-1", priority=5)
    urgent = _enqueue(repository, "urgent", priority=1)
    second_normal = _enqueue(repository, "normal-2", priority=5)

    order = []
    for _ in range(3):
        claim = repository.claim_next_job(runner_id="runner-a")
        assert claim.status == ClaimStatus.CLAIMED
        assert claim.job is not None
        order.append(claim.job.job_id)

    assert order == [urgent.job_id, first_normal.job_id, second_normal.job_id]
    assert repository.claim_next_job(runner_id="runner-a").status == ClaimStatus.EMPTY
    repository.close()


def test_claim_of_running_job_is_a_conflict(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)

    first = repository.claim_job(job_id=job.job_id, runner_id="runner-a")
    second = repository.claim_job(job_id=job.job_id, runner_id="runner-b")

    assert first.claimed
    assert first.job is not None
    assert first.job.status == JobStatus.RUNNING
    assert first.job.runner_id == "runner-a"
    assert first.job.claim_token
    assert second.status == ClaimStatus.CONFLICT
    assert second.job is None
    assert second.job_id == job.job_id
    assert repository.count_running() == 1
    repository.close()


def test_concurrent_claims_admit_exactly_one_winner(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    db_path = repository.db_path
    repository.close()

    barrier = threading.Barrier(4)
    results: list[ClaimStatus] = []
    lock = threading.Lock()

    def _claim(runner_id: str) -> None:
        claimer = JobRepository(db_path)
        try:
            barrier.wait(timeout=5)
            outcome = claimer.claim_job(job_id=job.job_id, runner_id=runner_id)
            with lock:
                results.append(outcome.status)
        finally:
            claimer.close()

    threads = [threading.Thread(target=_claim, args=(f"runner-{index}",)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=15)

    assert sorted(status.value for status in results) == [
        "claimed",
        "conflict",
        "conflict",
        "conflict",
    ]


def test_finish_with_stale_claim_token_is_discarded(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    claim = repository.claim_job(job_id=job.job_id, runner_id="runner-a")
    assert claim.job is not None

    accepted = repository.finish_job(
        JobFinish(
            job_id=job.job_id,
            claim_token="not-the-token",
            status=JobStatus.DONE,
            result="late",
            last_run={},
            error=None,
            exit_code=0,
        ),
    )

    assert accepted is False
    current = repository.require_job(job_id=job.job_id)
    assert current.status == JobStatus.RUNNING
    assert current.result is None
    details = repository.get_job_details(job_id=job.job_id)
    assert details is not None
    assert details.events[-1].event_type == "late_result_discarded"
    repository.close()


def test_finish_rejects_non_terminal_status(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    with pytest.raises(ValueError, match="Unsupported finish status"):
        repository.finish_job(
            JobFinish(
                job_id=job.job_id,
                claim_token="x",
                status=JobStatus.RUNNING,
                result=None,
                last_run={},
                error=None,
                exit_code=None,
            ),
        )
    repository.close()


def test_requeue_rules(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    failed = _enqueue(repository, "failed")
    _fail(repository, failed.job_id, FailureClass.ENGINE_NON_RETRYABLE)

    assert repository.requeue_job(job_id=failed.job_id) is True
    requeued = repository.require_job(job_id=failed.job_id)
    assert requeued.status == JobStatus.QUEUED
    assert requeued.retry_count == 1
    assert requeued.failure_class is None
    assert requeued.last_error is None
    assert repository.requeue_job(job_id=failed.job_id) is False

    running = _enqueue(repository, "running")
    repository.claim_job(job_id=running.job_id, runner_id="runner-a")
    with pytest.raises(RuntimeError, match="cannot be requeued"):
        repository.requeue_job(job_id=running.job_id)
    assert repository.requeue_job(job_id=running.job_id, force_stalled=True) is True
    assert repository.require_job(job_id=running.job_id).claim_token is None

    with pytest.raises(RuntimeError, match="Job not found"):
        repository.requeue_job(job_id="missing")
    repository.close()


def test_requeue_respects_retry_ceiling(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    _fail(repository, job.job_id, FailureClass.ENGINE_TRANSIENT)
    assert repository.requeue_job(job_id=job.job_id, max_retry_count=1) is True
    _fail(repository, job.job_id, FailureClass.ENGINE_TRANSIENT)

    assert repository.requeue_job(job_id=job.job_id, max_retry_count=1) is False
    assert repository.require_job(job_id=job.job_id).status == JobStatus.FAILED
    repository.close()


def test_force_approve_from_failed_but_not_from_queued(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    queued = _enqueue(repository, "queued")
    failed = _enqueue(repository, "failed")
    _fail(repository, failed.job_id, FailureClass.ENGINE_NON_RETRYABLE)

    approved = repository.force_approve(job_id=failed.job_id, note="Checked by hand")
    assert approved.status == JobStatus.DONE
    details = repository.get_job_details(job_id=failed.job_id)
    assert details is not None
    assert details.events[-1].event_type == "force_approved"
    assert details.events[-1].details == {"note": "Checked by hand"}

    with pytest.raises(RuntimeError, match="cannot be force-approved"):
        repository.force_approve(job_id=queued.job_id)
    repository.close()


def test_integration_job_is_created_once_per_parent(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    parent = _enqueue(repository, "parent")
    payload = JobCreate(
        title="Integrate: parent",
        engine="claude",
        prompt_text="Combine.",
        job_type=JobType.INTEGRATION,
        parent_job_id=parent.job_id,
    )

    first = repository.enqueue_integration_job(payload)
    second = repository.enqueue_integration_job(payload)

    assert first is not None
    assert second is None
    found = repository.find_integration_job(parent_job_id=parent.job_id)
    assert found is not None
    assert found.job_id == first.job_id
    with pytest.raises(ValueError, match="Integration jobs"):
        repository.enqueue_integration_job(JobCreate(title="x", engine="claude", prompt_text="x"))
    repository.close()


def test_runtime_settings_snapshot_and_versions(tmp_path: Path) -> None:
    repository = _repository(tmp_path)

    defaults = repository.read_runtime_settings(default_concurrency=3)
    assert defaults.paused is False
    assert defaults.max_concurrency == 3
    assert defaults.parallel_jobs == 1
    assert defaults.version == 0

    v1 = repository.set_runtime_setting(key=PAUSE_ALL_KEY, value={"enabled": True})
    v2 = repository.set_runtime_setting(key=MAX_CONCURRENCY_KEY, value={"limit": 4})
    v3 = repository.set_runtime_setting(key=PARALLEL_JOBS_KEY, value={"count": 2})
    v4 = repository.set_runtime_setting(key=PAUSE_ALL_KEY, value={"enabled": False})
    assert [v1, v2, v3, v4] == [1, 2, 3, 4]

    snapshot = repository.read_runtime_settings()
    assert snapshot.paused is False
    assert snapshot.max_concurrency == 4
    assert snapshot.parallel_jobs == 2
    assert snapshot.version == 4

    repository.set_runtime_setting(key=MAX_CONCURRENCY_KEY, value={"limit": "nonsense"})
    assert repository.read_runtime_settings(default_concurrency=2).max_concurrency == 2
    repository.close()


def test_count_by_status(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    _enqueue(repository, "a")
    running = _enqueue(repository, "b")
    repository.claim_job(job_id=running.job_id, runner_id="runner-a")

    assert repository.count_by_status() == {"queued": 1, "running": 1}
    repository.close()
