from __future__ import annotations

import allure
import pytest

from mission_control.orchestrator.models import ClaimStatus, JobCreate, JobStatus
from mission_control.orchestrator.repository import (
    MAX_CONCURRENCY_KEY,
    PARALLEL_JOBS_KEY,
    PAUSE_ALL_KEY,
)
from mission_control.orchestrator.scheduler import Scheduler
from mission_control.services import Services

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Scheduler"),
]


def _scheduler(services: Services, health_check=None) -> Scheduler:
    return Scheduler(
        jobs=services.jobs,
        runner=services.runner,
        settings=services.settings.scheduler,
        health_check=health_check,
    )


def _shell_job(services: Services, title: str):
    return services.jobs.enqueue_job(
        JobCreate(title=title, engine="shell", command=f"echo {title}"),
    )


def test_paused_tick_claims_nothing(services: Services) -> None:
    job = _shell_job(services, "waiting")
    services.jobs.set_runtime_setting(key=PAUSE_ALL_KEY, value={"enabled": True})

    result = _scheduler(services).tick()

    assert result.action == "paused"
    assert result.snapshot is not None and result.snapshot.paused is True
    assert services.jobs.require_job(job_id=job.job_id).status == JobStatus.QUEUED


def test_tick_respects_concurrency_limit(services: Services) -> None:
    busy = _shell_job(services, "busy")
    waiting = _shell_job(services, "waiting")
    services.jobs.claim_job(job_id=busy.job_id, runner_id="other-runner")
    services.jobs.set_runtime_setting(key=MAX_CONCURRENCY_KEY, value={"limit": 1})

    result = _scheduler(services).tick()

    assert result.action == "at-capacity"
    assert services.jobs.require_job(job_id=waiting.job_id).status == JobStatus.QUEUED


def test_unhealthy_target_backs_off_then_recovers(services: Services) -> None:
    verdicts = iter([False, False, False, False, True])
    scheduler = _scheduler(services, health_check=lambda: next(verdicts))
    _shell_job(services, "after-recovery")

    intervals = [scheduler.tick().interval_seconds for _ in range(4)]
    recovered = scheduler.tick()

    assert intervals == pytest.approx([0.02, 0.04, 0.08, 0.08])
    assert recovered.action == "ran"
    assert recovered.interval_seconds == pytest.approx(0.01)
    assert recovered.outcomes[0].status == JobStatus.DONE


def test_idle_tick_on_empty_queue(services: Services) -> None:
    result = _scheduler(services).tick()

    assert result.action == "idle"
    assert [outcome.claim_status for outcome in result.outcomes] == [ClaimStatus.EMPTY]


def test_parallel_tick_is_bounded_by_free_slots(services: Services) -> None:
    for index in range(4):
        _shell_job(services, f"batch-{index}")
    services.jobs.set_runtime_setting(key=PARALLEL_JOBS_KEY, value={"count": 4})
    services.jobs.set_runtime_setting(key=MAX_CONCURRENCY_KEY, value={"limit": 3})

    result = _scheduler(services).tick()

    assert result.action == "ran"
    assert len(result.outcomes) == 3
    assert services.jobs.count_by_status() == {"done": 3, "queued": 1}


def test_run_loop_stops_after_max_ticks(services: Services) -> None:
    _shell_job(services, "first")
    _shell_job(services, "second")

    summary = _scheduler(services).run_loop(max_ticks=3)

    assert summary.ticks == 3
    assert summary.claimed == 2
    assert summary.idle == 1
    assert summary.skipped == 0


def test_run_loop_counts_skipped_ticks(services: Services) -> None:
    services.jobs.set_runtime_setting(key=PAUSE_ALL_KEY, value={"enabled": True})

    summary = _scheduler(services).run_loop(max_ticks=2)

    assert (summary.ticks, summary.skipped, summary.claimed) == (2, 2, 0)


def test_request_stop_ends_loop_before_first_tick(services: Services) -> None:
    scheduler = _scheduler(services)
    scheduler.request_stop()

    assert scheduler.run_loop().ticks == 0
    assert services.runner.shutdown_requested is not None
    assert services.runner.shutdown_requested() is True
