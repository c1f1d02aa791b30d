from __future__ import annotations

import json

import allure

from mission_control.orchestrator.models import (
    ClaimStatus,
    FailureClass,
    JobCreate,
    JobStatus,
    JobType,
    NotificationCategory,
    NotificationPriority,
)
from mission_control.org.models import AgentCreate
from mission_control.services import Services

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Claim and Run"),
]

PASSING_REVIEW = json.dumps(
    {
        "completeness": 8,
        "accuracy": 8,
        "actionability": 7,
        "revenue_relevance": 6,
        "evidence": 7,
        "feedback": "Solid work.",
    },
)
FAILING_REVIEW = json.dumps(
    {
        "completeness": 3,
        "accuracy": 4,
        "actionability": 2,
        "revenue_relevance": 2,
        "evidence": 3,
        "feedback": "Cite your sources.",
    },
)


def _enqueue(services: Services, title: str, prompt: str, **overrides):
    return services.jobs.enqueue_job(
        JobCreate(title=title, engine="claude", prompt_text=prompt, **overrides),
    )


def test_run_once_on_empty_queue_reports_empty(services: Services) -> None:
    outcome = services.runner.run_once()

    assert outcome.claim_status == ClaimStatus.EMPTY
    assert outcome.to_payload() == {"ok": True, "message": "no queued jobs"}


def test_successful_task_moves_to_reviewing_and_queues_review(services: Services) -> None:
    job = _enqueue(services, "Summarise market", "Summarise the market.\nECHO_RESULT=hello world")

    outcome = services.runner.run_once()

    assert outcome.claim_status == ClaimStatus.CLAIMED
    assert outcome.status == JobStatus.REVIEWING
    assert outcome.result == "hello world"
    assert outcome.recorded is True
    assert outcome.post_action == "review-queued"

    finished = services.jobs.require_job(job_id=job.job_id)
    assert finished.status == JobStatus.REVIEWING
    assert finished.result == "hello world"
    assert finished.claim_token is not None
    assert finished.evidence_log_path is not None
    assert finished.evidence_sha256 is not None
    assert finished.last_run["exit_code"] == 0

    details = services.jobs.get_job_details(job_id=job.job_id)
    assert details is not None
    assert sorted(artifact.kind for artifact in details.artifacts) == ["prompt", "stderr", "stdout"]
    assert [child.job_type for child in details.children] == [JobType.REVIEW]
    review = details.children[0]
    assert review.status == JobStatus.QUEUED
    assert review.priority == 2
    assert review.title == "Review: Summarise market"

    complete = services.notifications.list_notifications(category=NotificationCategory.JOB_COMPLETE)
    assert [notice.source_id for notice in complete] == [job.job_id]


def test_shell_job_is_done_without_review(services: Services) -> None:
    job = services.jobs.enqueue_job(
        JobCreate(title="List files", engine="shell", command="echo shell-ok"),
    )

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.DONE
    assert outcome.result == "shell-ok"
    assert outcome.post_action == "qa-skipped"
    details = services.jobs.get_job_details(job_id=job.job_id)
    assert details is not None
    assert details.children == []


def test_smoke_test_title_skips_review(services: Services) -> None:
    _enqueue(services, "__SMOKE_TEST", "Ping.\nECHO_RESULT=pong")

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.DONE
    assert outcome.post_action == "qa-skipped"


def test_failed_run_is_classified_and_notified(services: Services) -> None:
    job = _enqueue(
        services,
        "Fetch data",
        "Fetch the data.\nECHO_MODE=fail\nECHO_ERROR=Rate limit exceeded, please retry",
    )

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.FAILED
    assert outcome.post_action == "none"
    failed = services.jobs.require_job(job_id=job.job_id)
    assert failed.failure_class == FailureClass.ENGINE_TRANSIENT
    assert failed.exit_code == 1
    assert "Rate limit" in (failed.last_error or "")
    assert failed.last_run["classification"]["matched_rule"] == "rate_limit_transient"
    assert (failed.evidence_log_path or "").endswith("stdout.log")
    assert failed.evidence_sha256 is None

    notices = services.notifications.list_notifications(category=NotificationCategory.JOB_FAILED)
    assert len(notices) == 1
    assert notices[0].priority == NotificationPriority.HIGH
    assert notices[0].metadata == {"failure_class": "engine_transient"}


def test_human_exit_code_pauses_job(services: Services) -> None:
    job = _enqueue(services, "Sign contract", "Sign it.\nECHO_MODE=human")

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.PAUSED_HUMAN
    paused = services.jobs.require_job(job_id=job.job_id)
    assert paused.failure_class is None
    assert paused.last_error == "needs a human decision"
    notices = services.notifications.list_notifications(
        category=NotificationCategory.APPROVAL_NEEDED,
    )
    assert [notice.priority for notice in notices] == [NotificationPriority.URGENT]


def test_output_without_envelope_is_invalid_json(services: Services) -> None:
    job = _enqueue(services, "Garbage", "Say something.\nECHO_MODE=garbage")

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.FAILED
    assert services.jobs.require_job(job_id=job.job_id).failure_class == (
        FailureClass.OUTPUT_INVALID_JSON
    )


def test_timeout_is_classified(services: Services) -> None:
    services.runner.settings.timeout_seconds = 1
    job = _enqueue(services, "Slow job", "Think hard.\nECHO_MODE=sleep\nECHO_SLEEP=10")

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.FAILED
    failed = services.jobs.require_job(job_id=job.job_id)
    assert failed.failure_class == FailureClass.TIMEOUT
    assert failed.last_error == "Timed out after 1s."
    assert failed.last_run["timed_out"] is True


def test_missing_engine_binary_fails_non_retryable(services: Services) -> None:
    services.runner.settings.command_templates["claude"] = (
        "mission-control-no-such-binary --prompt-file {prompt_file}"
    )
    job = _enqueue(services, "Broken engine", "Anything.")

    outcome = services.runner.run_once()

    assert outcome.status == JobStatus.FAILED
    failed = services.jobs.require_job(job_id=job.job_id)
    assert failed.failure_class == FailureClass.ENGINE_NON_RETRYABLE
    assert "Engine command not found" in (failed.last_error or "")


def test_passing_review_completes_parent_and_updates_agent(services: Services) -> None:
    coder = services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    qa = services.org.add_agent(AgentCreate(name="Quinn", role="qa"))
    job = _enqueue(services, "Build landing page", f"Build it.\nECHO_RESULT={PASSING_REVIEW}")

    first = services.runner.run_once()
    assert first.status == JobStatus.REVIEWING
    assert services.jobs.require_job(job_id=job.job_id).agent_id == coder.agent_id

    review_run = services.runner.run_once()
    assert review_run.status == JobStatus.DONE
    assert review_run.post_action == "scored"

    parent = services.jobs.require_job(job_id=job.job_id)
    assert parent.status == JobStatus.DONE
    assert parent.quality_score == 36
    assert parent.review_notes == "Solid work."

    reviews = services.jobs.list_reviews(job_id=job.job_id)
    assert len(reviews) == 1
    assert reviews[0].passed is True
    assert reviews[0].reviewer_agent_id == qa.agent_id
    assert reviews[0].reviewed_agent_id == coder.agent_id

    stats = services.org.require_agent(agent_id=coder.agent_id)
    assert stats.total_jobs_completed == 1
    assert stats.consecutive_failures == 0
    assert stats.quality_score_avg == 36


def test_failing_review_rejects_parent(services: Services) -> None:
    coder = services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    job = _enqueue(services, "Write report", f"Write it.\nECHO_RESULT={FAILING_REVIEW}")

    services.runner.run_once()
    services.runner.run_once()

    parent = services.jobs.require_job(job_id=job.job_id)
    assert parent.status == JobStatus.REJECTED
    assert parent.quality_score == 14
    assert services.org.require_agent(agent_id=coder.agent_id).consecutive_failures == 1

    # A rejected job can be re-queued and carries the feedback into its next prompt.
    assert services.jobs.requeue_job(job_id=job.job_id) is True
    prompt = services.composer.compose_prompt(job_id=job.job_id, agent_id=coder.agent_id)
    assert "Cite your sources." in prompt


def test_run_parallel_claims_up_to_max_jobs(services: Services) -> None:
    for index in range(3):
        services.jobs.enqueue_job(
            JobCreate(title=f"shell-{index}", engine="shell", command=f"echo {index}"),
        )

    outcomes = services.runner.run_parallel(max_jobs=2)

    assert len(outcomes) == 2
    assert {outcome.status for outcome in outcomes} == {JobStatus.DONE}
    assert services.jobs.count_by_status() == {"done": 2, "queued": 1}


def test_run_parallel_on_empty_queue(services: Services) -> None:
    outcomes = services.runner.run_parallel(max_jobs=3)

    assert [outcome.claim_status for outcome in outcomes] == [ClaimStatus.EMPTY]
