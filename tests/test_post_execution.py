from __future__ import annotations

import json

import allure

from mission_control.orchestrator.models import (
    FailureClass,
    JobCreate,
    JobFinish,
    JobStatus,
    JobType,
)
from mission_control.orchestrator.post_execution import build_review_prompt, needs_review
from mission_control.org.models import AgentCreate
from mission_control.services import Services

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Post-Execution Routing"),
]


def _settle_as_failed(services: Services, job_id: str) -> None:
    claim = services.jobs.claim_job(job_id=job_id, runner_id="manual")
    assert claim.job is not None and claim.job.claim_token is not None
    assert services.jobs.finish_job(
        JobFinish(
            job_id=job_id,
            claim_token=claim.job.claim_token,
            status=JobStatus.FAILED,
            result=None,
            last_run={},
            error="needs splitting",
            exit_code=1,
            failure_class=FailureClass.ENGINE_NON_RETRYABLE,
        ),
    )


def test_needs_review_only_for_plain_llm_tasks(services: Services) -> None:
    task = services.jobs.enqueue_job(JobCreate(title="t", engine="claude", prompt_text="x"))
    shell = services.jobs.enqueue_job(JobCreate(title="s", engine="shell", command="true"))
    review = services.jobs.enqueue_job(
        JobCreate(title="r", engine="claude", prompt_text="x", job_type=JobType.REVIEW),
    )

    assert needs_review(task) is True
    assert needs_review(shell) is False
    assert needs_review(review) is False


def test_review_prompt_carries_instructions_and_output(services: Services) -> None:
    job = services.jobs.enqueue_job(
        JobCreate(title="Pricing page", engine="claude", prompt_text="Draft pricing copy."),
    )

    prompt = build_review_prompt(job, "Three tiers: free, pro, team.")

    assert "## Job Under Review: Pricing page" in prompt
    assert "Draft pricing copy." in prompt
    assert "Three tiers: free, pro, team." in prompt
    assert '"revenue_relevance"' in prompt
    assert "(no output)" in build_review_prompt(job, None)


def test_fan_in_queues_one_integration_job(services: Services) -> None:
    parent = services.jobs.enqueue_job(
        JobCreate(title="Launch site", engine="claude", prompt_text="Launch.", priority=10),
    )
    for name in ("assets", "dns"):
        services.jobs.enqueue_job(
            JobCreate(
                title=f"Prepare {name}",
                engine="shell",
                command=f"echo {name}",
                priority=1,
                parent_job_id=parent.job_id,
            ),
        )

    first = services.runner.run_once()
    assert first.status == JobStatus.DONE
    assert services.jobs.find_integration_job(parent_job_id=parent.job_id) is None

    second = services.runner.run_once()
    assert second.status == JobStatus.DONE
    integration = services.jobs.find_integration_job(parent_job_id=parent.job_id)
    assert integration is not None
    assert integration.job_type == JobType.INTEGRATION
    assert integration.priority == 3
    assert integration.title == "Integrate: Launch site"
    assert "Prepare assets (done)" in (integration.prompt_text or "")

    # Replaying the last child's completion must not create a second integration job.
    last_child = services.jobs.require_job(job_id=second.job_id or "")
    replay = services.post_execution.handle(last_child, result="dns")
    assert replay.integration_job_id is None
    integrations = [
        child
        for child in services.jobs.list_children(parent_job_id=parent.job_id)
        if child.job_type == JobType.INTEGRATION
    ]
    assert len(integrations) == 1


def test_fan_in_waits_for_failed_sibling(services: Services) -> None:
    parent = services.jobs.enqueue_job(
        JobCreate(title="Parent", engine="claude", prompt_text="p", priority=10),
    )
    services.jobs.enqueue_job(
        JobCreate(
            title="ok child",
            engine="shell",
            command="echo ok",
            priority=1,
            parent_job_id=parent.job_id,
        ),
    )
    services.jobs.enqueue_job(
        JobCreate(
            title="broken child",
            engine="shell",
            command="echo broken >&2; exit 3",
            priority=1,
            parent_job_id=parent.job_id,
        ),
    )

    services.runner.run_once()
    broken = services.runner.run_once()

    assert broken.status == JobStatus.FAILED
    assert broken.error == "broken"
    assert services.jobs.find_integration_job(parent_job_id=parent.job_id) is None


def test_decomposition_job_creates_children_end_to_end(services: Services) -> None:
    orchestrator = services.org.add_agent(AgentCreate(name="Chief", role="orchestrator"))
    coder = services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    subtasks = json.dumps(
        [
            {"title": "Design hero", "suggested_agent": "codey", "priority": "2"},
            {
                "title": "Ship build",
                "suggested_agent": "Nobody",
                "priority": 42,
                "estimated_engine": "shell",
                "prompt_text": "echo shipped",
            },
            {"title": "", "suggested_agent": "Codey"},
        ],
    )
    job = services.jobs.enqueue_job(
        JobCreate(
            title="Launch landing page",
            engine="claude",
            prompt_text=f"Plan the launch.\nECHO_RESULT={subtasks}",
        ),
    )
    _settle_as_failed(services, job.job_id)

    decomposition = services.decomposer.request_decomposition(job_id=job.job_id)
    assert decomposition.job_type == JobType.DECOMPOSITION
    assert decomposition.agent_id == orchestrator.agent_id
    assert decomposition.parent_job_id == job.job_id
    assert "Codey (coder" in (decomposition.prompt_text or "")

    outcome = services.runner.run_once()
    assert outcome.job_id == decomposition.job_id
    assert outcome.status == JobStatus.DONE
    assert outcome.post_action == "decomposed"

    children = [
        child
        for child in services.jobs.list_children(parent_job_id=job.job_id)
        if child.job_type == JobType.TASK
    ]
    assert [child.title for child in children] == ["Design hero", "Ship build"]
    design, ship = children
    assert design.agent_id == coder.agent_id
    assert design.priority == 2
    assert design.engine == "claude"
    assert design.prompt_text == "Design hero"
    assert ship.agent_id is None
    assert ship.priority == 10
    assert ship.engine == "shell"
    assert ship.command == "echo shipped"


def test_malformed_decomposition_creates_nothing(services: Services) -> None:
    job = services.jobs.enqueue_job(
        JobCreate(title="Vague", engine="claude", prompt_text="Plan.\nECHO_RESULT=no idea"),
    )
    _settle_as_failed(services, job.job_id)
    services.decomposer.request_decomposition(job_id=job.job_id)

    outcome = services.runner.run_once()

    assert outcome.post_action == "decomposed"
    assert [
        child.job_type for child in services.jobs.list_children(parent_job_id=job.job_id)
    ] == [JobType.DECOMPOSITION]


def test_entries_without_suggested_agent_are_dropped(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Chief", role="orchestrator"))
    services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    job = services.jobs.enqueue_job(
        JobCreate(title="Launch newsletter", engine="claude", prompt_text="Plan it."),
    )
    _settle_as_failed(services, job.job_id)
    decomposition = services.decomposer.request_decomposition(job_id=job.job_id)
    result = "Plan [v1] follows:\n" + json.dumps(
        [
            {"title": "Write issue", "suggested_agent": "Codey"},
            {"title": "Pick sponsor"},
            {"title": "Send issue", "suggested_agent": "Codey", "priority": 3},
        ],
    )

    children = services.decomposer.apply(decomposition_job=decomposition, result=result)

    assert [child.title for child in children] == ["Write issue", "Send issue"]
    assert {child.parent_job_id for child in children} == {job.job_id}
    assert services.jobs.require_job(job_id=job.job_id).status == JobStatus.FAILED


def test_post_execution_errors_do_not_escape_the_runner(services: Services, monkeypatch) -> None:
    job = services.jobs.enqueue_job(JobCreate(title="echo", engine="shell", command="echo hi"))

    def _explode(*_args, **_kwargs):
        raise RuntimeError("router broke")

    monkeypatch.setattr(services.runner.post_execution, "handle", _explode)

    outcome = services.runner.run_once()

    assert outcome.job_id == job.job_id
    assert outcome.status == JobStatus.DONE
    assert outcome.post_action == "error"
    assert services.jobs.require_job(job_id=job.job_id).status == JobStatus.DONE
