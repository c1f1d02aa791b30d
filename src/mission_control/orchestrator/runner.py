"""Claim-and-run: execute one claimed job through its engine and record the outcome."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mission_control.config import EngineSettings
from mission_control.orchestrator.engine import (
    EngineRunError,
    EngineRunRequest,
    EngineRunResult,
    JobEngine,
)
from mission_control.orchestrator.failure_classifier import classify_engine_failure
from mission_control.orchestrator.models import (
    ClaimStatus,
    FailureClass,
    JobArtifactWrite,
    JobFinish,
    JobStatus,
    JobType,
    JobView,
    NotificationCategory,
    NotificationCreate,
    NotificationPriority,
)
from mission_control.orchestrator.notifications import NotificationRepository
from mission_control.orchestrator.output_parsing import parse_envelope, result_text
from mission_control.orchestrator.post_execution import PostExecutionRouter, needs_review
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.agent_router import AgentRouter
from mission_control.org.models import AgentView
from mission_control.org.prompt_composer import PromptComposer
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

SHELL_ENGINE = "shell"
NOTIFY_BODY_CHARS = 500


@dataclass(slots=True)
class RunOutcome:
    """Result of one claim-and-run attempt, as reported to CLI and API callers."""

    claim_status: ClaimStatus
    job_id: str | None = None
    status: JobStatus | None = None
    result: str | None = None
    error: str | None = None
    recorded: bool = False
    post_action: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.claim_status == ClaimStatus.EMPTY:
            return {"ok": True, "message": "no queued jobs"}
        if self.claim_status == ClaimStatus.CONFLICT:
            return {"ok": False, "job_id": self.job_id, "error": "claim conflict"}
        return {
            "ok": self.status in {JobStatus.DONE, JobStatus.REVIEWING},
            "job_id": self.job_id,
            "status": self.status.value if self.status is not None else None,
            "result": self.result,
            "error": self.error,
        }


@dataclass(slots=True)
class _RunStatus:
    status: JobStatus
    result: str | None
    error: str | None
    failure_class: FailureClass | None
    details: dict[str, object]


class JobRunner:
    """Executes claimed jobs; the claim token guards every terminal write."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        notifications: NotificationRepository,
        router: AgentRouter,
        composer: PromptComposer,
        post_execution: PostExecutionRouter,
        engine: JobEngine,
        settings: EngineSettings,
        runner_id: str,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.notifications = notifications
        self.router = router
        self.composer = composer
        self.post_execution = post_execution
        self.engine = engine
        self.settings = settings
        self.runner_id = runner_id
        self.shutdown_requested = shutdown_requested

    def run_once(self) -> RunOutcome:
        """Claim the next queued job and run it to completion."""

        claim = self.jobs.claim_next_job(runner_id=self.runner_id)
        if not claim.claimed or claim.job is None:
            return RunOutcome(claim_status=claim.status, job_id=claim.job_id)
        return self.execute(claim.job)

    def run_parallel(self, *, max_jobs: int) -> list[RunOutcome]:
        """Claim up to `max_jobs` jobs one by one and run them concurrently."""

        outcomes: list[RunOutcome] = []
        claimed: list[JobView] = []
        for candidate in self.jobs.list_claim_candidates(limit=max_jobs):
            claim = self.jobs.claim_job(job_id=candidate.job_id, runner_id=self.runner_id)
            if claim.claimed and claim.job is not None:
                claimed.append(claim.job)
            else:
                outcomes.append(RunOutcome(claim_status=claim.status, job_id=candidate.job_id))
        if not claimed:
            if not outcomes:
                outcomes.append(RunOutcome(claim_status=ClaimStatus.EMPTY))
            return outcomes

        with ThreadPoolExecutor(max_workers=len(claimed)) as pool:
            futures = [pool.submit(self.execute, job) for job in claimed]
            for job, future in zip(claimed, futures, strict=True):
                try:
                    outcomes.append(future.result())
                except Exception as error:
                    logger.exception("parallel-run-error job=%s", job.job_id)
                    outcomes.append(
                        RunOutcome(
                            claim_status=ClaimStatus.CLAIMED,
                            job_id=job.job_id,
                            error=str(error),
                        ),
                    )
        return outcomes

    def execute(self, job: JobView) -> RunOutcome:
        """Run a job already claimed by this runner."""

        if job.claim_token is None:
            raise RuntimeError(f"Job has no claim token: {job.job_id}")

        route = self.router.route_job(job_id=job.job_id)
        agent = self.org.get_agent(agent_id=route.agent_id) if route is not None else None
        model = self._model_for(job, agent)
        mcp_servers = self._mcp_servers(job, agent)
        request = EngineRunRequest(
            job_id=job.job_id,
            engine=job.engine,
            command_template=self.settings.command_templates.get(job.engine, ""),
            model=model,
            prompt=self._prompt_for(job, agent),
            workdir=Path(self.settings.workdir_root) / job.job_id / job.claim_token,
            timeout_seconds=self.settings.timeout_seconds,
            command=job.command,
            mcp_servers=mcp_servers,
            shutdown_requested=self.shutdown_requested,
        )
        last_run: dict[str, Any] = {
            "engine": job.engine,
            "model": model,
            "agent_id": agent.agent_id if agent is not None else None,
            "runner_id": self.runner_id,
            "mcp_servers": mcp_servers,
            "workdir": str(request.workdir),
        }

        try:
            execution = self.engine.run(request)
        except EngineRunError as error:
            failure_class = (
                FailureClass.ENGINE_TRANSIENT
                if error.transient
                else FailureClass.ENGINE_NON_RETRYABLE
            )
            run_status = _RunStatus(
                status=JobStatus.FAILED,
                result=None,
                error=str(error),
                failure_class=failure_class,
                details={"reason_code": f"{job.engine}_engine_run_error"},
            )
            return self._record(job, run_status=run_status, last_run=last_run, execution=None)

        last_run.update(
            {
                "exit_code": execution.exit_code,
                "timed_out": execution.timed_out,
                "duration_ms": execution.duration_ms,
            },
        )
        run_status = self._evaluate(job, execution=execution, model=model)
        return self._record(job, run_status=run_status, last_run=last_run, execution=execution)

    def _evaluate(self, job: JobView, *, execution: EngineRunResult, model: str) -> _RunStatus:
        stdout = _read_text(execution.stdout_path)
        stderr = _read_text(execution.stderr_path)
        envelope = parse_envelope(stdout=stdout, stderr=stderr)
        result = result_text(envelope.get("result"))

        if envelope.get("ok") is True and not execution.timed_out:
            status = JobStatus.REVIEWING if needs_review(job) else JobStatus.DONE
            return _RunStatus(
                status=status,
                result=result,
                error=None,
                failure_class=None,
                details={},
            )

        if (
            not execution.timed_out
            and execution.exit_code == self.settings.human_intervention_exit_code
        ):
            return _RunStatus(
                status=JobStatus.PAUSED_HUMAN,
                result=result,
                error=str(envelope.get("error") or "Human intervention requested."),
                failure_class=None,
                details={},
            )

        error = (
            f"Timed out after {self.settings.timeout_seconds}s."
            if execution.timed_out
            else str(envelope.get("error") or f"Engine exited with code {execution.exit_code}.")
        )
        classification = classify_engine_failure(
            engine=job.engine,
            exit_code=execution.exit_code,
            error=error,
            stderr=stderr,
            timed_out=execution.timed_out,
            transient_exit_codes=self.settings.transient_exit_codes,
        )
        return _RunStatus(
            status=JobStatus.FAILED,
            result=result,
            error=error,
            failure_class=classification.failure_class,
            details=classification.to_event_details(engine=job.engine, model=model),
        )

    def _record(
        self,
        job: JobView,
        *,
        run_status: _RunStatus,
        last_run: dict[str, Any],
        execution: EngineRunResult | None,
    ) -> RunOutcome:
        if job.claim_token is None:
            raise RuntimeError(f"Job has no claim token: {job.job_id}")

        evidence_path: str | None = None
        evidence_sha: str | None = None
        if execution is not None:
            for kind, path in (
                ("prompt", execution.prompt_path),
                ("stdout", execution.stdout_path),
                ("stderr", execution.stderr_path),
            ):
                if path.exists():
                    self.jobs.add_artifact(
                        job_id=job.job_id,
                        artifact=JobArtifactWrite(
                            kind=kind,
                            path=str(path),
                            size_bytes=path.stat().st_size,
                            checksum_sha256=_sha256(path),
                        ),
                    )
            if execution.stdout_path.exists():
                evidence_path = str(execution.stdout_path)
                if run_status.status in {JobStatus.DONE, JobStatus.REVIEWING}:
                    evidence_sha = _sha256(execution.stdout_path)
        if run_status.details:
            last_run["classification"] = run_status.details

        recorded = self.jobs.finish_job(
            JobFinish(
                job_id=job.job_id,
                claim_token=job.claim_token,
                status=run_status.status,
                result=run_status.result,
                last_run=last_run,
                error=run_status.error,
                exit_code=execution.exit_code if execution is not None else None,
                failure_class=run_status.failure_class,
                evidence_log_path=evidence_path,
                evidence_sha256=evidence_sha,
            ),
        )
        outcome = RunOutcome(
            claim_status=ClaimStatus.CLAIMED,
            job_id=job.job_id,
            status=run_status.status,
            result=run_status.result,
            error=run_status.error,
            recorded=recorded,
        )
        if not recorded:
            return outcome

        logger.info(
            "finished job=%s status=%s failure_class=%s",
            job.job_id,
            run_status.status.value,
            run_status.failure_class.value if run_status.failure_class is not None else "-",
        )
        finished = self.jobs.require_job(job_id=job.job_id)
        self._notify(finished)
        try:
            outcome.post_action = self.post_execution.handle(
                finished,
                result=run_status.result,
            ).action
        except (RuntimeError, ValueError):
            logger.exception("post-exec-error job=%s", job.job_id)
            outcome.post_action = "error"
        return outcome

    def _notify(self, job: JobView) -> None:
        if job.status == JobStatus.FAILED:
            self.notifications.emit(
                NotificationCreate(
                    title=f"Job failed: {job.title}",
                    body=(job.last_error or "")[:NOTIFY_BODY_CHARS],
                    category=NotificationCategory.JOB_FAILED,
                    priority=NotificationPriority.HIGH,
                    source_type="job",
                    source_id=job.job_id,
                    metadata={
                        "failure_class": job.failure_class.value if job.failure_class else None,
                    },
                ),
            )
            return
        if job.status == JobStatus.PAUSED_HUMAN:
            self.notifications.emit(
                NotificationCreate(
                    title=f"Approval needed: {job.title}",
                    body=(job.last_error or "")[:NOTIFY_BODY_CHARS],
                    category=NotificationCategory.APPROVAL_NEEDED,
                    priority=NotificationPriority.URGENT,
                    source_type="job",
                    source_id=job.job_id,
                ),
            )
            return
        if job.job_type != JobType.TASK or job.board_id is not None:
            return
        deploy = "deploy" in job.title.lower()
        self.notifications.emit(
            NotificationCreate(
                title=f"{'Deploy ready' if deploy else 'Job complete'}: {job.title}",
                body=(job.result or "")[:NOTIFY_BODY_CHARS],
                category=NotificationCategory.DEPLOY_READY
                if deploy
                else NotificationCategory.JOB_COMPLETE,
                priority=NotificationPriority.HIGH if deploy else NotificationPriority.NORMAL,
                source_type="job",
                source_id=job.job_id,
            ),
        )

    def _prompt_for(self, job: JobView, agent: AgentView | None) -> str:
        if job.engine == SHELL_ENGINE:
            return job.command or job.prompt_text or job.title
        if agent is not None:
            return self.composer.compose_prompt(job_id=job.job_id, agent_id=agent.agent_id)
        return job.prompt_text or job.title

    def _model_for(self, job: JobView, agent: AgentView | None) -> str:
        if agent is not None and agent.model_id and agent.default_engine == job.engine:
            return agent.model_id
        return self.settings.models.get(job.engine, "")

    def _mcp_servers(self, job: JobView, agent: AgentView | None) -> list[str]:
        servers = set(job.mcp_servers)
        if agent is not None:
            servers.update(
                skill.mcp_server_name
                for skill in self.org.list_agent_skills(agent_id=agent.agent_id)
                if skill.mcp_server_name
            )
        return sorted(servers)


def _read_text(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text("utf-8", errors="replace")


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(65_536), b""):
            digest.update(chunk)
    return digest.hexdigest()
