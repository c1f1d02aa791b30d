"""FastAPI application: job queue, claim-and-run and the chat stream."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from mission_control import __version__
from mission_control.api.auth import require_runner_token
from mission_control.api.schemas import (
    MAX_PARALLEL_JOBS,
    ApproveRequest,
    ChatRequest,
    JobCreateRequest,
    JobDetailsOut,
    JobEventOut,
    JobOut,
    RequeueRequest,
    RunParallelRequest,
)
from mission_control.config import KNOWN_ENGINES, Settings
from mission_control.orchestrator.models import ClaimStatus, JobCreate, JobSource, JobStatus
from mission_control.services import Services, build_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_services(request: Request) -> Services:
    return request.app.state.services


@router.get("/health")
def health() -> dict[str, object]:
    return {"ok": True, "version": __version__}


@router.post(
    "/jobs",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_runner_token)],
)
def enqueue_job(payload: JobCreateRequest, request: Request) -> JobOut:
    services = get_services(request)
    engine = (payload.engine or services.settings.engine.primary_engine).strip().lower()
    if engine not in KNOWN_ENGINES:
        raise HTTPException(status_code=400, detail=f"Unsupported engine: {engine!r}")
    with _domain_errors():
        agent_id = None
        if payload.agent_name:
            agent = services.org.get_agent_by_name(name=payload.agent_name)
            if agent is None:
                raise HTTPException(status_code=404, detail=f"Unknown agent: {payload.agent_name}")
            agent_id = agent.agent_id
        project_id = None
        if payload.project_name:
            project = services.org.get_project_by_name(name=payload.project_name)
            if project is None:
                raise HTTPException(
                    status_code=404,
                    detail=f"Unknown project: {payload.project_name}",
                )
            project_id = project.project_id
        job = services.jobs.enqueue_job(
            JobCreate(
                title=payload.title,
                engine=engine,
                prompt_text=payload.prompt,
                command=payload.command,
                source=JobSource.API,
                priority=payload.priority,
                parent_job_id=payload.parent_job_id,
                agent_id=agent_id,
                project_id=project_id,
                mcp_servers=tuple(payload.mcp_servers),
            ),
        )
    return JobOut.from_view(job)


@router.get("/jobs")
def list_jobs(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = 50,
) -> list[JobOut]:
    status_value = None
    if status_filter is not None:
        try:
            status_value = JobStatus(status_filter)
        except ValueError as error:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported status: {status_filter}",
            ) from error
    jobs = get_services(request).jobs.list_jobs(status=status_value, limit=max(1, min(limit, 500)))
    return [JobOut.from_view(job) for job in jobs]


@router.get("/jobs/{job_id}")
def get_job(job_id: str, request: Request) -> JobDetailsOut:
    details = get_services(request).jobs.get_job_details(job_id=job_id)
    if details is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return JobDetailsOut(
        job=JobOut.from_view(details.job),
        children=[JobOut.from_view(child) for child in details.children],
        events=[
            JobEventOut(
                event_type=event.event_type,
                status_from=event.status_from.value if event.status_from else None,
                status_to=event.status_to.value if event.status_to else None,
                created_at=event.created_at,
                details=event.details,
            )
            for event in details.events
        ],
    )


@router.post("/jobs/run-once", dependencies=[Depends(require_runner_token)])
def run_once(request: Request) -> JSONResponse:
    outcome = get_services(request).runner.run_once()
    code = status.HTTP_409_CONFLICT if outcome.claim_status == ClaimStatus.CONFLICT else 200
    return JSONResponse(status_code=code, content=outcome.to_payload())


@router.post("/jobs/run-parallel", dependencies=[Depends(require_runner_token)])
def run_parallel(payload: RunParallelRequest, request: Request) -> dict[str, object]:
    outcomes = get_services(request).runner.run_parallel(
        max_jobs=min(payload.max_jobs, MAX_PARALLEL_JOBS),
    )
    return {
        "ok": all(outcome.claim_status != ClaimStatus.CONFLICT for outcome in outcomes),
        "results": [outcome.to_payload() for outcome in outcomes],
    }


@router.post("/jobs/{job_id}/requeue", dependencies=[Depends(require_runner_token)])
def requeue_job(job_id: str, payload: RequeueRequest, request: Request) -> dict[str, object]:
    with _domain_errors():
        changed = get_services(request).jobs.requeue_job(
            job_id=job_id,
            force_stalled=payload.force_stalled,
        )
    return {"ok": True, "job_id": job_id, "requeued": changed}


@router.post("/jobs/{job_id}/approve", dependencies=[Depends(require_runner_token)])
def approve_job(job_id: str, payload: ApproveRequest, request: Request) -> JobOut:
    with _domain_errors():
        job = get_services(request).jobs.force_approve(job_id=job_id, note=payload.note)
    return JobOut.from_view(job)


@router.post("/chat", dependencies=[Depends(require_runner_token)])
def chat(payload: ChatRequest, request: Request) -> StreamingResponse:
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty.")
    events = get_services(request).assistant.respond(
        payload.message,
        has_images=payload.has_images,
    )
    return StreamingResponse(
        (event.to_sse() for event in events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


def create_app(settings: Settings | None = None, *, services: Services | None = None) -> FastAPI:
    """Build the app; `services` is injected by tests, otherwise built from settings."""

    owned = services is None
    app_services = services or build_services(settings or Settings.from_env())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if owned:
                app_services.close()

    app = FastAPI(title="Mission Control", version=__version__, lifespan=lifespan)
    app.state.services = app_services
    app.include_router(router)
    return app


@contextmanager
def _domain_errors() -> Iterator[None]:
    """Map repository errors to HTTP status codes."""

    try:
        yield
    except HTTPException:
        raise
    except RuntimeError as error:
        message = str(error)
        code = 404 if "not found" in message.lower() else status.HTTP_409_CONFLICT
        raise HTTPException(status_code=code, detail=message) from error
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
