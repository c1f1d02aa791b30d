from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import replace

import allure
import pytest
from fastapi.testclient import TestClient

from mission_control.api.app import create_app
from mission_control.orchestrator.models import JobCreate, JobStatus
from mission_control.org.models import AgentCreate
from mission_control.services import Services, build_services

pytestmark = [
    allure.epic("HTTP API"),
    allure.feature("Jobs and Chat"),
]

TOKEN = "runner-secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture()
def api_services(settings) -> Iterator[Services]:
    built = build_services(replace(settings, api=replace(settings.api, runner_token=TOKEN)))
    try:
        yield built
    finally:
        built.close()


@pytest.fixture()
def client(api_services: Services) -> Iterator[TestClient]:
    with TestClient(create_app(services=api_services)) as test_client:
        yield test_client


def _shell_job(services: Services, title: str = "echo"):
    return services.jobs.enqueue_job(
        JobCreate(title=title, engine="shell", command=f"echo {title}"),
    )


def test_health_is_public(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_mutations_need_configured_token(settings) -> None:
    services = build_services(settings)
    try:
        with TestClient(create_app(services=services)) as unconfigured:
            response = unconfigured.post(
                "/api/jobs",
                json={"title": "x", "prompt": "y"},
                headers=AUTH,
            )
    finally:
        services.close()

    assert response.status_code == 503


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer wrong"}, {"Authorization": f"Basic {TOKEN}"}],
)
def test_mutations_reject_bad_tokens(client: TestClient, headers: dict[str, str]) -> None:
    response = client.post("/api/jobs/run-once", headers=headers)

    assert response.status_code == 401


def test_enqueue_and_read_job(client: TestClient, api_services: Services) -> None:
    api_services.org.add_agent(AgentCreate(name="Codey", role="coder"))

    created = client.post(
        "/api/jobs",
        json={"title": "Write tests", "prompt": "Cover the API.", "agent_name": "codey"},
        headers=AUTH,
    )

    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "queued"
    assert body["engine"] == "claude"
    assert body["priority"] == 5

    listed = client.get("/api/jobs", params={"status": "queued"})
    assert [job["job_id"] for job in listed.json()] == [body["job_id"]]

    details = client.get(f"/api/jobs/{body['job_id']}")
    assert details.status_code == 200
    assert [event["event_type"] for event in details.json()["events"]] == ["enqueued"]


@pytest.mark.parametrize(
    ("payload", "code"),
    [
        ({"title": "x", "prompt": "y", "engine": "cobol"}, 400),
        ({"title": "x", "engine": "shell"}, 400),
        ({"title": "   ", "prompt": "y"}, 400),
        ({"title": "x", "prompt": "y", "priority": 0}, 422),
        ({"title": "x", "prompt": "y", "agent_name": "Ghost"}, 404),
    ],
)
def test_enqueue_validation(client: TestClient, payload: dict[str, object], code: int) -> None:
    assert client.post("/api/jobs", json=payload, headers=AUTH).status_code == code


def test_unknown_job_and_status(client: TestClient) -> None:
    assert client.get("/api/jobs/missing").status_code == 404
    assert client.get("/api/jobs", params={"status": "bogus"}).status_code == 400


def test_run_once(client: TestClient, api_services: Services) -> None:
    empty = client.post("/api/jobs/run-once", headers=AUTH)
    assert empty.json() == {"ok": True, "message": "no queued jobs"}

    job = _shell_job(api_services, "api-run")
    ran = client.post("/api/jobs/run-once", headers=AUTH)

    assert ran.status_code == 200
    assert ran.json() == {
        "ok": True,
        "job_id": job.job_id,
        "status": "done",
        "result": "api-run",
        "error": None,
    }


def test_run_parallel_is_capped(client: TestClient, api_services: Services) -> None:
    for index in range(7):
        _shell_job(api_services, f"batch-{index}")

    response = client.post("/api/jobs/run-parallel", json={"max_jobs": 50}, headers=AUTH)

    assert response.status_code == 200
    assert len(response.json()["results"]) == 5
    assert api_services.jobs.count_by_status() == {"done": 5, "queued": 2}


def test_requeue_and_approve_map_domain_errors(client: TestClient, api_services: Services) -> None:
    queued = _shell_job(api_services)
    running = _shell_job(api_services, "running")
    api_services.jobs.claim_job(job_id=running.job_id, runner_id="elsewhere")

    missing = client.post("/api/jobs/missing/requeue", json={}, headers=AUTH)
    conflict = client.post(f"/api/jobs/{running.job_id}/requeue", json={}, headers=AUTH)
    noop = client.post(f"/api/jobs/{queued.job_id}/requeue", json={}, headers=AUTH)
    forced = client.post(
        f"/api/jobs/{running.job_id}/requeue",
        json={"force_stalled": True},
        headers=AUTH,
    )
    approve = client.post(f"/api/jobs/{queued.job_id}/approve", json={}, headers=AUTH)

    assert missing.status_code == 404
    assert conflict.status_code == 409
    assert noop.json()["requeued"] is False
    assert forced.json()["requeued"] is True
    assert approve.status_code == 409
    assert api_services.jobs.require_job(job_id=running.job_id).status == JobStatus.QUEUED


def test_chat_streams_server_sent_events(client: TestClient) -> None:
    response = client.post("/api/chat", json={"message": "sitrep"}, headers=AUTH)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [
        json.loads(chunk.removeprefix("data: "))
        for chunk in response.text.split("\n\n")
        if chunk.startswith("data: ")
    ]
    assert [event["type"] for event in events] == ["text", "done"]
    assert events[0]["content"].startswith("**Situation report:**")
    assert events[1]["tier"] == "quick-path"


def test_chat_rejects_empty_message(client: TestClient) -> None:
    assert client.post("/api/chat", json={"message": "  "}, headers=AUTH).status_code == 400
