from __future__ import annotations

import allure
import pytest

from mission_control.orchestrator.models import JobCreate, JobType
from mission_control.orchestrator.repository import MASTER_INTENT_KEY
from mission_control.org.agent_router import select_agent
from mission_control.org.models import AgentCreate, AgentStatus
from mission_control.org.project_spec import (
    format_master_intent_for_prompt,
    format_spec_for_prompt,
    parse_master_intent,
    parse_project_spec,
)
from mission_control.services import Services

pytestmark = [
    allure.epic("Agent Workforce"),
    allure.feature("Routing and Prompts"),
]


def _job(services: Services, title: str, **overrides):
    overrides.setdefault("engine", "claude")
    overrides.setdefault("prompt_text", "Do it.")
    return services.jobs.enqueue_job(JobCreate(title=title, **overrides))


def _route(services: Services, job, load: dict[str, int] | None = None):
    return select_agent(
        job=job,
        agents=services.org.list_agents(),
        load=load or {},
        preferred_department=None,
        primary_engine="claude",
    )


def test_agent_registry_rejects_duplicates_and_bad_input(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Codey", role="Coder"))

    with pytest.raises(ValueError, match="already exists"):
        services.org.add_agent(AgentCreate(name="codey", role="coder"))
    with pytest.raises(ValueError, match="Unknown engine"):
        services.org.add_agent(AgentCreate(name="X", role="coder", default_engine="cobol"))
    with pytest.raises(ValueError, match="cost tier"):
        services.org.add_agent(AgentCreate(name="Y", role="coder", cost_tier="lavish"))

    agent = services.org.get_agent_by_name(name=" CODEY ")
    assert agent is not None
    assert agent.role == "coder"
    assert services.org.resolve_agent_ids(["codey", "ghost", ""]) == {"codey": agent.agent_id}


def test_role_and_keyword_routes(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    qa = services.org.add_agent(AgentCreate(name="Quinn", role="qa"))
    chief = services.org.add_agent(AgentCreate(name="Chief", role="orchestrator"))
    analyst = services.org.add_agent(AgentCreate(name="Ada", role="analyst"))
    ops = services.org.add_agent(AgentCreate(name="Otto", role="ops"))

    review = _route(services, _job(services, "Review: x", job_type=JobType.REVIEW))
    integration = _route(services, _job(services, "Integrate: x", job_type=JobType.INTEGRATION))
    finance = _route(services, _job(services, "Q3 Budget projection"))
    security = _route(services, _job(services, "Security audit of API"))

    assert review is not None and review.agent_id == qa.agent_id
    assert review.reason == "QA review assignment"
    assert integration is not None and integration.agent_id == chief.agent_id
    assert finance is not None and finance.agent_id == analyst.agent_id
    assert finance.reason == "Finance keyword match"
    assert security is not None and security.agent_id == ops.agent_id


def test_scored_route_prefers_cheap_high_quality_idle_agents(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Chief", role="orchestrator", cost_tier="free"))
    pricey = services.org.add_agent(AgentCreate(name="Pricey", role="coder", cost_tier="high"))
    cheap = services.org.add_agent(AgentCreate(name="Cheap", role="coder", cost_tier="low"))
    twin = services.org.add_agent(AgentCreate(name="Twin", role="coder", cost_tier="low"))
    job = _job(services, "Write landing copy")

    decision = _route(services, job)
    assert decision is not None
    # Ties go to the earlier registered agent; orchestrators never take plain tasks.
    assert decision.agent_id == cheap.agent_id
    assert decision.reason.startswith("Best match: dept=no, cost=low")

    busy = _route(services, job, load={cheap.agent_id: 1})
    assert busy is not None and busy.agent_id == twin.agent_id

    services.org.set_agent_status(agent_id=cheap.agent_id, status=AgentStatus.PAUSED)
    services.org.set_agent_status(agent_id=twin.agent_id, status=AgentStatus.PAUSED)
    fallback = _route(services, job)
    assert fallback is not None and fallback.agent_id == pricey.agent_id


def test_shell_jobs_only_route_to_shell_agents(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    job = _job(services, "List files", engine="shell", prompt_text=None, command="ls")

    assert _route(services, job) is None

    runner = services.org.add_agent(AgentCreate(name="Bash", role="ops", default_engine="shell"))
    decision = _route(services, job)
    assert decision is not None and decision.agent_id == runner.agent_id


def test_route_job_persists_assignment(services: Services) -> None:
    coder = services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    job = _job(services, "Fix bug")

    first = services.router.route_job(job_id=job.job_id)
    second = services.router.route_job(job_id=job.job_id)

    assert first is not None and first.agent_id == coder.agent_id
    assert second is not None and second.reason == "Already assigned"
    assert services.jobs.require_job(job_id=job.job_id).agent_id == coder.agent_id
    assert services.router.route_job(job_id="missing") is None


def test_compose_prompt_layers_context(services: Services) -> None:
    agent = services.org.add_agent(
        AgentCreate(name="Codey", role="coder", system_prompt="You are Codey, a careful coder."),
    )
    services.org.grant_skill(agent_id=agent.agent_id, skill_key="github")
    services.org.upsert_skill(
        key="github",
        usage_guidelines="Open PRs, never push to main.",
        mcp_server_name="github-mcp",
    )
    services.org.grant_skill(agent_id=agent.agent_id, skill_key="browser", allowed=False)
    project = services.org.add_project(
        name="Storefront",
        spec={"overview": "Sell stickers online.", "tech_stack": ["Python", "htmx"]},
    )
    services.jobs.set_runtime_setting(
        key=MASTER_INTENT_KEY,
        value={"business_goals": ["Reach 1k MRR"], "priority_order": ["revenue", "quality"]},
    )
    job = _job(services, "Checkout page", project_id=project.project_id, prompt_text="Build it.")

    prompt = services.composer.compose_prompt(job_id=job.job_id, agent_id=agent.agent_id)

    assert prompt.startswith("You are Codey, a careful coder.")
    assert "**Title:** Checkout page" in prompt
    assert "**Instructions:** Build it." in prompt
    assert "## Project Specification: Storefront" in prompt
    assert "**Tech Stack:** Python, htmx" in prompt
    assert "**Priority Order:** revenue > quality" in prompt
    assert "- **github** (MCP: github-mcp): Open PRs, never push to main." in prompt
    assert "browser" not in prompt
    assert "Improvement Instructions" not in prompt


def test_project_spec_accepts_legacy_milestones_shape() -> None:
    spec = parse_project_spec(
        {"milestones": [{"name": "Beta", "target": "2026-11-01", "status": "in_progress"}]},
    )

    rendered = format_spec_for_prompt(spec, "Storefront")

    assert "### Beta [in_progress] (target: 2026-11-01)" in rendered
    assert parse_project_spec({"tech_stack": "not-a-list"}).tech_stack == []
    assert parse_project_spec(None).milestones == []


def test_active_milestone_only_renders_first_open_milestone() -> None:
    spec = parse_project_spec(
        {
            "overview": "Stickers.",
            "milestones": [
                {"name": "Alpha", "status": "done"},
                {
                    "name": "Beta",
                    "acceptance_criteria": ["Checkout works"],
                    "constraints": {"must_nots": ["Store card numbers"]},
                },
                {"name": "GA"},
            ],
        },
    )

    rendered = format_spec_for_prompt(spec, active_milestone_only=True)

    assert "Alpha" not in rendered
    assert "GA" not in rendered
    assert "- [ ] Checkout works" in rendered
    assert "MUST NOT:\n- Store card numbers" in rendered


def test_master_intent_rendering() -> None:
    intent = parse_master_intent(
        {
            "business_goals": ["Ship weekly"],
            "decision_boundaries": {"escalate_to_owner": ["Spending over $500"]},
            "quality_standards": {"code": ["Tests pass"]},
        },
    )
    assert intent is not None

    rendered = format_master_intent_for_prompt(intent)

    assert rendered.startswith("## Mission Control: Master Intent")
    assert "**Escalate to Owner:**\n- Spending over $500" in rendered
    assert "code:\n  - Tests pass" in rendered
    assert parse_master_intent({"business_goals": 3}) is None
    assert parse_master_intent("nope") is None
