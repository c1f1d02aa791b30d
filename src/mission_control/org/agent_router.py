"""Pick the agent that executes a job."""

from __future__ import annotations

import logging

from mission_control.orchestrator.models import JobType, JobView
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.models import COST_TIER_RANK, AgentRole, AgentView, RouteResult
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

SHELL_ENGINE = "shell"

KEYWORD_ROUTES: tuple[tuple[tuple[str, ...], AgentRole, str], ...] = (
    (
        ("budget", "cashflow", "revenue", "roi", "finance", "cost", "projection", "reconcil"),
        AgentRole.ANALYST,
        "Finance keyword match",
    ),
    (
        ("security", "audit", "vulnerab", "monitor", "breach", "rls", "permission"),
        AgentRole.OPS,
        "Security keyword match",
    ),
)

DEPARTMENT_BONUS = 10
COST_WEIGHT = 2
LOAD_PENALTY = 3


def select_agent(
    *,
    job: JobView,
    agents: list[AgentView],
    load: dict[str, int],
    preferred_department: str | None,
    primary_engine: str,
) -> RouteResult | None:
    """Pure routing decision over available agents in registry order."""

    candidates = [agent for agent in agents if agent.available]
    if not candidates:
        return None

    if job.job_type == JobType.REVIEW:
        match = _first_with_role(candidates, AgentRole.QA)
        if match is not None:
            return RouteResult(match.agent_id, match.name, "QA review assignment")

    if job.job_type in {JobType.DECOMPOSITION, JobType.INTEGRATION}:
        match = _first_with_role(candidates, AgentRole.ORCHESTRATOR)
        if match is not None:
            return RouteResult(match.agent_id, match.name, "Orchestrator assignment")

    title = job.title.lower()
    for keywords, role, reason in KEYWORD_ROUTES:
        if any(keyword in title for keyword in keywords):
            match = _first_with_role(candidates, role)
            if match is not None:
                return RouteResult(match.agent_id, match.name, reason)

    best: AgentView | None = None
    best_score = 0.0
    for agent in candidates:
        if agent.role == AgentRole.ORCHESTRATOR.value:
            continue
        if not _engine_compatible(agent, job_engine=job.engine, primary_engine=primary_engine):
            continue
        score = _score(agent, load=load, preferred_department=preferred_department)
        if best is None or score > best_score:
            best, best_score = agent, score

    if best is None:
        return None
    department_match = (
        "yes"
        if preferred_department is not None and best.department == preferred_department
        else "no"
    )
    return RouteResult(
        best.agent_id,
        best.name,
        f"Best match: dept={department_match}, cost={best.cost_tier}, "
        f"quality={best.quality_score_avg}, load={load.get(best.agent_id, 0)}",
    )


class AgentRouter:
    """Route queued jobs to agents and persist the assignment."""

    def __init__(
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        primary_engine: str,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.primary_engine = primary_engine

    def route_job(self, *, job_id: str) -> RouteResult | None:
        job = self.jobs.get_job(job_id=job_id)
        if job is None:
            return None
        if job.agent_id is not None:
            agent = self.org.get_agent(agent_id=job.agent_id)
            if agent is None:
                return None
            return RouteResult(agent.agent_id, agent.name, "Already assigned")

        decision = select_agent(
            job=job,
            agents=self.org.list_agents(),
            load=self.jobs.running_load_by_agent(),
            preferred_department=self._preferred_department(job),
            primary_engine=self.primary_engine,
        )
        if decision is None:
            logger.info("route-none job=%s", job_id)
            return None

        if not self.jobs.assign_agent(
            job_id=job_id,
            agent_id=decision.agent_id,
            reason=decision.reason,
        ):
            # Someone else assigned first; report their choice.
            current = self.jobs.require_job(job_id=job_id)
            agent = self.org.get_agent(agent_id=current.agent_id) if current.agent_id else None
            if agent is None:
                return None
            return RouteResult(agent.agent_id, agent.name, "Already assigned")

        logger.info(
            "routed job=%s agent=%s reason=%s",
            job_id,
            decision.agent_name,
            decision.reason,
        )
        return decision

    def _preferred_department(self, job: JobView) -> str | None:
        if job.project_id is None:
            return None
        project = self.org.get_project(project_id=job.project_id)
        if project is None or project.pm_agent_id is None:
            return None
        pm = self.org.get_agent(agent_id=project.pm_agent_id)
        return pm.department if pm is not None else None


def _first_with_role(agents: list[AgentView], role: AgentRole) -> AgentView | None:
    return next((agent for agent in agents if agent.role == role.value), None)


def _engine_compatible(agent: AgentView, *, job_engine: str, primary_engine: str) -> bool:
    if job_engine == SHELL_ENGINE:
        return agent.default_engine == SHELL_ENGINE
    return agent.default_engine in {job_engine, primary_engine}


def _score(agent: AgentView, *, load: dict[str, int], preferred_department: str | None) -> float:
    score = 0.0
    if preferred_department is not None and agent.department == preferred_department:
        score += DEPARTMENT_BONUS
    score += (3 - COST_TIER_RANK.get(agent.cost_tier, 2)) * COST_WEIGHT
    score += agent.quality_score_avg
    score -= load.get(agent.agent_id, 0) * LOAD_PENALTY
    return score
