"""Registry of agents, skills, grants and projects."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from mission_control.config import KNOWN_ENGINES
from mission_control.org.models import (
    COST_TIER_RANK,
    AgentCreate,
    AgentStatsUpdate,
    AgentStatus,
    AgentView,
    ProjectView,
    SkillView,
)
from mission_control.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    dump_json,
    load_json_object,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import Agent, AgentSkill, Project, Skill

logger = logging.getLogger(__name__)


class OrgRepository:
    """Agents, skills and projects persistence facade."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def add_agent(self, payload: AgentCreate) -> AgentView:
        name = payload.name.strip()
        if not name:
            raise ValueError("Agent name must not be empty.")
        if payload.default_engine not in KNOWN_ENGINES:
            raise ValueError(f"Unknown engine: {payload.default_engine}")
        if payload.cost_tier not in COST_TIER_RANK:
            raise ValueError(
                f"Unknown cost tier {payload.cost_tier!r}; "
                f"expected one of {', '.join(COST_TIER_RANK)}.",
            )
        if self.get_agent_by_name(name=name) is not None:
            raise ValueError(f"Agent already exists: {name}")

        now = utc_now()
        with Session(self.engine) as session:
            row = Agent(
                agent_id=str(uuid4()),
                name=name,
                role=payload.role.strip().lower(),
                department=payload.department,
                default_engine=payload.default_engine,
                model_id=payload.model_id,
                system_prompt=payload.system_prompt,
                cost_tier=payload.cost_tier,
                active=payload.active,
                status=AgentStatus.ACTIVE.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_agent_view(row)

    def get_agent(self, *, agent_id: str) -> AgentView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Agent).where(Agent.agent_id == agent_id)).one_or_none()
        return _to_agent_view(row) if row is not None else None

    def require_agent(self, *, agent_id: str) -> AgentView:
        agent = self.get_agent(agent_id=agent_id)
        if agent is None:
            raise RuntimeError(f"Agent not found: {agent_id}")
        return agent

    def get_agent_by_name(self, *, name: str) -> AgentView | None:
        """Case-insensitive lookup by agent name."""

        with Session(self.engine) as session:
            row = session.exec(
                select(Agent).where(func.lower(Agent.name) == name.strip().lower()),
            ).first()
        return _to_agent_view(row) if row is not None else None

    def list_agents(self, *, available_only: bool = False) -> list[AgentView]:
        """Agents in registry (creation) order."""

        with Session(self.engine) as session:
            statement = select(Agent).order_by(col(Agent.created_at).asc(), col(Agent.name).asc())
            if available_only:
                statement = statement.where(
                    col(Agent.active).is_(True),
                    Agent.status == AgentStatus.ACTIVE.value,
                )
            rows = session.exec(statement).all()
        return [_to_agent_view(row) for row in rows]

    def resolve_agent_ids(self, names: list[str]) -> dict[str, str]:
        """Map lower-cased agent names to ids; unknown names are omitted."""

        wanted = {name.strip().lower() for name in names if name.strip()}
        if not wanted:
            return {}
        with Session(self.engine) as session:
            rows = session.exec(
                select(Agent.name, Agent.agent_id).where(func.lower(Agent.name).in_(wanted)),
            ).all()
        return {name.lower(): agent_id for name, agent_id in rows}

    def set_agent_status(self, *, agent_id: str, status: AgentStatus) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Agent)
                .where(col(Agent.agent_id) == agent_id, col(Agent.status) != status.value)
                .values(status=status.value, updated_at=utc_now()),
            )
            session.commit()
            return result.rowcount == 1

    def apply_review_stats(
        self,
        *,
        agent_id: str,
        recent_totals: list[int],
        passed: bool,
    ) -> AgentStatsUpdate:
        """Fold one QA verdict into the agent's rolling average and failure streak."""

        with Session(self.engine) as session:
            row = session.exec(select(Agent).where(Agent.agent_id == agent_id)).one_or_none()
            if row is None:
                raise RuntimeError(f"Agent not found: {agent_id}")
            if recent_totals:
                row.quality_score_avg = round(sum(recent_totals) / len(recent_totals), 2)
            if passed:
                row.consecutive_failures = 0
                row.total_jobs_completed += 1
            else:
                row.consecutive_failures += 1
            row.updated_at = utc_now()
            session.add(row)
            session.commit()
            session.refresh(row)
            return AgentStatsUpdate(
                agent_id=row.agent_id,
                quality_score_avg=row.quality_score_avg,
                consecutive_failures=row.consecutive_failures,
                total_jobs_completed=row.total_jobs_completed,
            )

    def upsert_skill(
        self,
        *,
        key: str,
        usage_guidelines: str | None = None,
        mcp_server_name: str | None = None,
    ) -> SkillView:
        normalized = key.strip()
        if not normalized:
            raise ValueError("Skill key must not be empty.")
        with Session(self.engine) as session:
            row = session.exec(select(Skill).where(Skill.key == normalized)).one_or_none()
            if row is None:
                row = Skill(
                    skill_id=str(uuid4()),
                    key=normalized,
                    usage_guidelines=usage_guidelines,
                    mcp_server_name=mcp_server_name,
                    created_at=utc_now(),
                )
            else:
                if usage_guidelines is not None:
                    row.usage_guidelines = usage_guidelines
                if mcp_server_name is not None:
                    row.mcp_server_name = mcp_server_name
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_skill_view(row)

    def list_skills(self) -> list[SkillView]:
        with Session(self.engine) as session:
            rows = session.exec(select(Skill).order_by(col(Skill.key).asc())).all()
        return [_to_skill_view(row) for row in rows]

    def grant_skill(self, *, agent_id: str, skill_key: str, allowed: bool = True) -> SkillView:
        """Create or update a grant; unknown skill keys are registered on the fly."""

        self.require_agent(agent_id=agent_id)
        skill = self.upsert_skill(key=skill_key)
        with Session(self.engine) as session:
            grant = session.exec(
                select(AgentSkill).where(
                    AgentSkill.agent_id == agent_id,
                    AgentSkill.skill_id == skill.skill_id,
                ),
            ).one_or_none()
            if grant is None:
                grant = AgentSkill(
                    agent_id=agent_id,
                    skill_id=skill.skill_id,
                    allowed=allowed,
                    created_at=utc_now(),
                )
            else:
                grant.allowed = allowed
            session.add(grant)
            session.commit()
        logger.info("skill-grant agent=%s skill=%s allowed=%s", agent_id, skill.key, allowed)
        return skill

    def list_agent_skills(self, *, agent_id: str) -> list[SkillView]:
        """Skills the agent is allowed to use, in grant order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Skill)
                .join(AgentSkill, col(AgentSkill.skill_id) == col(Skill.skill_id))
                .where(AgentSkill.agent_id == agent_id, col(AgentSkill.allowed).is_(True))
                .order_by(col(AgentSkill.id).asc()),
            ).all()
        return [_to_skill_view(row) for row in rows]

    def add_project(  # noqa: PLR0913
        self,
        *,
        name: str,
        description: str | None = None,
        pm_agent_id: str | None = None,
        revenue_target_monthly: float | None = None,
        spec: dict[str, object] | None = None,
    ) -> ProjectView:
        normalized = name.strip()
        if not normalized:
            raise ValueError("Project name must not be empty.")
        if self.get_project_by_name(name=normalized) is not None:
            raise ValueError(f"Project already exists: {normalized}")
        if pm_agent_id is not None:
            self.require_agent(agent_id=pm_agent_id)
        now = utc_now()
        with Session(self.engine) as session:
            row = Project(
                project_id=str(uuid4()),
                name=normalized,
                description=description,
                pm_agent_id=pm_agent_id,
                revenue_target_monthly=revenue_target_monthly,
                spec_json=dump_json(spec) if spec else None,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_project_view(row)

    def set_project_spec(self, *, project_id: str, spec: dict[str, object]) -> ProjectView:
        with Session(self.engine) as session:
            row = session.exec(
                select(Project).where(Project.project_id == project_id),
            ).one_or_none()
            if row is None:
                raise RuntimeError(f"Project not found: {project_id}")
            row.spec_json = dump_json(spec)
            row.updated_at = utc_now()
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_project_view(row)

    def get_project(self, *, project_id: str) -> ProjectView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Project).where(Project.project_id == project_id),
            ).one_or_none()
        return _to_project_view(row) if row is not None else None

    def get_project_by_name(self, *, name: str) -> ProjectView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Project).where(func.lower(Project.name) == name.strip().lower()),
            ).first()
        return _to_project_view(row) if row is not None else None

    def list_projects(self) -> list[ProjectView]:
        with Session(self.engine) as session:
            rows = session.exec(select(Project).order_by(col(Project.name).asc())).all()
        return [_to_project_view(row) for row in rows]


def _to_agent_view(row: Agent) -> AgentView:
    return AgentView(
        agent_id=row.agent_id,
        name=row.name,
        role=row.role,
        department=row.department,
        default_engine=row.default_engine,
        model_id=row.model_id,
        system_prompt=row.system_prompt,
        cost_tier=row.cost_tier,
        active=row.active,
        status=AgentStatus(row.status),
        quality_score_avg=row.quality_score_avg,
        consecutive_failures=row.consecutive_failures,
        total_jobs_completed=row.total_jobs_completed,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_skill_view(row: Skill) -> SkillView:
    return SkillView(
        skill_id=row.skill_id,
        key=row.key,
        usage_guidelines=row.usage_guidelines,
        mcp_server_name=row.mcp_server_name,
    )


def _to_project_view(row: Project) -> ProjectView:
    return ProjectView(
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        pm_agent_id=row.pm_agent_id,
        revenue_target_monthly=row.revenue_target_monthly,
        spec=load_json_object(row.spec_json),
    )
