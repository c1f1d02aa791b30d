"""Domain models for agents, skills and projects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AgentRole(str, Enum):
    ORCHESTRATOR = "orchestrator"
    QA = "qa"
    CODER = "coder"
    RESEARCHER = "researcher"
    ANALYST = "analyst"
    OPS = "ops"
    PUBLISHER = "publisher"
    EXECUTIVE = "executive"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


COST_TIER_RANK = {"free": 0, "low": 1, "medium": 2, "high": 3}


@dataclass(slots=True)
class AgentCreate:
    """Input payload for registering an agent."""

    name: str
    role: str
    default_engine: str = "claude"
    department: str | None = None
    model_id: str | None = None
    system_prompt: str | None = None
    cost_tier: str = "medium"
    active: bool = True


@dataclass(slots=True)
class AgentView:
    agent_id: str
    name: str
    role: str
    department: str | None
    default_engine: str
    model_id: str | None
    system_prompt: str | None
    cost_tier: str
    active: bool
    status: AgentStatus
    quality_score_avg: float
    consecutive_failures: int
    total_jobs_completed: int
    created_at: datetime

    @property
    def available(self) -> bool:
        """Active and not auto-paused."""

        return self.active and self.status == AgentStatus.ACTIVE


@dataclass(slots=True)
class SkillView:
    skill_id: str
    key: str
    usage_guidelines: str | None
    mcp_server_name: str | None


@dataclass(slots=True)
class ProjectView:
    project_id: str
    name: str
    description: str | None
    pm_agent_id: str | None
    revenue_target_monthly: float | None
    spec: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class RouteResult:
    """Agent chosen for a job and the reason string stored in the audit trail."""

    agent_id: str
    agent_name: str
    reason: str


@dataclass(slots=True)
class AgentStatsUpdate:
    """Agent counters after applying one QA review."""

    agent_id: str
    quality_score_avg: float
    consecutive_failures: int
    total_jobs_completed: int
