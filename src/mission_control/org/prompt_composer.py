"""Assemble the full prompt an agent receives for a job."""

from __future__ import annotations

from mission_control.orchestrator.models import JobView
from mission_control.orchestrator.repository import MASTER_INTENT_KEY, JobRepository
from mission_control.org.models import AgentView, SkillView
from mission_control.org.project_spec import (
    format_master_intent_for_prompt,
    format_spec_for_prompt,
    parse_master_intent,
    parse_project_spec,
)
from mission_control.org.repository import OrgRepository


class PromptComposer:
    """Read-only composition of persona, task, project, intent, feedback and tools."""

    def __init__(self, *, jobs: JobRepository, org: OrgRepository) -> None:
        self.jobs = jobs
        self.org = org

    def compose_prompt(self, *, job_id: str, agent_id: str) -> str:
        job = self.jobs.require_job(job_id=job_id)
        agent = self.org.require_agent(agent_id=agent_id)

        parts: list[str] = []
        if agent.system_prompt:
            parts.append(agent.system_prompt)
        parts.extend(_task_section(job))

        if job.project_id is not None:
            project = self.org.get_project(project_id=job.project_id)
            if project is not None:
                parts.append("")
                parts.append(format_spec_for_prompt(parse_project_spec(project.spec), project.name))

        intent = parse_master_intent(self.jobs.get_runtime_setting(key=MASTER_INTENT_KEY))
        if intent is not None:
            parts.append("")
            parts.append(format_master_intent_for_prompt(intent))

        if job.review_notes:
            parts.extend(
                [
                    "",
                    "## Improvement Instructions (from prior review)",
                    job.review_notes,
                    "",
                    "Address the above feedback in this attempt. Improve on the areas flagged.",
                ],
            )

        skills = self.org.list_agent_skills(agent_id=agent_id)
        if skills:
            parts.extend(["", "## Available Tools"])
            parts.extend(_tool_line(skill) for skill in skills)

        return "\n".join(parts)


def build_decomposition_prompt(
    *,
    job: JobView,
    agents: list[AgentView],
    project_name: str | None = None,
    orchestrator_name: str = "the Chief Orchestrator",
) -> str:
    """Prompt asking the orchestrator for a JSON array of sub-tasks."""

    roster = "\n".join(
        f"- {agent.name} ({agent.role}, {agent.model_id or agent.default_engine})"
        + (f" ({agent.department})" if agent.department else "")
        for agent in agents
        if agent.available and agent.role != "orchestrator"
    )
    lines = [
        f"You are {orchestrator_name}. Decompose this job into sub-tasks.",
        "",
        "## Job to Decompose",
        f"**Title:** {job.title}",
    ]
    if job.prompt_text:
        lines.append(f"**Description:** {job.prompt_text}")
    if project_name:
        lines.append(f"**Project:** {project_name}")
    lines.extend(
        [
            "",
            "## Available Agents",
            roster or "- (no agents registered)",
            "",
            "## Output Format",
            "Return ONLY a JSON array of sub-tasks:",
            "[",
            "  {",
            '    "title": "short descriptive title",',
            '    "suggested_agent": "agent name from list above",',
            '    "priority": 1-10 (1=highest),',
            '    "estimated_engine": "claude" or "shell",',
            '    "prompt_text": "clear instructions for the agent"',
            "  }",
            "]",
            "",
            "Decompose into the MINIMUM number of sub-tasks needed. "
            "Each sub-task should be independently executable.",
        ],
    )
    return "\n".join(lines)


def _task_section(job: JobView) -> list[str]:
    lines = ["", "## Current Task", f"**Title:** {job.title}"]
    if job.prompt_text:
        lines.append(f"**Instructions:** {job.prompt_text}")
    if job.command:
        lines.append(f"**Command:** {job.command}")
    return lines


def _tool_line(skill: SkillView) -> str:
    server = f" (MCP: {skill.mcp_server_name})" if skill.mcp_server_name else ""
    return f"- **{skill.key}**{server}: {skill.usage_guidelines or 'No guidelines set'}"
