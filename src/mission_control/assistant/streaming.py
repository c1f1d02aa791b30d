"""Chat boundary: tier routing, quick-path answers, model call, action execution.

Replies are produced as a sequence of `StreamEvent`s (`text`, `action`,
`error`, then a terminal `done`) that the HTTP layer serialises as SSE.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mission_control.assistant.actions import ActionExecutor, parse_actions
from mission_control.assistant.repository import AssistantRepository, ChatMessageView
from mission_control.assistant.tier_router import ModelTier, QuickTopic, route_message
from mission_control.boards.service import ChallengeBoardService
from mission_control.config import AssistantSettings
from mission_control.orchestrator.engine import EngineRunError
from mission_control.orchestrator.engine.cli_engine import build_run_args
from mission_control.orchestrator.models import (
    JobStatus,
    NotificationCategory,
    NotificationStatus,
)
from mission_control.orchestrator.notifications import NotificationRepository
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

QUICK_LIST_LIMIT = 10
HISTORY_MESSAGES = 10

ChatCall = Callable[[str, str], str]

ACTION_PROTOCOL = """## Actions

To change state, append blocks of the form
[MC_ACTION:<type>]{json}[/MC_ACTION]
Types: create_task, spawn_job, challenge_board, decide, approve_task,
update_task, request_tools, check_status. Blocks are removed from the
visible reply and their results are shown to the operator."""


@dataclass(slots=True, frozen=True)
class StreamEvent:
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        return f"data: {json.dumps({'type': self.type, **self.data}, ensure_ascii=False)}\n\n"


class CliChatEngine:
    """Run the configured chat command once and return its stdout."""

    def __init__(self, settings: AssistantSettings) -> None:
        self.settings = settings

    def __call__(self, prompt: str, model: str) -> str:
        with tempfile.TemporaryDirectory(prefix="mission-control-chat-") as workdir:
            prompt_file = Path(workdir) / "prompt.txt"
            prompt_file.write_text(prompt, "utf-8")
            args = build_run_args(
                command_template=self.settings.command_template,
                model=model,
                prompt=prompt,
                prompt_file=prompt_file,
                command=prompt,
                mcp_servers=[],
                job_id="chat",
            )
            try:
                completed = subprocess.run(  # noqa: S603
                    args,
                    capture_output=True,
                    text=True,
                    timeout=self.settings.timeout_seconds,
                    check=False,
                    cwd=workdir,
                )
            except FileNotFoundError as error:
                raise EngineRunError(
                    f"Chat command not found: {args[0]}",
                    transient=False,
                ) from error
            except subprocess.TimeoutExpired as error:
                raise EngineRunError(
                    f"Chat command timed out after {self.settings.timeout_seconds}s",
                    transient=True,
                ) from error
        if completed.returncode != 0:
            raise EngineRunError(
                f"Chat command failed (exit {completed.returncode}): "
                f"{completed.stderr.strip()[:500]}",
                transient=False,
            )
        return completed.stdout.strip()


class AssistantService:
    """Answers operator messages; cheap questions never reach a model."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        boards: ChallengeBoardService,
        notifications: NotificationRepository,
        assistant: AssistantRepository,
        executor: ActionExecutor,
        settings: AssistantSettings,
        chat: ChatCall | None = None,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.boards = boards
        self.notifications = notifications
        self.assistant = assistant
        self.executor = executor
        self.settings = settings
        self.chat = chat or CliChatEngine(settings)

    def respond(self, message: str, *, has_images: bool = False) -> Iterator[StreamEvent]:
        if not message.strip():
            raise ValueError("Message must not be empty.")
        started = time.monotonic()
        decision = route_message(message, has_images=has_images)
        logger.info("chat-routed tier=%s rule=%s", decision.tier.value, decision.rule)
        history = self.assistant.list_messages(limit=HISTORY_MESSAGES)
        self.assistant.save_message(role="user", content=message)

        content = ""
        action_results: list[dict[str, Any]] = []
        if decision.tier == ModelTier.QUICK_PATH and decision.quick_topic is not None:
            content = self.quick_answer(decision.quick_topic)
            yield StreamEvent("text", {"content": content})
        else:
            model = (
                self.settings.deep_model
                if decision.tier == ModelTier.DEEP
                else self.settings.fast_model
            )
            try:
                raw = self.chat(self._build_prompt(message, history, has_images=has_images), model)
            except EngineRunError as error:
                logger.warning("chat-failed tier=%s error=%s", decision.tier.value, error)
                yield StreamEvent("error", {"error": str(error)})
            else:
                parsed = parse_actions(raw)
                content = parsed.clean_text
                yield StreamEvent("text", {"content": content})
                for result in self.executor.execute_all(parsed.actions):
                    action_results.append(result.to_dict())
                    yield StreamEvent("action", {"action": result.to_dict()})

        duration_ms = int((time.monotonic() - started) * 1000)
        saved = self.assistant.save_message(
            role="assistant",
            content=content,
            tier=decision.tier.value,
            actions=action_results,
            duration_ms=duration_ms,
        )
        yield StreamEvent(
            "done",
            {
                "message_id": saved.message_id,
                "duration_ms": duration_ms,
                "tier": decision.tier.value,
            },
        )

    def quick_answer(self, topic: QuickTopic) -> str:  # noqa: PLR0911
        """Answer a status question straight from stored state."""

        if topic == QuickTopic.JOBS:
            return self._active_jobs()
        if topic == QuickTopic.TASKS:
            return self._open_tasks()
        if topic == QuickTopic.PROJECTS:
            projects = self.org.list_projects()
            if not projects:
                return "No projects registered yet."
            return _bullets(
                f"**{len(projects)} project{_plural(len(projects))}:**",
                [f"**{project.name}**: {project.description or '-'}" for project in projects],
            )
        if topic == QuickTopic.AGENTS:
            agents = self.org.list_agents()
            if not agents:
                return "No agents registered yet."
            return _bullets(
                f"**{len(agents)} agent{_plural(len(agents))}:**",
                [
                    f"**{agent.name}** ({agent.role}) [{agent.status.value}] "
                    f"avg {agent.quality_score_avg:.1f}"
                    for agent in agents
                ],
            )
        if topic == QuickTopic.BOARDS:
            boards = self.boards.open_boards()
            if not boards:
                return "No open challenge boards."
            return _bullets(
                f"**{len(boards)} open board{_plural(len(boards))}:**",
                [f"**{board.decision_title}** [{board.status.value}]" for board in boards],
            )
        if topic == QuickTopic.DEPLOY:
            notices = self.notifications.list_notifications(
                category=NotificationCategory.DEPLOY_READY,
                limit=3,
            )
            if not notices:
                return "No deployments reported yet."
            return _bullets(
                "**Recent deployments:**",
                [f"{notice.title} ({notice.created_at:%Y-%m-%d %H:%M})" for notice in notices],
            )
        return self._sitrep()

    def _active_jobs(self) -> str:
        active = [
            job
            for status in (JobStatus.RUNNING, JobStatus.QUEUED)
            for job in self.jobs.list_jobs(status=status, limit=QUICK_LIST_LIMIT)
        ][:QUICK_LIST_LIMIT]
        if not active:
            return "All clear: no jobs running or queued right now."
        return _bullets(
            f"**{len(active)} active job{_plural(len(active))}:**",
            [f"**{job.title}** [{job.status.value}] ({job.engine})" for job in active],
        )

    def _open_tasks(self) -> str:
        tasks = self.assistant.list_tasks(open_only=True, limit=QUICK_LIST_LIMIT)
        if not tasks:
            return "Nothing pending: no open tasks."
        return _bullets(
            f"**{len(tasks)} open task{_plural(len(tasks))}:**",
            [f"**{task.title}** [{task.status.value}] (P{task.priority})" for task in tasks],
        )

    def _sitrep(self) -> str:
        counts = self.jobs.count_by_status()
        job_counts = ", ".join(f"{status} {count}" for status, count in sorted(counts.items()))
        pending = self.notifications.list_notifications(status=NotificationStatus.PENDING)
        lines = [
            "**Situation report:**",
            f"- Jobs: {job_counts or 'none'}",
            f"- Open boards: {len(self.boards.open_boards())}",
            f"- Open tasks: {len(self.assistant.list_tasks(open_only=True))}",
            f"- Pending notifications: {len(pending)}",
        ]
        return "\n".join(lines)

    def _build_prompt(
        self,
        message: str,
        history: list[ChatMessageView],
        *,
        has_images: bool,
    ) -> str:
        parts = [
            "You are the Mission Control assistant. You coordinate an AI agent workforce "
            "for the owner and keep answers short and concrete.",
            "",
            "## Current State",
            self._sitrep(),
            "",
            ACTION_PROTOCOL,
        ]
        if history:
            parts.extend(["", "## Recent Conversation"])
            parts.extend(f"{item.role}: {item.content}" for item in history)
        parts.extend(["", f"Owner: {message}"])
        if has_images:
            parts.append("[The owner attached images]")
        parts.extend(["", "Respond as the assistant:"])
        return "\n".join(parts)


def _bullets(header: str, items: list[str]) -> str:
    return "\n".join([header, *(f"- {item}" for item in items)])


def _plural(count: int) -> str:
    return "" if count == 1 else "s"
