"""Action protocol: `[MC_ACTION:<type>]<json>[/MC_ACTION]` blocks in assistant replies.

Blocks are stripped from the visible text, validated into typed payloads and
executed one by one. Every action yields an `ActionResult`; failures never
abort the remaining actions.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from mission_control.assistant.repository import AssistantRepository, TaskStatus
from mission_control.boards.executives import DEFAULT_CHALLENGERS
from mission_control.boards.models import BoardStatus
from mission_control.boards.service import ChallengeBoardService, normalize_position
from mission_control.config import KNOWN_ENGINES
from mission_control.orchestrator.models import JobCreate, JobSource
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

ACTION_BLOCK = re.compile(r"\[MC_ACTION:(\w+)\](.*?)\[/MC_ACTION\]", re.DOTALL)
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


class CreateTaskAction(BaseModel):
    type: Literal["create_task"]
    title: str
    description: str = ""
    priority: int = Field(default=5, ge=1, le=10)
    assigned_to: str | None = None


class SpawnJobAction(BaseModel):
    type: Literal["spawn_job"]
    title: str = "Spawned job"
    prompt_text: str | None = None
    command: str | None = None
    engine: str | None = None
    priority: int = Field(default=3, ge=1, le=10)
    agent_name: str | None = None
    project_name: str | None = None


class ChallengeBoardAction(BaseModel):
    type: Literal["challenge_board"]
    title: str = "Untitled Decision"
    context: str = ""
    options: list[str] = Field(default_factory=list)
    challengers: list[str] = Field(default_factory=lambda: list(DEFAULT_CHALLENGERS))
    project_name: str | None = None


class DecideAction(BaseModel):
    type: Literal["decide"]
    board_id: str | None = None
    title: str | None = None
    decision: str | None = None
    option: str | None = None
    rationale: str | None = None


class ApproveTaskAction(BaseModel):
    type: Literal["approve_task"]
    task_id: str | None = None
    title: str | None = None


class UpdateTaskAction(BaseModel):
    type: Literal["update_task"]
    task_id: str | None = None
    title: str | None = None
    status: TaskStatus | None = None
    notes: str | None = None
    assigned_to: str | None = None
    priority: int | None = Field(default=None, ge=1, le=10)


class RequestToolsAction(BaseModel):
    type: Literal["request_tools"]
    agent_name: str | None = None
    tools: list[str] = Field(default_factory=list)


class CheckStatusAction(BaseModel):
    type: Literal["check_status"]


ActionPayload = Annotated[
    CreateTaskAction
    | SpawnJobAction
    | ChallengeBoardAction
    | DecideAction
    | ApproveTaskAction
    | UpdateTaskAction
    | RequestToolsAction
    | CheckStatusAction,
    Field(discriminator="type"),
]
_PAYLOAD_ADAPTER: TypeAdapter[Any] = TypeAdapter(ActionPayload)
KNOWN_ACTIONS = frozenset(
    {
        "create_task",
        "spawn_job",
        "challenge_board",
        "decide",
        "approve_task",
        "update_task",
        "request_tools",
        "check_status",
    },
)


class ActionResult(BaseModel):
    type: str
    ok: bool
    id: str | None = None
    job_id: str | None = None
    task_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass(slots=True, frozen=True)
class RawAction:
    type: str
    params: dict[str, Any]


@dataclass(slots=True, frozen=True)
class ParsedReply:
    clean_text: str
    actions: list[RawAction]


def parse_actions(text: str) -> ParsedReply:
    """Split a reply into visible text and action blocks; invalid JSON blocks are dropped."""

    actions: list[RawAction] = []
    for match in ACTION_BLOCK.finditer(text):
        try:
            params = json.loads(match.group(2))
        except json.JSONDecodeError:
            logger.info("action-dropped type=%s reason=invalid-json", match.group(1))
            continue
        if not isinstance(params, dict):
            logger.info("action-dropped type=%s reason=not-an-object", match.group(1))
            continue
        actions.append(RawAction(type=match.group(1), params=params))

    clean_text = _EXTRA_BLANK_LINES.sub("\n\n", ACTION_BLOCK.sub("", text)).strip()
    return ParsedReply(clean_text=clean_text, actions=actions)


class ActionExecutor:
    """Run validated actions against the stores."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobRepository,
        org: OrgRepository,
        boards: ChallengeBoardService,
        assistant: AssistantRepository,
        primary_engine: str,
    ) -> None:
        self.jobs = jobs
        self.org = org
        self.boards = boards
        self.assistant = assistant
        self.primary_engine = primary_engine

    def execute_all(self, actions: list[RawAction]) -> list[ActionResult]:
        return [self.execute(action) for action in actions]

    def execute(self, action: RawAction) -> ActionResult:
        if action.type not in KNOWN_ACTIONS:
            return ActionResult(type=action.type, ok=False, error=f"Unknown action: {action.type}")
        try:
            payload = _PAYLOAD_ADAPTER.validate_python({**action.params, "type": action.type})
        except ValidationError as error:
            return ActionResult(
                type=action.type,
                ok=False,
                error=f"Invalid payload: {error.errors()[0]['msg']}",
            )
        try:
            result = self._dispatch(payload)
        except (RuntimeError, ValueError) as error:
            result = ActionResult(type=action.type, ok=False, error=str(error))
        logger.info("action type=%s ok=%s", result.type, result.ok)
        return result

    def _dispatch(self, payload: BaseModel) -> ActionResult:  # noqa: PLR0911
        if isinstance(payload, CreateTaskAction):
            return self._create_task(payload)
        if isinstance(payload, SpawnJobAction):
            return self._spawn_job(payload)
        if isinstance(payload, ChallengeBoardAction):
            return self._challenge_board(payload)
        if isinstance(payload, DecideAction):
            return self._decide(payload)
        if isinstance(payload, ApproveTaskAction):
            return self._approve_task(payload)
        if isinstance(payload, UpdateTaskAction):
            return self._update_task(payload)
        if isinstance(payload, RequestToolsAction):
            return self._request_tools(payload)
        return ActionResult(type="check_status", ok=True)

    def _create_task(self, payload: CreateTaskAction) -> ActionResult:
        task = self.assistant.create_task(
            title=payload.title,
            description=payload.description,
            priority=payload.priority,
            assigned_to=payload.assigned_to,
        )
        return ActionResult(type=payload.type, ok=True, task_id=task.task_id)

    def _spawn_job(self, payload: SpawnJobAction) -> ActionResult:
        engine = (payload.engine or self.primary_engine).strip().lower()
        if engine not in KNOWN_ENGINES:
            engine = self.primary_engine
        agent_id = None
        if payload.agent_name:
            agent = self.org.get_agent_by_name(name=payload.agent_name)
            agent_id = agent.agent_id if agent is not None else None
        project_id = None
        if payload.project_name:
            project = self.org.get_project_by_name(name=payload.project_name)
            project_id = project.project_id if project is not None else None
        prompt_text = payload.prompt_text or payload.title
        job = self.jobs.enqueue_job(
            JobCreate(
                title=payload.title,
                engine=engine,
                prompt_text=prompt_text,
                command=payload.command or (prompt_text if engine == "shell" else None),
                source=JobSource.ORCHESTRATOR,
                priority=payload.priority,
                agent_id=agent_id,
                project_id=project_id,
            ),
        )
        return ActionResult(type=payload.type, ok=True, job_id=job.job_id)

    def _challenge_board(self, payload: ChallengeBoardAction) -> ActionResult:
        project_id = None
        if payload.project_name:
            project = self.org.get_project_by_name(name=payload.project_name)
            project_id = project.project_id if project is not None else None
        created = self.boards.create(
            title=payload.title,
            context=payload.context,
            options=payload.options,
            challengers=payload.challengers,
            project_id=project_id,
        )
        return ActionResult(type=payload.type, ok=True, id=created.board.board_id)

    def _decide(self, payload: DecideAction) -> ActionResult:
        board_id = payload.board_id
        if board_id is None and payload.title:
            needle = payload.title.strip().lower()
            match = next(
                (
                    board
                    for board in self.boards.open_boards()
                    if needle in board.decision_title.lower()
                ),
                None,
            )
            board_id = match.board_id if match is not None else None
        if board_id is None:
            return ActionResult(type=payload.type, ok=False, error="Board not found")
        decision = payload.decision or (
            normalize_position(payload.option) if payload.option else None
        )
        if not decision:
            return ActionResult(type=payload.type, ok=False, error="Need decision or option")
        board = self.boards.boards.require_board(board_id=board_id)
        if board.status == BoardStatus.DECIDED:
            return ActionResult(type=payload.type, ok=False, error="Board already decided")
        self.boards.decide(board_id=board_id, decision=decision, rationale=payload.rationale)
        return ActionResult(type=payload.type, ok=True, id=board_id)

    def _approve_task(self, payload: ApproveTaskAction) -> ActionResult:
        task_id = self._resolve_task_id(payload.task_id, payload.title)
        if task_id is None:
            return ActionResult(type=payload.type, ok=False, error="Task not found")
        self.assistant.update_task(task_id=task_id, status=TaskStatus.DONE)
        return ActionResult(type=payload.type, ok=True, task_id=task_id)

    def _update_task(self, payload: UpdateTaskAction) -> ActionResult:
        task_id = self._resolve_task_id(payload.task_id, payload.title)
        if task_id is None:
            return ActionResult(type=payload.type, ok=False, error="Task not found")
        self.assistant.update_task(
            task_id=task_id,
            status=payload.status,
            description=payload.notes,
            assigned_to=payload.assigned_to,
            priority=payload.priority,
        )
        return ActionResult(type=payload.type, ok=True, task_id=task_id)

    def _request_tools(self, payload: RequestToolsAction) -> ActionResult:
        if not payload.agent_name or not payload.tools:
            return ActionResult(type=payload.type, ok=False, error="Need agent_name and tools[]")
        agent = self.org.get_agent_by_name(name=payload.agent_name)
        if agent is None:
            return ActionResult(type=payload.type, ok=False, error="Agent not found")
        for tool in payload.tools:
            self.org.grant_skill(agent_id=agent.agent_id, skill_key=tool)
        return ActionResult(type=payload.type, ok=True, id=agent.agent_id)

    def _resolve_task_id(self, task_id: str | None, title: str | None) -> str | None:
        if task_id:
            task = self.assistant.get_task(task_id=task_id)
            return task.task_id if task is not None else None
        if title:
            task = self.assistant.find_open_task_by_title(title=title)
            return task.task_id if task is not None else None
        return None
