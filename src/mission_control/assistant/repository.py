"""Human to-do tasks and chat transcript persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlmodel import Session, col, select

from mission_control.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    dump_json,
    load_json_list,
    optional_utc,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import ChatMessage, HumanTask


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass(slots=True)
class TaskView:
    task_id: str
    title: str
    description: str
    status: TaskStatus
    priority: int
    assigned_to: str | None
    project_id: str | None
    created_at: datetime
    completed_at: datetime | None


@dataclass(slots=True)
class ChatMessageView:
    message_id: str
    role: str
    content: str
    tier: str | None
    actions: list[dict[str, Any]]
    duration_ms: int | None
    created_at: datetime


class AssistantRepository:
    """Tasks created through the action protocol plus stored assistant replies."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def create_task(
        self,
        *,
        title: str,
        description: str = "",
        priority: int = 5,
        assigned_to: str | None = None,
        project_id: str | None = None,
    ) -> TaskView:
        if not title.strip():
            raise ValueError("Task title must not be empty.")
        now = utc_now()
        with Session(self.engine) as session:
            row = HumanTask(
                task_id=str(uuid4()),
                title=title.strip(),
                description=description,
                status=TaskStatus.TODO.value,
                priority=priority,
                assigned_to=assigned_to,
                project_id=project_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get_task(self, *, task_id: str) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.exec(select(HumanTask).where(HumanTask.task_id == task_id)).one_or_none()
        return _to_task_view(row) if row is not None else None

    def find_open_task_by_title(self, *, title: str) -> TaskView | None:
        """Case-insensitive substring match among tasks not yet done."""

        needle = f"%{title.strip().lower()}%"
        with Session(self.engine) as session:
            row = session.exec(
                select(HumanTask)
                .where(
                    func.lower(HumanTask.title).like(needle),
                    HumanTask.status != TaskStatus.DONE.value,
                )
                .order_by(col(HumanTask.created_at).desc()),
            ).first()
        return _to_task_view(row) if row is not None else None

    def update_task(  # noqa: PLR0913
        self,
        *,
        task_id: str,
        status: TaskStatus | None = None,
        description: str | None = None,
        assigned_to: str | None = None,
        priority: int | None = None,
    ) -> TaskView:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.exec(select(HumanTask).where(HumanTask.task_id == task_id)).one_or_none()
            if row is None:
                raise RuntimeError(f"Task not found: {task_id}")
            if status is not None:
                row.status = status.value
                row.completed_at = now if status == TaskStatus.DONE else None
            if description is not None:
                row.description = description
            if assigned_to is not None:
                row.assigned_to = assigned_to
            if priority is not None:
                row.priority = priority
            row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def list_tasks(self, *, open_only: bool = True, limit: int = 20) -> list[TaskView]:
        with Session(self.engine) as session:
            statement = (
                select(HumanTask)
                .order_by(col(HumanTask.priority).asc(), col(HumanTask.created_at).asc())
                .limit(limit)
            )
            if open_only:
                statement = statement.where(HumanTask.status != TaskStatus.DONE.value)
            rows = session.exec(statement).all()
        return [_to_task_view(row) for row in rows]

    def save_message(  # noqa: PLR0913
        self,
        *,
        role: str,
        content: str,
        tier: str | None = None,
        actions: list[dict[str, Any]] | None = None,
        duration_ms: int | None = None,
        message_id: str | None = None,
    ) -> ChatMessageView:
        with Session(self.engine) as session:
            row = ChatMessage(
                message_id=message_id or str(uuid4()),
                role=role,
                content=content,
                tier=tier,
                actions_json=dump_json(actions) if actions else None,
                duration_ms=duration_ms,
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_message_view(row)

    def list_messages(self, *, limit: int = 20) -> list[ChatMessageView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ChatMessage).order_by(col(ChatMessage.created_at).desc()).limit(limit),
            ).all()
        return [_to_message_view(row) for row in reversed(rows)]


def _to_task_view(row: HumanTask) -> TaskView:
    return TaskView(
        task_id=row.task_id,
        title=row.title,
        description=row.description,
        status=TaskStatus(row.status),
        priority=row.priority,
        assigned_to=row.assigned_to,
        project_id=row.project_id,
        created_at=to_utc_aware_datetime(row.created_at),
        completed_at=optional_utc(row.completed_at),
    )


def _to_message_view(row: ChatMessage) -> ChatMessageView:
    return ChatMessageView(
        message_id=row.message_id,
        role=row.role,
        content=row.content,
        tier=row.tier,
        actions=[item for item in load_json_list(row.actions_json) if isinstance(item, dict)],
        duration_ms=row.duration_ms,
        created_at=to_utc_aware_datetime(row.created_at),
    )
