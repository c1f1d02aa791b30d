"""Notification emitter and lifecycle store."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from mission_control.orchestrator.models import (
    NotificationCategory,
    NotificationCreate,
    NotificationPriority,
    NotificationStatus,
    NotificationView,
)
from mission_control.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    dump_json,
    load_json_object,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import Notification

logger = logging.getLogger(__name__)

OPEN_STATUSES = (NotificationStatus.PENDING.value, NotificationStatus.DELIVERED.value)


class NotificationRepository:
    """Persist notifications and move them from pending to delivered to acknowledged."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def emit(self, payload: NotificationCreate) -> NotificationView:
        """Store a pending notification."""

        with Session(self.engine) as session:
            row = Notification(
                notification_id=str(uuid4()),
                title=payload.title,
                body=payload.body,
                category=payload.category.value,
                priority=payload.priority.value,
                status=NotificationStatus.PENDING.value,
                source_type=payload.source_type,
                source_id=payload.source_id,
                metadata_json=dump_json(payload.metadata) if payload.metadata else None,
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            view = _to_view(row)
        logger.info(
            "notification category=%s priority=%s title=%s",
            view.category.value,
            view.priority.value,
            view.title,
        )
        return view

    def list_notifications(
        self,
        *,
        status: NotificationStatus | None = None,
        category: NotificationCategory | None = None,
        limit: int = 50,
    ) -> list[NotificationView]:
        with Session(self.engine) as session:
            statement = (
                select(Notification).order_by(col(Notification.created_at).desc()).limit(limit)
            )
            if status is not None:
                statement = statement.where(Notification.status == status.value)
            if category is not None:
                statement = statement.where(Notification.category == category.value)
            rows = session.exec(statement).all()
        return [_to_view(row) for row in rows]

    def has_open(self, *, category: NotificationCategory, source_id: str) -> bool:
        """Whether a pending/delivered notification already exists for this source."""

        with Session(self.engine) as session:
            row = session.exec(
                select(Notification.notification_id).where(
                    Notification.category == category.value,
                    Notification.source_id == source_id,
                    col(Notification.status).in_(OPEN_STATUSES),
                ),
            ).first()
        return row is not None

    def mark_delivered(self, *, notification_id: str) -> bool:
        return self._transition(
            notification_id=notification_id,
            allowed_from=(NotificationStatus.PENDING,),
            status_to=NotificationStatus.DELIVERED,
            timestamp_field="delivered_at",
        )

    def acknowledge(self, *, notification_id: str) -> bool:
        return self._transition(
            notification_id=notification_id,
            allowed_from=(NotificationStatus.PENDING, NotificationStatus.DELIVERED),
            status_to=NotificationStatus.ACKNOWLEDGED,
            timestamp_field="acknowledged_at",
        )

    def dismiss(self, *, notification_id: str) -> bool:
        return self._transition(
            notification_id=notification_id,
            allowed_from=(NotificationStatus.PENDING, NotificationStatus.DELIVERED),
            status_to=NotificationStatus.DISMISSED,
            timestamp_field=None,
        )

    def _transition(
        self,
        *,
        notification_id: str,
        allowed_from: tuple[NotificationStatus, ...],
        status_to: NotificationStatus,
        timestamp_field: str | None,
    ) -> bool:
        values: dict[str, object] = {"status": status_to.value}
        if timestamp_field is not None:
            values[timestamp_field] = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            exists = session.exec(
                select(Notification.notification_id).where(
                    Notification.notification_id == notification_id,
                ),
            ).first()
            if exists is None:
                raise RuntimeError(f"Notification not found: {notification_id}")
            result = session.exec(
                sa_update(Notification)
                .where(
                    col(Notification.notification_id) == notification_id,
                    col(Notification.status).in_([item.value for item in allowed_from]),
                )
                .values(**values),
            )
            session.commit()
            return result.rowcount == 1


def _to_view(row: Notification) -> NotificationView:
    return NotificationView(
        notification_id=row.notification_id,
        title=row.title,
        body=row.body,
        category=NotificationCategory(row.category),
        priority=NotificationPriority(row.priority),
        status=NotificationStatus(row.status),
        source_type=row.source_type,
        source_id=row.source_id,
        metadata=load_json_object(row.metadata_json),
        created_at=to_utc_aware_datetime(row.created_at),
        delivered_at=optional_utc(row.delivered_at),
        acknowledged_at=optional_utc(row.acknowledged_at),
    )
