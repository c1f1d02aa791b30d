"""Challenge Board persistence."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from mission_control.boards.models import (
    BoardOption,
    BoardStatus,
    BoardView,
    ChallengeResponseView,
    RiskFlag,
)
from mission_control.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    dump_json,
    load_json_list,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import ChallengeBoard, ChallengeResponse


class BoardRepository:
    """Boards and append-only responses."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def create_board(  # noqa: PLR0913
        self,
        *,
        title: str,
        context: str,
        options: list[BoardOption],
        project_id: str | None = None,
        requested_by: str = "orchestrator",
    ) -> BoardView:
        with Session(self.engine) as session:
            row = ChallengeBoard(
                board_id=str(uuid4()),
                decision_title=title,
                decision_context=context,
                project_id=project_id,
                requested_by=requested_by,
                status=BoardStatus.DELIBERATING.value,
                options_json=dump_json([option.to_dict() for option in options]),
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_board_view(row)

    def get_board(self, *, board_id: str) -> BoardView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ChallengeBoard).where(ChallengeBoard.board_id == board_id),
            ).one_or_none()
        return _to_board_view(row) if row is not None else None

    def require_board(self, *, board_id: str) -> BoardView:
        board = self.get_board(board_id=board_id)
        if board is None:
            raise RuntimeError(f"Board not found: {board_id}")
        return board

    def list_boards(
        self,
        *,
        statuses: tuple[BoardStatus, ...] | None = None,
        limit: int = 20,
    ) -> list[BoardView]:
        with Session(self.engine) as session:
            statement = (
                select(ChallengeBoard).order_by(col(ChallengeBoard.created_at).desc()).limit(limit)
            )
            if statuses:
                statement = statement.where(
                    col(ChallengeBoard.status).in_([item.value for item in statuses]),
                )
            rows = session.exec(statement).all()
        return [_to_board_view(row) for row in rows]

    def add_response(  # noqa: PLR0913
        self,
        *,
        board_id: str,
        agent_id: str | None,
        agent_name: str,
        perspective: str,
        position: str,
        argument: str,
        risk_flags: list[RiskFlag],
    ) -> ChallengeResponseView:
        with Session(self.engine) as session:
            row = ChallengeResponse(
                board_id=board_id,
                agent_id=agent_id,
                agent_name=agent_name,
                perspective=perspective,
                position=position,
                argument=argument,
                risk_flags_json=dump_json(
                    [
                        {
                            "risk": flag.risk,
                            "severity": flag.severity,
                            "mitigation": flag.mitigation,
                        }
                        for flag in risk_flags
                    ],
                ),
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_response_view(row)

    def list_responses(self, *, board_id: str) -> list[ChallengeResponseView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ChallengeResponse)
                .where(ChallengeResponse.board_id == board_id)
                .order_by(col(ChallengeResponse.created_at).asc(), col(ChallengeResponse.id).asc()),
            ).all()
        return [_to_response_view(row) for row in rows]

    def save_synthesis(self, *, board_id: str, options: list[BoardOption]) -> BoardView:
        """Store ranked options and open the board unless it is already decided."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ChallengeBoard)
                .where(
                    col(ChallengeBoard.board_id) == board_id,
                    col(ChallengeBoard.status) != BoardStatus.DECIDED.value,
                )
                .values(
                    options_json=dump_json([option.to_dict() for option in options]),
                    status=BoardStatus.OPEN.value,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(f"Board cannot be synthesised: {board_id}")
            session.commit()
        return self.require_board(board_id=board_id)

    def mark_decided(self, *, board_id: str, decision: str, rationale: str | None) -> BoardView:
        """Terminal transition; a second decision raises."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ChallengeBoard)
                .where(
                    col(ChallengeBoard.board_id) == board_id,
                    col(ChallengeBoard.status) != BoardStatus.DECIDED.value,
                )
                .values(
                    status=BoardStatus.DECIDED.value,
                    final_decision=decision,
                    rationale=rationale,
                    decided_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                self.require_board(board_id=board_id)
                raise RuntimeError(f"Board already decided: {board_id}")
            session.commit()
        return self.require_board(board_id=board_id)


def _to_board_view(row: ChallengeBoard) -> BoardView:
    return BoardView(
        board_id=row.board_id,
        decision_title=row.decision_title,
        decision_context=row.decision_context,
        project_id=row.project_id,
        requested_by=row.requested_by,
        status=BoardStatus(row.status),
        options=[
            BoardOption.from_dict(item)
            for item in load_json_list(row.options_json)
            if isinstance(item, dict)
        ],
        final_decision=row.final_decision,
        rationale=row.rationale,
        created_at=to_utc_aware_datetime(row.created_at),
        decided_at=optional_utc(row.decided_at),
    )


def _to_response_view(row: ChallengeResponse) -> ChallengeResponseView:
    return ChallengeResponseView(
        agent_id=row.agent_id,
        agent_name=row.agent_name,
        perspective=row.perspective,
        position=row.position,
        argument=row.argument,
        risk_flags=[
            RiskFlag(
                risk=str(item.get("risk", "")),
                severity=str(item.get("severity", "")),
                mitigation=str(item.get("mitigation", "")),
            )
            for item in load_json_list(row.risk_flags_json)
            if isinstance(item, dict)
        ],
        created_at=to_utc_aware_datetime(row.created_at),
    )
