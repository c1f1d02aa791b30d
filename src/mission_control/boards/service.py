"""Challenge Board orchestration: dispatch challengers, collect, synthesise, decide."""

from __future__ import annotations

import logging

from mission_control.boards.executives import (
    EXECUTIVES,
    build_challenge_prompt,
    option_label,
)
from mission_control.boards.models import (
    BoardCreated,
    BoardOption,
    BoardStatus,
    BoardSummary,
    BoardView,
    ChallengeResponseView,
    RiskFlag,
)
from mission_control.boards.repository import BoardRepository
from mission_control.orchestrator.models import (
    TERMINAL_STATUSES,
    JobCreate,
    JobSource,
    JobView,
)
from mission_control.orchestrator.output_parsing import Malformed, extract_json_object
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

CHALLENGER_PRIORITY = 2
ARGUMENT_FALLBACK_CHARS = 1_000
HIGH_SEVERITY = "high"


def synthesise_options(
    options: list[BoardOption],
    responses: list[ChallengeResponseView],
) -> list[BoardOption]:
    """Attach recommenders, pros and high-severity cons; rank by recommender count."""

    ranked = [
        BoardOption(label=option.label, summary=option.summary)
        for option in sorted(options, key=lambda option: option.label)
    ]
    by_label = {option.label: option for option in ranked}
    for response in responses:
        option = by_label.get(response.position)
        if option is None:
            continue
        option.recommended_by.append(response.agent_name)
        option.pros.append(f"{response.agent_name}: {response.argument}")
        for flag in response.risk_flags:
            if flag.severity.lower() == HIGH_SEVERITY:
                option.cons.append(f"{response.agent_name} flags: {flag.risk}")
    # Stable sort: ties keep label order.
    return sorted(ranked, key=lambda option: len(option.recommended_by), reverse=True)


def parse_challenge_response(text: str | None) -> tuple[str, str, list[RiskFlag]]:
    """Return (position, argument, risk flags) from a challenger's output."""

    extracted = extract_json_object(text, anchor="position")
    if isinstance(extracted, Malformed):
        return "", (text or "")[:ARGUMENT_FALLBACK_CHARS], []
    payload = extracted.value
    flags_raw = payload.get("risk_flags")
    flags = [
        RiskFlag(
            risk=str(item.get("risk", "")),
            severity=str(item.get("severity", "low")),
            mitigation=str(item.get("mitigation", "")),
        )
        for item in (flags_raw if isinstance(flags_raw, list) else [])
        if isinstance(item, dict)
    ]
    return (
        normalize_position(payload.get("position")),
        str(payload.get("argument") or ""),
        flags,
    )


def normalize_position(value: object) -> str:
    text = str(value or "").strip().upper()
    if text.startswith("OPTION "):
        text = text.removeprefix("OPTION ").strip()
    return text


class ChallengeBoardService:
    """Multi-agent debate over a decision, synthesised for a human."""

    def __init__(
        self,
        *,
        boards: BoardRepository,
        jobs: JobRepository,
        org: OrgRepository,
        primary_engine: str,
    ) -> None:
        self.boards = boards
        self.jobs = jobs
        self.org = org
        self.primary_engine = primary_engine

    def create(  # noqa: PLR0913
        self,
        *,
        title: str,
        context: str,
        options: list[str],
        challengers: list[str],
        project_id: str | None = None,
        requested_by: str = "orchestrator",
    ) -> BoardCreated:
        if not title.strip():
            raise ValueError("Board title must not be empty.")
        summaries = [option.strip() for option in options if option.strip()]
        if not summaries:
            raise ValueError("Board needs at least one option.")

        board = self.boards.create_board(
            title=title.strip(),
            context=context,
            options=[
                BoardOption(label=option_label(index), summary=summary)
                for index, summary in enumerate(summaries)
            ],
            project_id=project_id,
            requested_by=requested_by,
        )

        job_ids: list[str] = []
        for name in challengers:
            executive = EXECUTIVES.get(name)
            if executive is None:
                logger.info("board-skip-unknown-executive board=%s name=%s", board.board_id, name)
                continue
            agent = self.org.get_agent_by_name(name=name)
            if agent is None:
                logger.info("board-skip-unregistered board=%s name=%s", board.board_id, name)
                continue
            job = self.jobs.enqueue_job(
                JobCreate(
                    title=f'Challenge: {executive.name} on "{board.decision_title}"',
                    engine=self.primary_engine,
                    prompt_text=build_challenge_prompt(
                        executive,
                        title=board.decision_title,
                        context=context,
                        options=summaries,
                    ),
                    source=JobSource.CHALLENGE_BOARD,
                    priority=CHALLENGER_PRIORITY,
                    agent_id=agent.agent_id,
                    project_id=project_id,
                    board_id=board.board_id,
                ),
            )
            job_ids.append(job.job_id)

        logger.info("board-created board=%s challengers=%d", board.board_id, len(job_ids))
        return BoardCreated(board=board, job_ids=job_ids)

    def record_response(  # noqa: PLR0913
        self,
        *,
        board_id: str,
        agent_name: str,
        position: str,
        argument: str,
        risk_flags: list[RiskFlag] | None = None,
    ) -> ChallengeResponseView:
        self.boards.require_board(board_id=board_id)
        executive = EXECUTIVES.get(agent_name)
        agent = self.org.get_agent_by_name(name=agent_name)
        return self.boards.add_response(
            board_id=board_id,
            agent_id=agent.agent_id if agent is not None else None,
            agent_name=agent.name if agent is not None else agent_name,
            perspective=executive.perspective if executive is not None else "balanced",
            position=normalize_position(position),
            argument=argument,
            risk_flags=risk_flags or [],
        )

    def record_job_result(
        self,
        *,
        job: JobView,
        result: str | None,
    ) -> ChallengeResponseView | None:
        """Store a finished challenger job's output as a board response."""

        if job.board_id is None:
            return None
        agent = self.org.get_agent(agent_id=job.agent_id) if job.agent_id else None
        if agent is None:
            logger.warning("board-response-without-agent job=%s", job.job_id)
            return None
        position, argument, flags = parse_challenge_response(result)
        return self.record_response(
            board_id=job.board_id,
            agent_name=agent.name,
            position=position,
            argument=argument,
            risk_flags=flags,
        )

    def deliberation_complete(self, *, board_id: str) -> bool:
        """True once every challenger job of the board is terminal."""

        board_jobs = self.jobs.list_board_jobs(board_id=board_id)
        return bool(board_jobs) and all(job.status in TERMINAL_STATUSES for job in board_jobs)

    def synthesise(self, *, board_id: str) -> BoardSummary | None:
        board = self.boards.require_board(board_id=board_id)
        if board.status == BoardStatus.DECIDED:
            logger.info("board-synthesis-skipped board=%s status=decided", board_id)
            return None
        responses = self.boards.list_responses(board_id=board_id)
        if not responses:
            return None
        ranked = synthesise_options(board.options, responses)
        updated = self.boards.save_synthesis(board_id=board_id, options=ranked)
        logger.info("board-synthesised board=%s responses=%d", board_id, len(responses))
        return BoardSummary(board=updated, responses=responses)

    def decide(self, *, board_id: str, decision: str, rationale: str | None = None) -> BoardView:
        if not decision.strip():
            raise ValueError("Decision must not be empty.")
        board = self.boards.mark_decided(
            board_id=board_id,
            decision=decision.strip(),
            rationale=rationale,
        )
        logger.info("board-decided board=%s decision=%s", board_id, board.final_decision)
        return board

    def summary(self, *, board_id: str) -> BoardSummary:
        return BoardSummary(
            board=self.boards.require_board(board_id=board_id),
            responses=self.boards.list_responses(board_id=board_id),
        )

    def open_boards(self) -> list[BoardView]:
        return self.boards.list_boards(statuses=(BoardStatus.OPEN, BoardStatus.DELIBERATING))
