from __future__ import annotations

import json
from datetime import UTC, datetime

import allure
import pytest

from mission_control.boards.models import BoardOption, BoardStatus, ChallengeResponseView, RiskFlag
from mission_control.boards.service import (
    normalize_position,
    parse_challenge_response,
    synthesise_options,
)
from mission_control.orchestrator.models import (
    JobSource,
    JobStatus,
    NotificationCategory,
)
from mission_control.org.models import AgentCreate
from mission_control.services import Services

pytestmark = [
    allure.epic("Decision Support"),
    allure.feature("Challenge Board"),
]


def _response(name: str, position: str, flags: list[RiskFlag] | None = None):
    return ChallengeResponseView(
        agent_id=None,
        agent_name=name,
        perspective="balanced",
        position=position,
        argument=f"{name} argues for {position}",
        risk_flags=flags or [],
        created_at=datetime.now(UTC),
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("Option B", "B"), (" a ", "A"), ("option   c", "C"), (None, "")],
)
def test_normalize_position(raw, expected) -> None:
    assert normalize_position(raw) == expected


def test_parse_challenge_response_falls_back_to_raw_text() -> None:
    position, argument, flags = parse_challenge_response("I refuse to pick.")

    assert position == ""
    assert argument == "I refuse to pick."
    assert flags == []


def test_parse_challenge_response_reads_fenced_json() -> None:
    text = (
        "Here is my view:\n```json\n"
        '{"position": "Option A", "argument": "Cheaper.", '
        '"risk_flags": [{"risk": "Vendor lock-in", "severity": "medium"}, "junk"]}\n```'
    )

    position, argument, flags = parse_challenge_response(text)

    assert position == "A"
    assert argument == "Cheaper."
    assert flags == [RiskFlag(risk="Vendor lock-in", severity="medium", mitigation="")]


def test_synthesise_ranks_by_recommenders_and_keeps_label_order_on_ties() -> None:
    options = [
        BoardOption(label="C", summary="Wait"),
        BoardOption(label="A", summary="Build"),
        BoardOption(label="B", summary="Buy"),
    ]
    responses = [
        _response("Kate", "B", [RiskFlag(risk="Cost overrun", severity="HIGH")]),
        _response("Kerry", "B", [RiskFlag(risk="Minor delay", severity="low")]),
        _response("Nic", "A"),
        _response("Helen", "Z"),
    ]

    ranked = synthesise_options(options, responses)

    assert [option.label for option in ranked] == ["B", "A", "C"]
    assert ranked[0].recommended_by == ["Kate", "Kerry"]
    assert ranked[0].pros == ["Kate: Kate argues for B", "Kerry: Kerry argues for B"]
    assert ranked[0].cons == ["Kate flags: Cost overrun"]
    assert ranked[2].recommended_by == []
    # Inputs are left untouched.
    assert options[1].recommended_by == []


def test_create_skips_unknown_and_unregistered_challengers(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Kate", role="executive"))

    created = services.boards.create(
        title="Pricing model",
        context="We need a pricing model.",
        options=["Freemium", "Flat fee", "  "],
        challengers=["Kate", "Nic", "Bob"],
    )

    assert created.board.status == BoardStatus.DELIBERATING
    assert [(option.label, option.summary) for option in created.board.options] == [
        ("A", "Freemium"),
        ("B", "Flat fee"),
    ]
    assert len(created.job_ids) == 1
    job = services.jobs.require_job(job_id=created.job_ids[0])
    assert job.source == JobSource.CHALLENGE_BOARD
    assert job.board_id == created.board.board_id
    assert job.priority == 2
    assert job.title == 'Challenge: Kate on "Pricing model"'
    assert "A: Freemium" in (job.prompt_text or "")


def test_create_validates_input(services: Services) -> None:
    with pytest.raises(ValueError, match="title"):
        services.boards.create(title=" ", context="", options=["x"], challengers=[])
    with pytest.raises(ValueError, match="option"):
        services.boards.create(title="t", context="", options=[" "], challengers=[])


def test_board_deliberation_end_to_end(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Kate", role="executive"))
    services.org.add_agent(AgentCreate(name="Kerry", role="executive"))
    verdict = json.dumps(
        {
            "position": "Option B",
            "argument": "Recurring revenue beats one-off sales.",
            "risk_flags": [{"risk": "Churn", "severity": "high", "mitigation": "Annual plans"}],
        },
    )
    created = services.boards.create(
        title="Pricing model",
        context=f"Pick a pricing model.\nECHO_RESULT={verdict}",
        options=["One-off licence", "Subscription"],
        challengers=["Kate", "Kerry", "Nic", "Bob"],
    )
    assert len(created.job_ids) == 2
    board_id = created.board.board_id

    first = services.runner.run_once()
    assert first.status == JobStatus.DONE
    assert first.post_action == "board-response"
    assert services.boards.summary(board_id=board_id).board.status == BoardStatus.DELIBERATING

    second = services.runner.run_once()
    assert second.status == JobStatus.DONE
    assert second.post_action == "board-synthesised"

    summary = services.boards.summary(board_id=board_id)
    assert summary.board.status == BoardStatus.OPEN
    assert [response.position for response in summary.responses] == ["B", "B"]
    leading = summary.board.options[0]
    assert leading.label == "B"
    assert leading.recommended_by == ["Kate", "Kerry"]
    assert "Kate flags: Churn" in leading.cons
    assert "Kate: Recurring revenue beats one-off sales." in leading.pros
    assert services.boards.open_boards()[0].board_id == board_id

    decisions = services.notifications.list_notifications(
        category=NotificationCategory.DECISION_NEEDED,
    )
    assert len(decisions) == 1
    assert decisions[0].source_id == board_id
    assert decisions[0].title == "Decision needed: Pricing model"
    assert "Leading option B: Subscription" in decisions[0].body
    # Challenger jobs never go through QA review.
    assert services.jobs.list_jobs(status=JobStatus.QUEUED) == []

    decided = services.boards.decide(board_id=board_id, decision="B", rationale="Recurring.")
    assert decided.status == BoardStatus.DECIDED
    assert decided.final_decision == "B"
    assert decided.decided_at is not None
    with pytest.raises(RuntimeError, match="Board already decided"):
        services.boards.decide(board_id=board_id, decision="A")
    assert services.boards.open_boards() == []


def test_late_challenger_after_human_decision_keeps_the_decision(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Kate", role="executive"))
    services.org.add_agent(AgentCreate(name="Kerry", role="executive"))
    verdict = json.dumps({"position": "A", "argument": "Ship it now."})
    created = services.boards.create(
        title="Launch date",
        context=f"Pick a launch date.\nECHO_RESULT={verdict}",
        options=["This week", "Next month"],
        challengers=["Kate", "Kerry"],
    )
    board_id = created.board.board_id

    assert services.runner.run_once().post_action == "board-response"
    assert services.boards.synthesise(board_id=board_id) is not None
    services.boards.decide(board_id=board_id, decision="A", rationale="Enough input.")

    late = services.runner.run_once()

    assert late.status == JobStatus.DONE
    assert late.post_action == "board-response"
    summary = services.boards.summary(board_id=board_id)
    assert summary.board.status == BoardStatus.DECIDED
    assert summary.board.final_decision == "A"
    assert len(summary.responses) == 2
    assert services.boards.synthesise(board_id=board_id) is None
    assert (
        services.notifications.list_notifications(category=NotificationCategory.DECISION_NEEDED)
        == []
    )
