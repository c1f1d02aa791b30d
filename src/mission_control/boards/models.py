"""Challenge Board domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class BoardStatus(str, Enum):
    DELIBERATING = "deliberating"
    OPEN = "open"
    DECIDED = "decided"


@dataclass(slots=True)
class BoardOption:
    label: str
    summary: str
    recommended_by: list[str] = field(default_factory=list)
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "summary": self.summary,
            "recommended_by": list(self.recommended_by),
            "pros": list(self.pros),
            "cons": list(self.cons),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BoardOption:
        return cls(
            label=str(raw.get("label", "")),
            summary=str(raw.get("summary", "")),
            recommended_by=[str(item) for item in raw.get("recommended_by") or []],
            pros=[str(item) for item in raw.get("pros") or []],
            cons=[str(item) for item in raw.get("cons") or []],
        )


@dataclass(slots=True)
class RiskFlag:
    risk: str
    severity: str
    mitigation: str = ""


@dataclass(slots=True)
class ChallengeResponseView:
    agent_id: str | None
    agent_name: str
    perspective: str
    position: str
    argument: str
    risk_flags: list[RiskFlag]
    created_at: datetime


@dataclass(slots=True)
class BoardView:
    board_id: str
    decision_title: str
    decision_context: str
    project_id: str | None
    requested_by: str
    status: BoardStatus
    options: list[BoardOption]
    final_decision: str | None
    rationale: str | None
    created_at: datetime
    decided_at: datetime | None


@dataclass(slots=True)
class BoardSummary:
    """Board with its recorded responses."""

    board: BoardView
    responses: list[ChallengeResponseView]


@dataclass(slots=True)
class BoardCreated:
    board: BoardView
    job_ids: list[str]
