"""Score QA reviewer output and apply the verdict."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from mission_control.orchestrator.models import JobReviewView, JobReviewWrite, JobView
from mission_control.orchestrator.output_parsing import Malformed, extract_json_object
from mission_control.orchestrator.repository import JobRepository
from mission_control.org.repository import OrgRepository

logger = logging.getLogger(__name__)

REVIEW_DIMENSIONS = ("completeness", "accuracy", "actionability", "revenue_relevance", "evidence")
PASS_THRESHOLD = 35
MIN_SCORE = 1
MAX_SCORE = 10
ROLLING_WINDOW = 20


@dataclass(slots=True, frozen=True)
class ReviewScores:
    completeness: int
    accuracy: int
    actionability: int
    revenue_relevance: int
    evidence: int
    feedback: str
    malformed: bool = False

    @property
    def total(self) -> int:
        return (
            self.completeness
            + self.accuracy
            + self.actionability
            + self.revenue_relevance
            + self.evidence
        )

    @property
    def passed(self) -> bool:
        return self.total >= PASS_THRESHOLD


def clamp_score(value: object) -> int:
    """Round to an int in [1, 10]; anything non-numeric scores the minimum."""

    if isinstance(value, bool) or value is None:
        return MIN_SCORE
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return MIN_SCORE
    if math.isnan(number):
        return MIN_SCORE
    if math.isinf(number):
        return MAX_SCORE if number > 0 else MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, round(number)))


def parse_review(text: str | None) -> ReviewScores:
    """Parse reviewer output; malformed output becomes a minimum-score failing review."""

    extracted = extract_json_object(text, anchor="completeness")
    if isinstance(extracted, Malformed):
        return ReviewScores(
            *(MIN_SCORE for _ in REVIEW_DIMENSIONS),
            feedback=f"Malformed review output: {extracted.reason}",
            malformed=True,
        )
    payload = extracted.value
    feedback = payload.get("feedback")
    return ReviewScores(
        *(clamp_score(payload.get(name)) for name in REVIEW_DIMENSIONS),
        feedback=feedback if isinstance(feedback, str) else "",
    )


class QualityScorer:
    """Persist reviews, move the reviewed job and update agent quality stats."""

    def __init__(self, *, jobs: JobRepository, org: OrgRepository) -> None:
        self.jobs = jobs
        self.org = org

    def score(self, *, review_job: JobView, result: str | None) -> JobReviewView | None:
        if review_job.parent_job_id is None:
            logger.warning("review-orphan job=%s", review_job.job_id)
            return None
        parent = self.jobs.get_job(job_id=review_job.parent_job_id)
        if parent is None:
            logger.warning("review-orphan job=%s", review_job.job_id)
            return None

        scores = parse_review(result)
        review = self.jobs.add_review(
            JobReviewWrite(
                job_id=parent.job_id,
                review_job_id=review_job.job_id,
                reviewer_agent_id=review_job.agent_id,
                reviewed_agent_id=parent.agent_id,
                completeness=scores.completeness,
                accuracy=scores.accuracy,
                actionability=scores.actionability,
                revenue_relevance=scores.revenue_relevance,
                evidence=scores.evidence,
                total_score=scores.total,
                passed=scores.passed,
                feedback=scores.feedback,
                malformed=scores.malformed,
            ),
        )
        self.jobs.apply_review_outcome(
            job_id=parent.job_id,
            quality_score=scores.total,
            review_notes=scores.feedback,
            passed=scores.passed,
        )
        if parent.agent_id is not None:
            self.org.apply_review_stats(
                agent_id=parent.agent_id,
                recent_totals=self.jobs.recent_review_totals(
                    reviewed_agent_id=parent.agent_id,
                    limit=ROLLING_WINDOW,
                ),
                passed=scores.passed,
            )
        logger.info(
            "review-scored parent=%s total=%d passed=%s malformed=%s",
            parent.job_id,
            scores.total,
            scores.passed,
            scores.malformed,
        )
        return review
