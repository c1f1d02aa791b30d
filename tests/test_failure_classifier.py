from __future__ import annotations

import allure
import pytest

from mission_control.orchestrator.failure_classifier import (
    FAILURE_CLASSIFIER_VERSION,
    classify_engine_failure,
)
from mission_control.orchestrator.models import FailureClass

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Failure Classification"),
]


def _classify(
    error: str = "",
    *,
    stderr: str = "",
    exit_code: int | None = 1,
    engine: str = "claude",
    timed_out: bool = False,
):
    return classify_engine_failure(
        engine=engine,
        exit_code=exit_code,
        error=error,
        stderr=stderr,
        timed_out=timed_out,
        transient_exit_codes=(137, 143),
    )


def test_classifier_version_is_stable() -> None:
    assert FAILURE_CLASSIFIER_VERSION == 1


def test_timeout_wins_over_everything() -> None:
    classified = _classify("Quota exceeded", timed_out=True, exit_code=None)

    assert classified.failure_class == FailureClass.TIMEOUT
    assert classified.reason_code == "claude_timeout"


def test_billing_beats_transient_exit_code() -> None:
    classified = _classify(stderr="Quota exceeded for this project", exit_code=137, engine="gemini")

    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_rule == "billing_or_quota"
    assert classified.matched_pattern == "quota"
    assert classified.reason_code == "gemini_billing_or_quota"


@pytest.mark.parametrize(
    ("error", "expected", "rule"),
    [
        ("401 Unauthorized", FailureClass.ACCESS_OR_AUTH, "access_or_auth"),
        ("Invalid model requested", FailureClass.MODEL_NOT_AVAILABLE, "model_not_available"),
        ("HTTP 429 Too Many Requests", FailureClass.ENGINE_TRANSIENT, "rate_limit_transient"),
        ("Connection reset by peer", FailureClass.ENGINE_TRANSIENT, "generic_transient"),
    ],
)
def test_pattern_rules(error: str, expected: FailureClass, rule: str) -> None:
    classified = _classify(error)

    assert classified.failure_class == expected
    assert classified.matched_rule == rule


def test_transient_exit_code_without_pattern() -> None:
    classified = _classify("Killed", exit_code=143)

    assert classified.failure_class == FailureClass.ENGINE_TRANSIENT
    assert classified.matched_rule == "transient_exit_code"


def test_unparseable_output_is_invalid_json() -> None:
    classified = _classify("parse-failed", exit_code=0)

    assert classified.failure_class == FailureClass.OUTPUT_INVALID_JSON


def test_fallback_is_non_retryable_with_event_details() -> None:
    classified = _classify("Something odd happened", engine="openai")

    assert classified.failure_class == FailureClass.ENGINE_NON_RETRYABLE
    assert classified.to_event_details(engine="openai", model="gpt-5-codex") == {
        "classifier_version": 1,
        "engine": "openai",
        "model": "gpt-5-codex",
        "failure_class": "engine_non_retryable",
        "reason_code": "openai_non_retryable",
        "matched_rule": "fallback_non_retryable",
        "matched_pattern": None,
    }
