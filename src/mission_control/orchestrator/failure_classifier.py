"""Deterministic engine failure classification for the auto-retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from mission_control.orchestrator.models import FailureClass

FAILURE_CLASSIFIER_VERSION = 1

_FAILURE_RULES: tuple[tuple[str, FailureClass, tuple[str, ...]], ...] = (
    (
        "billing_or_quota",
        FailureClass.BILLING_OR_QUOTA,
        (
            "quota",
            "resource_exhausted",
            "insufficient credit",
            "insufficient funds",
            "billing",
            "payment required",
            "credit balance",
            "usage limit",
        ),
    ),
    (
        "access_or_auth",
        FailureClass.ACCESS_OR_AUTH,
        (
            "unauthorized",
            "forbidden",
            "permission denied",
            "invalid api key",
            "authentication",
            "not logged in",
            "login required",
        ),
    ),
    (
        "model_not_available",
        FailureClass.MODEL_NOT_AVAILABLE,
        (
            "model not found",
            "unknown model",
            "unsupported model",
            "invalid model",
            "model is not available",
            "not available in your region",
        ),
    ),
    (
        "rate_limit_transient",
        FailureClass.ENGINE_TRANSIENT,
        (
            "too many requests",
            "rate limit",
            "rate_limit",
            "429",
            "overloaded",
            "please retry",
            "try again later",
        ),
    ),
    (
        "generic_transient",
        FailureClass.ENGINE_TRANSIENT,
        (
            "temporarily unavailable",
            "temporary failure",
            "connection reset",
            "connection refused",
            "network error",
            "could not resolve host",
            "timed out",
        ),
    ),
)


@dataclass(slots=True)
class EngineFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    matched_rule: str
    matched_pattern: str | None

    def to_event_details(self, *, engine: str, model: str) -> dict[str, object]:
        """Serialize classifier diagnostics for job events."""

        return {
            "classifier_version": FAILURE_CLASSIFIER_VERSION,
            "engine": engine,
            "model": model,
            "failure_class": self.failure_class.value,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_engine_failure(
    *,
    engine: str,
    exit_code: int | None,
    error: str,
    stderr: str,
    timed_out: bool,
    transient_exit_codes: tuple[int, ...],
) -> EngineFailureClassification:
    """Classify a failed run; the first matching rule wins."""

    if timed_out:
        return EngineFailureClassification(
            failure_class=FailureClass.TIMEOUT,
            reason_code=f"{engine}_timeout",
            matched_rule="timeout",
            matched_pattern=None,
        )

    haystack = f"{error}\n{stderr}".lower()
    for rule, failure_class, patterns in _FAILURE_RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return EngineFailureClassification(
                failure_class=failure_class,
                reason_code=f"{engine}_{rule}",
                matched_rule=rule,
                matched_pattern=pattern,
            )

    if exit_code is not None and exit_code in transient_exit_codes:
        return EngineFailureClassification(
            failure_class=FailureClass.ENGINE_TRANSIENT,
            reason_code=f"{engine}_transient_exit_code",
            matched_rule="transient_exit_code",
            matched_pattern=None,
        )

    if error == "parse-failed":
        return EngineFailureClassification(
            failure_class=FailureClass.OUTPUT_INVALID_JSON,
            reason_code=f"{engine}_output_invalid_json",
            matched_rule="output_invalid_json",
            matched_pattern=None,
        )

    return EngineFailureClassification(
        failure_class=FailureClass.ENGINE_NON_RETRYABLE,
        reason_code=f"{engine}_non_retryable",
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
