"""Poll loop that feeds the runner: pause flag, concurrency, health probe, claim."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import httpx

from mission_control.config import SchedulerSettings
from mission_control.orchestrator.models import ClaimStatus, RuntimeSettingsSnapshot
from mission_control.orchestrator.repository import JobRepository
from mission_control.orchestrator.runner import JobRunner, RunOutcome

logger = logging.getLogger(__name__)


class HttpHealthCheck:
    """GET the configured URL; any 2xx counts as healthy."""

    def __init__(self, url: str, *, timeout_seconds: float = 3.0) -> None:
        self.url = url
        self._client = httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    def __call__(self) -> bool:
        try:
            response = self._client.get(self.url)
        except httpx.HTTPError as exc:
            logger.warning("health-check-error url=%s error=%s", self.url, exc)
            return False
        return response.is_success

    def close(self) -> None:
        self._client.close()


@dataclass(slots=True)
class TickResult:
    """What one scheduler tick did."""

    action: str
    snapshot: RuntimeSettingsSnapshot | None = None
    outcomes: list[RunOutcome] = field(default_factory=list)
    interval_seconds: float = 0.0


@dataclass(slots=True)
class SchedulerSummary:
    ticks: int = 0
    claimed: int = 0
    conflicts: int = 0
    idle: int = 0
    skipped: int = 0


class Scheduler:
    """Single logical scheduler; the claim primitive is its only lock."""

    def __init__(
        self,
        *,
        jobs: JobRepository,
        runner: JobRunner,
        settings: SchedulerSettings,
        health_check: Callable[[], bool] | None = None,
    ) -> None:
        self.jobs = jobs
        self.runner = runner
        self.settings = settings
        self.health_check = health_check
        self.interval_seconds = settings.base_interval_seconds
        self._stop_requested = False
        if runner.shutdown_requested is None:
            runner.shutdown_requested = self.stop_requested

    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        self._stop_requested = True

    def tick(self) -> TickResult:
        snapshot = self.jobs.read_runtime_settings(
            default_concurrency=self.settings.default_concurrency,
        )
        if snapshot.paused:
            logger.info("paused: pause_all flag is set")
            return self._result("paused", snapshot)

        running = self.jobs.count_running()
        if running >= snapshot.max_concurrency:
            logger.info("at-capacity running=%d limit=%d", running, snapshot.max_concurrency)
            return self._result("at-capacity", snapshot)

        if self.health_check is not None and not self.health_check():
            self.interval_seconds = min(
                self.interval_seconds * 2,
                self.settings.max_backoff_seconds,
            )
            logger.warning("unhealthy: backing off to %.0fs", self.interval_seconds)
            return self._result("unhealthy", snapshot)
        if self.interval_seconds != self.settings.base_interval_seconds:
            logger.info("recovered: interval reset to %.0fs", self.settings.base_interval_seconds)
            self.interval_seconds = self.settings.base_interval_seconds

        if snapshot.parallel_jobs > 1:
            max_jobs = min(
                snapshot.parallel_jobs,
                self.settings.parallel_cap,
                snapshot.max_concurrency - running,
            )
            outcomes = self.runner.run_parallel(max_jobs=max_jobs)
        else:
            outcomes = [self.runner.run_once()]

        if all(outcome.claim_status == ClaimStatus.EMPTY for outcome in outcomes):
            logger.info("no queued jobs")
            return self._result("idle", snapshot, outcomes)
        for outcome in outcomes:
            logger.info(
                "tick job=%s claim=%s status=%s",
                outcome.job_id,
                outcome.claim_status.value,
                outcome.status.value if outcome.status is not None else "-",
            )
        return self._result("ran", snapshot, outcomes)

    def run_loop(self, *, max_ticks: int | None = None) -> SchedulerSummary:
        """Tick until stopped by a signal or after `max_ticks` ticks."""

        summary = SchedulerSummary()
        logger.info("scheduler started interval=%.0fs", self.interval_seconds)
        with self._signal_handlers():
            while not self._stop_requested:
                if max_ticks is not None and summary.ticks >= max_ticks:
                    break
                try:
                    result = self.tick()
                except Exception:
                    logger.exception("tick-error")
                    result = TickResult(action="error", interval_seconds=self.interval_seconds)
                summary.ticks += 1
                _accumulate(summary, result)
                if max_ticks is not None and summary.ticks >= max_ticks:
                    break
                self._sleep_with_stop(self.interval_seconds)
        logger.info("scheduler stopped ticks=%d", summary.ticks)
        return summary

    def _result(
        self,
        action: str,
        snapshot: RuntimeSettingsSnapshot,
        outcomes: list[RunOutcome] | None = None,
    ) -> TickResult:
        return TickResult(
            action=action,
            snapshot=snapshot,
            outcomes=outcomes or [],
            interval_seconds=self.interval_seconds,
        )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        def _handler(signum: int, _: object | None) -> None:
            logger.info("%s received", signal.Signals(signum).name)
            self.request_stop()

        try:
            original_sigint = signal.signal(signal.SIGINT, _handler)
            original_sigterm = signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in the main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def _accumulate(summary: SchedulerSummary, result: TickResult) -> None:
    if result.action in {"paused", "at-capacity", "unhealthy", "error"}:
        summary.skipped += 1
        return
    for outcome in result.outcomes:
        if outcome.claim_status == ClaimStatus.CLAIMED:
            summary.claimed += 1
        elif outcome.claim_status == ClaimStatus.CONFLICT:
            summary.conflicts += 1
        else:
            summary.idle += 1
