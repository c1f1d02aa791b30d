"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest

from mission_control.config import LLM_ENGINES, Settings
from mission_control.services import Services, build_services

ECHO_ENGINE_TEMPLATE = (
    f"{sys.executable} -m mission_control.orchestrator.engine.echo_engine "
    "--prompt-file {prompt_file}"
)


def echo_settings(db_path: Path, workdir_root: Path) -> Settings:
    """Settings whose LLM engines are all served by the local echo engine."""

    settings = Settings(db_path=db_path)
    templates = dict(settings.engine.command_templates)
    templates.update({engine: ECHO_ENGINE_TEMPLATE for engine in LLM_ENGINES})
    return replace(
        settings,
        engine=replace(
            settings.engine,
            command_templates=templates,
            workdir_root=workdir_root,
            timeout_seconds=60,
        ),
        scheduler=replace(
            settings.scheduler,
            base_interval_seconds=0.01,
            max_backoff_seconds=0.08,
            runner_id="test-runner",
        ),
    )


@pytest.fixture()
def echo_engine(monkeypatch, tmp_path: Path):
    """Monkeypatch Settings.from_env so CLI commands run jobs through the echo engine."""

    original_from_env = Settings.from_env

    def _patched_from_env(db_path=None):
        settings = original_from_env(db_path=db_path)
        patched = echo_settings(settings.db_path, tmp_path / "runs")
        return replace(patched, api=settings.api)

    monkeypatch.setattr(Settings, "from_env", staticmethod(_patched_from_env))


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return echo_settings(tmp_path / "mission-control.db", tmp_path / "runs")


@pytest.fixture()
def services(settings: Settings) -> Iterator[Services]:
    built = build_services(settings)
    try:
        yield built
    finally:
        built.close()
