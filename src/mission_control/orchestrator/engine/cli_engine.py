"""Subprocess-based engine runner for CLI agents."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
import time
from pathlib import Path
from typing import IO

from mission_control.config import TEMPLATE_INPUT_PLACEHOLDERS
from mission_control.orchestrator.engine.base import EngineRunRequest, EngineRunResult

TIMEOUT_EXIT_CODE = 124


class EngineRunError(RuntimeError):
    """Engine execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliJobEngine:
    """Execute the engine command template configured for the job's engine."""

    def run(self, request: EngineRunRequest) -> EngineRunResult:
        request.workdir.mkdir(parents=True, exist_ok=True)
        stdout_path = request.workdir / "stdout.log"
        stderr_path = request.workdir / "stderr.log"
        prompt_path = request.workdir / "prompt.txt"
        prompt_path.write_text(request.prompt, "utf-8")

        run_args = build_run_args(
            command_template=request.command_template,
            model=request.model,
            prompt=request.prompt,
            prompt_file=prompt_path,
            command=request.command if request.command is not None else request.prompt,
            mcp_servers=request.mcp_servers,
            job_id=request.job_id,
        )

        env = os.environ.copy()
        env["MISSION_CONTROL_JOB_ID"] = request.job_id
        env["MISSION_CONTROL_ENGINE"] = request.engine
        env["MISSION_CONTROL_MODEL"] = request.model
        env["MISSION_CONTROL_MCP_SERVERS"] = ",".join(request.mcp_servers)

        try:
            with (
                stdout_path.open("w", encoding="utf-8") as stdout_handle,
                stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                return _run_subprocess_with_shutdown(
                    run_args=run_args,
                    env=env,
                    cwd=request.workdir,
                    timeout_seconds=request.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    shutdown_requested=request.shutdown_requested,
                    graceful_shutdown_seconds=request.graceful_shutdown_seconds,
                    stdout_path=stdout_path,
                    stderr_path=stderr_path,
                    prompt_path=prompt_path,
                )
        except FileNotFoundError as error:
            raise EngineRunError(
                f"Engine command not found: {run_args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            raise EngineRunError(
                f"Engine failed to start: {error}",
                transient=True,
            ) from error


def build_run_args(  # noqa: PLR0913
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
    command: str,
    mcp_servers: list[str],
    job_id: str,
) -> list[str]:
    """Render a command template into argv with every value shell-quoted."""

    stripped = command_template.strip()
    if not stripped:
        raise EngineRunError("Engine command template is empty.", transient=False)
    if not any(placeholder in stripped for placeholder in TEMPLATE_INPUT_PLACEHOLDERS):
        raise EngineRunError(
            "Engine command template must include one of "
            f"{', '.join(TEMPLATE_INPUT_PLACEHOLDERS)}.",
            transient=False,
        )

    try:
        rendered = stripped.format(
            python=shlex.quote(sys.executable),
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
            command=shlex.quote(command),
            mcp_servers=shlex.quote(",".join(mcp_servers)),
            job_id=shlex.quote(job_id),
        )
    except (KeyError, IndexError) as error:
        raise EngineRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise EngineRunError(
            "Engine command template rendered empty command.",
            transient=False,
        )
    return argv


def _run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    cwd: Path,
    timeout_seconds: int,
    stdout_handle: IO[str],
    stderr_handle: IO[str],
    shutdown_requested,
    graceful_shutdown_seconds: int | None,
    stdout_path: Path,
    stderr_path: Path,
    prompt_path: Path,
) -> EngineRunResult:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        cwd=cwd,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    start_monotonic = time.monotonic()
    shutdown_deadline: float | None = None
    graceful_seconds = max(0, graceful_shutdown_seconds or 0)

    def _result(exit_code: int, *, timed_out: bool) -> EngineRunResult:
        return EngineRunResult(
            exit_code=exit_code,
            timed_out=timed_out,
            stdout_path=stdout_path,
            stderr_path=stderr_path,
            prompt_path=prompt_path,
            duration_ms=int((time.monotonic() - start_monotonic) * 1000),
        )

    while True:
        returncode = process.poll()
        if returncode is not None:
            return _result(returncode, timed_out=False)

        now = time.monotonic()
        if now - start_monotonic >= timeout_seconds:
            _terminate_process(process)
            return _result(TIMEOUT_EXIT_CODE, timed_out=True)

        if shutdown_requested is not None and shutdown_requested():
            if shutdown_deadline is None:
                shutdown_deadline = now + graceful_seconds
            if now >= shutdown_deadline:
                _terminate_process(process)
                return _result(TIMEOUT_EXIT_CODE, timed_out=True)

        time.sleep(0.1)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
