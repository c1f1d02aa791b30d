"""Wrap an arbitrary CLI so its output ends with an `{ok, result, error}` JSON line.

Usage: ``python -m mission_control.orchestrator.engine.envelope -- <argv...>``

The wrapped command's stdout becomes ``result``; a non-zero exit code turns into
``ok: false`` with the stderr tail as ``error`` and the exit code is passed
through, so the runner can still recognise the human-intervention code.
A command that already prints a final envelope line is passed through as is.
"""

from __future__ import annotations

import json
import signal
import subprocess
import sys
from types import FrameType

ERROR_TAIL_CHARS = 2_000
COMMAND_NOT_FOUND_EXIT_CODE = 127


def main(argv: list[str] | None = None) -> int:
    """Run the wrapped command and print the envelope line."""

    command = list(sys.argv[1:] if argv is None else argv)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        _emit({"ok": False, "result": None, "error": "envelope: no command given"})
        return 2

    try:
        process = subprocess.Popen(  # noqa: S603
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError:
        _emit({"ok": False, "result": None, "error": f"command not found: {command[0]}"})
        return COMMAND_NOT_FOUND_EXIT_CODE

    def _forward(signum: int, _frame: FrameType | None) -> None:
        process.send_signal(signum)

    previous = signal.signal(signal.SIGTERM, _forward)
    try:
        stdout, stderr = process.communicate()
    finally:
        signal.signal(signal.SIGTERM, previous)

    if stderr:
        sys.stderr.write(stderr)
    exit_code = process.returncode

    existing = _existing_envelope(stdout)
    if existing is not None:
        sys.stdout.write(stdout if stdout.endswith("\n") else f"{stdout}\n")
        sys.stdout.flush()
        return exit_code

    result = stdout.strip()
    if exit_code == 0:
        _emit({"ok": True, "result": result, "error": None})
    else:
        error = stderr.strip()[-ERROR_TAIL_CHARS:] or f"exit={exit_code}"
        _emit({"ok": False, "result": result or None, "error": error})
    return exit_code


def _existing_envelope(stdout: str) -> dict[str, object] | None:
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        payload = json.loads(lines[-1])
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict) and "ok" in payload:
        return payload
    return None


def _emit(payload: dict[str, object]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
