"""Local deterministic engine for runner integration tests.

Behaviour is driven by directive lines inside the prompt file:

- ``ECHO_MODE=ok|fail|human|sleep|garbage`` (default ``ok``)
- ``ECHO_RESULT=<text>`` result text for ``ok`` mode
- ``ECHO_ERROR=<text>`` error/stderr text for ``fail`` mode
- ``ECHO_SLEEP=<seconds>`` delay used by ``sleep`` mode
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

HUMAN_EXIT_CODE = 20


def main(argv: list[str] | None = None) -> int:
    """Run local deterministic job execution."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    directives = _directives(prompt)
    mode = directives.get("ECHO_MODE", "ok")

    if mode == "sleep":
        time.sleep(float(directives.get("ECHO_SLEEP", "30")))
        mode = "ok"
    if mode == "garbage":
        print("this is not an envelope")
        return 0
    if mode == "human":
        print(json.dumps({"ok": False, "result": None, "error": "needs a human decision"}))
        return HUMAN_EXIT_CODE
    if mode == "fail":
        error = directives.get("ECHO_ERROR", "echo failure")
        sys.stderr.write(f"{error}\n")
        print(json.dumps({"ok": False, "result": None, "error": error}))
        return 1

    result = directives.get("ECHO_RESULT", f"echo: {len(prompt)} chars")
    print("working...")
    print(json.dumps({"ok": True, "result": result, "error": None}))
    return 0


def _directives(prompt: str) -> dict[str, str]:
    directives: dict[str, str] = {}
    for line in prompt.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key.startswith("ECHO_") and key not in directives:
            directives[key] = value.strip()
    return directives


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
