"""Best-effort recovery of structured payloads from engine output."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

RAW_PREVIEW_CHARS = 1_000

_DECODER = json.JSONDecoder()


@dataclass(slots=True, frozen=True)
class Parsed(Generic[T]):
    """Successfully extracted payload."""

    value: T


@dataclass(slots=True, frozen=True)
class Malformed:
    """Payload could not be extracted; `reason` explains why."""

    reason: str
    raw: str = ""


ParseResult = Parsed[T] | Malformed


def parse_envelope(*, stdout: str, stderr: str) -> dict[str, Any]:
    """Return the `{ok, result, error}` envelope printed by an engine.

    The last non-empty stdout line is tried first, then every line bottom-up.
    When nothing parses, a failing envelope carrying previews of both streams
    is synthesised.
    """

    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if lines:
        last = _try_load_dict(lines[-1])
        if last is not None:
            return last
    for line in reversed(lines):
        if line.startswith("{") and line.endswith("}"):
            payload = _try_load_dict(line)
            if payload is not None:
                return payload
    return {
        "ok": False,
        "error": "parse-failed",
        "raw": stdout[:RAW_PREVIEW_CHARS],
        "stderr": stderr[:RAW_PREVIEW_CHARS],
    }


def result_text(value: object) -> str | None:
    """Normalize an envelope `result` to text; non-strings are JSON encoded."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def extract_json_object(text: str | None, *, anchor: str) -> ParseResult[dict[str, Any]]:
    """Find the first JSON object carrying the `"anchor"` key in free text.

    Decoding is attempted at every `{`, so braces in surrounding prose and
    objects nested inside other payloads are both tolerated.
    """

    if not text or not text.strip():
        return Malformed(reason="empty output")

    for value in _decoded_values(text, opener="{", skip_decoded=False):
        if isinstance(value, dict) and anchor in value:
            return Parsed(value)
    return Malformed(reason=f"no JSON object with {anchor!r}", raw=text[:RAW_PREVIEW_CHARS])


def extract_json_array(text: str | None) -> ParseResult[list[Any]]:
    """Find the top-level JSON array in free text.

    An array of objects wins over bare lists like `[1]` that appear in prose.
    """

    if not text or not text.strip():
        return Malformed(reason="empty output")

    arrays = [
        value
        for value in _decoded_values(text, opener="[", skip_decoded=True)
        if isinstance(value, list)
    ]
    for array in arrays:
        if any(isinstance(item, dict) for item in array):
            return Parsed(array)
    if arrays:
        return Parsed(arrays[0])
    return Malformed(reason="no JSON array", raw=text[:RAW_PREVIEW_CHARS])


def _decoded_values(text: str, *, opener: str, skip_decoded: bool) -> Iterator[Any]:
    """Yield every JSON value that decodes from an `opener` position, left to right."""

    position = text.find(opener)
    while position != -1:
        try:
            value, end = _DECODER.raw_decode(text, position)
        except json.JSONDecodeError:
            position = text.find(opener, position + 1)
            continue
        yield value
        position = text.find(opener, end if skip_decoded else position + 1)


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
