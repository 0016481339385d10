"""
Lenient parsing of tool-call argument text.

Models occasionally return argument blobs that are not valid JSON, most often
because generation was cut off by the token limit part-way through an object
literal. ``parse_arguments()`` first tries strict ``json.loads``; when that
fails it runs a line-oriented repair pass aimed at exactly those truncation
patterns:

- a missing closing brace is appended;
- a member ending in ``:`` gets an empty-string value;
- a dangling key with no colon becomes ``"key": ""``;
- an unterminated string value is closed;
- a trailing comma on the last member is dropped.

This is a best-effort heuristic, not a general JSON repair algorithm. When
the repaired text still fails to parse, ``None`` is returned and the caller
must treat the arguments as unusable.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

_STRUCTURAL_ENDINGS = ("{", "[", "}", "]")


def parse_arguments(raw: str | None) -> dict[str, Any] | None:
    """Parse *raw* tool-call arguments into a mapping.

    Args:
        raw: Argument text as returned by the model.

    Returns:
        The argument mapping, ``{}`` for blank input, or ``None`` if the text
        could not be turned into a JSON object.
    """
    if raw is None or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Strict argument parse failed; attempting repair of %r", raw)
        return _recover(raw)

    if not isinstance(parsed, dict):
        logger.debug("Arguments parsed to %s, not an object", type(parsed).__name__)
        return None
    return parsed


def repair_arguments(raw: str) -> str | None:
    """Apply the line-oriented repair pass to *raw*.

    Returns:
        The repaired text, or ``None`` if *raw* does not open with a brace.
    """
    lines = [line.rstrip() for line in raw.splitlines()]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines or not lines[0].lstrip().startswith("{"):
        return None

    first = lines[0].strip()
    if first != "{":
        # Single-line or "{ "key": ..." openings: treat the rest as a member line.
        lines = ["{", first[1:].strip(), *lines[1:]]
    if lines[-1].strip() != "}":
        lines.append("}")

    members: list[str] = []
    for line in lines[1:-1]:
        if not line.strip():
            continue
        members.append(_repair_line(line))

    if members and members[-1].endswith(","):
        members[-1] = members[-1][:-1]

    return "\n".join(["{", *members, "}"])


def _recover(raw: str) -> dict[str, Any] | None:
    repaired = repair_arguments(raw)
    if repaired is None:
        logger.warning("Unrecoverable tool arguments (no opening brace): %r", raw)
        return None

    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as exc:
        logger.warning("Tool argument repair failed (%s): %r", exc, raw)
        return None

    if not isinstance(parsed, dict):
        return None
    logger.debug("Recovered tool arguments: %r", parsed)
    return parsed


def _repair_line(line: str) -> str:
    in_string, escape_pending, has_colon = _scan(line.strip())

    if in_string:
        # Value (or key) cut off mid-string.
        if escape_pending:
            line = line[:-1]
        line += '"'
    else:
        stripped = line.strip()
        if stripped.endswith(",") or stripped.endswith(_STRUCTURAL_ENDINGS):
            return line
        if stripped.endswith(":"):
            return line + ' ""'

    if not has_colon:
        return line + ': ""'
    return line


def _scan(text: str) -> tuple[bool, bool, bool]:
    """Return ``(in_string, escape_pending, has_colon)`` at the end of *text*.

    ``has_colon`` only counts colons outside string literals.
    """
    in_string = False
    escaped = False
    has_colon = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ":":
            has_colon = True
    return in_string, escaped, has_colon
