"""Response shaping for the generator: fenced-block extraction and intent parsing.

Extraction order for ``extract_fenced(text, tag)``:

1. the first fence opened with ```<tag>; content runs to the next ``` or to
   the end of the text;
2. otherwise the first bare ``` fence, same rule;
3. otherwise the whole text.

The result is always whitespace-trimmed.
"""
from __future__ import annotations

import json
from typing import Any, Dict

from abel_voice.core.errors import ParseError
from abel_voice.core.models import (
    HomeIntent,
    MoveIntent,
    SequenceIntent,
    StopIntent,
    StructuredIntent,
    UnknownIntent,
)
from abel_voice.llm.intent_script import SEQUENCES

FENCE = "```"
SERVO_IDS = range(0, 4)


def extract_fenced(text: str, tag: str) -> str:
    for marker in (FENCE + tag, FENCE):
        start = text.find(marker)
        if start == -1:
            continue
        start += len(marker)
        end = text.find(FENCE, start)
        if end == -1:
            end = len(text)
        return text[start:end].strip()
    return text.strip()


def extract_json(text: str) -> str:
    return extract_fenced(text, "json")


def extract_python_code(text: str) -> str:
    return extract_fenced(text, "python")


def _require_int(payload: Dict[str, Any], key: str, valid: range) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"'{key}' must be an integer, got {value!r}")
    if value not in valid:
        raise ParseError(f"'{key}' out of range [{valid.start}, {valid.stop - 1}]: {value}")
    return value


def intent_from_dict(payload: Dict[str, Any]) -> StructuredIntent:
    action = payload.get("action")
    if not isinstance(action, str) or not action:
        raise ParseError(f"Missing 'action' in command result: {payload!r}")
    action = action.strip().lower()

    if action == "move":
        return MoveIntent(
            servo=_require_int(payload, "servo", SERVO_IDS),
            angle=_require_int(payload, "angle", range(0, 181)),
        )
    if action == "sequence":
        name = payload.get("sequence_name")
        if not isinstance(name, str) or not name.strip():
            raise ParseError("'sequence' action without 'sequence_name'")
        name = name.strip().upper()
        if name not in SEQUENCES:
            return UnknownIntent(message=f"I don't know the sequence {name}")
        return SequenceIntent(name=name)
    if action == "home":
        return HomeIntent()
    if action == "stop":
        return StopIntent()
    return UnknownIntent(message=str(payload.get("message") or "Command not recognized"))


def parse_intent(response_text: str) -> StructuredIntent:
    """Parse interpreter output (possibly fenced) into a structured intent."""
    raw = extract_json(response_text)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse command result JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError(f"Command result must be a JSON object, got {type(payload).__name__}")
    return intent_from_dict(payload)
