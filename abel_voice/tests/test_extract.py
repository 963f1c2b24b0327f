"""Fenced-block extraction and intent parsing."""
from __future__ import annotations

import pytest

from abel_voice.core.errors import ParseError
from abel_voice.core.models import HomeIntent, MoveIntent, SequenceIntent, StopIntent, UnknownIntent
from abel_voice.llm.extract import (
    extract_fenced,
    extract_json,
    extract_python_code,
    intent_from_dict,
    parse_intent,
)


def test_json_fence_around_home() -> None:
    text = 'Sure:\n```json\n{"action":"home"}\n```\nanything else?'
    assert extract_json(text) == '{"action":"home"}'


def test_no_fence_returns_trimmed_text() -> None:
    assert extract_json('   {"action": "stop"}  \n') == '{"action": "stop"}'


def test_unterminated_fence_runs_to_end() -> None:
    assert extract_python_code("```python\nprint('hi')\n") == "print('hi')"


def test_tagged_fence_preferred_over_earlier_bare_fence() -> None:
    text = "```\nnot this\n```\n```python\nprint(1)\n```"
    assert extract_python_code(text) == "print(1)"


def test_bare_fence_fallback() -> None:
    assert extract_fenced("intro\n```\nx = 1\n```", "python") == "x = 1"


def test_other_tag_falls_back_to_first_bare_marker() -> None:
    # "```python" is also a bare fence marker; its content keeps the tag word
    assert extract_json("```python\nx = 1\n```") == "python\nx = 1"


def test_parse_move_intent() -> None:
    assert parse_intent('```json\n{"action": "move", "servo": 0, "angle": 45}\n```') == MoveIntent(servo=0, angle=45)


def test_parse_sequence_normalizes_name() -> None:
    assert parse_intent('{"action": "sequence", "sequence_name": "wave"}') == SequenceIntent(name="WAVE")


def test_unknown_sequence_becomes_unknown_intent() -> None:
    intent = parse_intent('{"action": "sequence", "sequence_name": "DANCE"}')
    assert isinstance(intent, UnknownIntent)
    assert "DANCE" in intent.message


def test_home_stop_and_unknown() -> None:
    assert intent_from_dict({"action": "home"}) == HomeIntent()
    assert intent_from_dict({"action": "STOP"}) == StopIntent()
    assert intent_from_dict({"action": "fly"}) == UnknownIntent(message="Command not recognized")
    assert intent_from_dict({"action": "unknown", "message": "Say again?"}).message == "Say again?"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"action": ""},
        {"action": "move", "servo": 0},
        {"action": "move", "servo": 4, "angle": 90},
        {"action": "move", "servo": 1, "angle": 181},
        {"action": "move", "servo": True, "angle": 90},
        {"action": "move", "servo": "1", "angle": 90},
        {"action": "sequence"},
    ],
)
def test_invalid_payloads_raise(payload) -> None:
    with pytest.raises(ParseError):
        intent_from_dict(payload)


def test_malformed_json_raises() -> None:
    with pytest.raises(ParseError):
        parse_intent("```json\n{not json}\n```")


def test_non_object_json_raises() -> None:
    with pytest.raises(ParseError):
        parse_intent("[1, 2]")


def test_intent_to_dict_shape() -> None:
    assert SequenceIntent(name="WAVE").to_dict() == {"action": "sequence", "sequence_name": "WAVE"}
    assert MoveIntent(servo=3, angle=55).to_dict() == {"action": "move", "servo": 3, "angle": 55}
