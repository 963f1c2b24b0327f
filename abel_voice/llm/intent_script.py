"""Render structured intents into runnable arm scripts.

Scripts talk to the servo controller over serial using the timed-move
protocol ``#<servo>M<angle>T<ms>\\n`` at 115200 baud.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from abel_voice.core.models import (
    GeneratedScript,
    HomeIntent,
    MoveIntent,
    SequenceIntent,
    StructuredIntent,
)

HOME_POSITION = (90, 90, 90, 90)

# (servo, angle, duration_ms)
SEQUENCES: Dict[str, List[Tuple[int, int, int]]] = {
    "WAVE": [(0, 60, 300), (0, 120, 300), (0, 60, 300), (0, 90, 300)],
    "NOD_YES": [(2, 110, 400), (2, 70, 400), (2, 110, 400), (2, 90, 400)],
    "SHAKE_NO": [(0, 70, 200), (0, 110, 200), (0, 70, 200), (0, 90, 200)],
    "HAND_OVER": [
        (3, 60, 1000),
        (1, 60, 800),
        (2, 140, 1200),
        (3, 110, 1200),
        (2, 90, 800),
        (1, 90, 800),
        (1, 120, 800),
        (2, 130, 1200),
        (3, 60, 1200),
        (2, 90, 800),
        (1, 90, 800),
        (3, 90, 800),
    ],
    "PICK_PLACE": [
        (3, 60, 1000),
        (1, 120, 800),
        (2, 140, 1200),
        (3, 110, 1200),
        (2, 90, 800),
        (1, 90, 800),
        (0, 120, 1000),
        (1, 120, 800),
        (2, 140, 1000),
        (3, 60, 1200),
        (2, 90, 800),
        (1, 90, 800),
        (0, 90, 1000),
        (3, 90, 800),
    ],
}

_HELPERS = r'''import time

import serial

ser = serial.Serial(SERIAL_PORT, 115200, timeout=1)
time.sleep(2)

current_positions = [90, 90, 90, 90]


def calculate_duration(start_angle, end_angle, speed_factor=1.2):
    distance = abs(end_angle - start_angle)
    base_duration = int(distance * speed_factor * 10)
    return max(400, min(base_duration, 3000))


def move_servo_smooth(servo_id, target_angle, duration_ms=None):
    if duration_ms is None:
        duration_ms = calculate_duration(current_positions[servo_id], target_angle)
    ser.write(f"#{servo_id}M{target_angle}T{duration_ms}\n".encode())
    current_positions[servo_id] = target_angle
    time.sleep(duration_ms / 1000.0 + 0.15)


def move_coordinated(movements, settle_time=0.2):
    if not movements:
        return
    max_duration = max(calculate_duration(current_positions[s], a) for s, a in movements)
    for servo_id, target_angle in movements:
        ser.write(f"#{servo_id}M{target_angle}T{max_duration}\n".encode())
        current_positions[servo_id] = target_angle
    time.sleep(max_duration / 1000.0 + settle_time)
'''


def _body(intent: StructuredIntent) -> Optional[List[str]]:
    if isinstance(intent, MoveIntent):
        return [f"move_servo_smooth({intent.servo}, {intent.angle})"]
    if isinstance(intent, HomeIntent):
        pairs = ", ".join(f"({servo}, {angle})" for servo, angle in enumerate(HOME_POSITION))
        return [f"move_coordinated([{pairs}])"]
    if isinstance(intent, SequenceIntent):
        steps = SEQUENCES.get(intent.name)
        if steps is None:
            return None
        return [f"move_servo_smooth({servo}, {angle}, {duration})" for servo, angle, duration in steps]
    return None


def render_intent_script(intent: StructuredIntent, serial_port: str) -> Optional[GeneratedScript]:
    """Script text for motion intents; ``None`` for stop/unknown."""
    body = _body(intent)
    if body is None:
        return None
    lines = [
        f"# intent: {intent.to_dict()}",
        f"SERIAL_PORT = {serial_port!r}",
        "",
        _HELPERS,
        "",
        "try:",
        *[f"    {line}" for line in body],
        "finally:",
        "    ser.close()",
        "",
    ]
    return GeneratedScript(text="\n".join(lines))
