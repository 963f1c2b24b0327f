"""Collaborator contracts the orchestrator depends on.

Adapters in ``abel_voice.stt``, ``abel_voice.llm``, ``abel_voice.tts`` and
``abel_voice.executor`` satisfy these structurally; tests pass fakes.
"""
from __future__ import annotations

from pathlib import Path
from typing import Protocol

from abel_voice.core.models import EncodedWaveform, GeneratorResult


class Capturer(Protocol):
    def capture(self, duration_s: float) -> EncodedWaveform:  # pragma: no cover - interface only
        ...


class Transcriber(Protocol):
    def transcribe(self, audio_wav: bytes) -> str:  # pragma: no cover - interface only
        ...


class CommandGenerator(Protocol):
    """Returns script text or a structured intent for a transcript."""

    def generate(self, command: str) -> GeneratorResult:  # pragma: no cover - interface only
        ...


class Speaker(Protocol):
    def speak(self, text: str) -> None:  # pragma: no cover - interface only
        ...


class ScriptRunner(Protocol):
    def run_script(self, script_path: Path) -> str:  # pragma: no cover - interface only
        ...


class Confirmer(Protocol):
    def confirm(self, question: str) -> bool:  # pragma: no cover - interface only
        ...
