"""Data model shared across capture, orchestration and the collaborator adapters."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

WAV_HEADER_BYTES = 44
SUPPORTED_SAMPLE_FORMATS = ("float32", "int16", "uint16")


class Stage(Enum):
    """Orchestrator states."""
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"
    FEEDBACK = "feedback"
    ERROR = "error"


class AudioBuffer:
    """Append-only sample store filled during one capture.

    Only the capture call appends (chunks arrive through the hand-off queue),
    so the lock guards the freeze/append race rather than concurrent writers.
    """

    def __init__(self, sample_rate: int, channels: int = 1) -> None:
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self._chunks: List[np.ndarray] = []
        self._count = 0
        self._frozen = False
        self._lock = threading.Lock()

    def append(self, chunk: np.ndarray) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError("AudioBuffer is frozen; capture already finished")
            if chunk.size == 0:
                return
            self._chunks.append(np.asarray(chunk, dtype=np.float32).reshape(-1))
            self._count += int(chunk.size)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return self._count

    def to_array(self) -> np.ndarray:
        with self._lock:
            if not self._chunks:
                return np.zeros(0, dtype=np.float32)
            return np.concatenate(self._chunks).astype(np.float32, copy=True)


@dataclass
class RecordingSession:
    duration_s: float
    sample_format: str
    sample_rate: int
    native_channels: int
    buffer: AudioBuffer
    device_name: str = ""
    started_ts: float = field(default_factory=time.time)
    chunks_received: int = 0
    chunks_dropped: int = 0
    status_warnings: int = 0


@dataclass(frozen=True)
class EncodedWaveform:
    data: bytes
    sample_rate: int

    @property
    def sample_count(self) -> int:
        return (len(self.data) - WAV_HEADER_BYTES) // 2

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.sample_count / float(self.sample_rate)


# ---------------------------------------------------------------------------
# Structured intents returned by the interpreter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MoveIntent:
    servo: int
    angle: int
    action: str = field(default="move", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "servo": self.servo, "angle": self.angle}


@dataclass(frozen=True)
class SequenceIntent:
    name: str
    action: str = field(default="sequence", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "sequence_name": self.name}


@dataclass(frozen=True)
class HomeIntent:
    action: str = field(default="home", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class StopIntent:
    action: str = field(default="stop", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class UnknownIntent:
    message: str = ""
    action: str = field(default="unknown", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "message": self.message}


StructuredIntent = Union[MoveIntent, SequenceIntent, HomeIntent, StopIntent, UnknownIntent]


@dataclass(frozen=True)
class GeneratedScript:
    text: str
    language: str = "python"


GeneratorResult = Union[GeneratedScript, MoveIntent, SequenceIntent, HomeIntent, StopIntent, UnknownIntent]


@dataclass
class PipelineRun:
    """One traversal of the orchestrator state machine."""
    index: int
    interactive: bool
    stage: Stage = Stage.IDLE
    history: List[Stage] = field(default_factory=list)
    transcript: Optional[str] = None
    script: Optional[GeneratedScript] = None
    intent: Optional[StructuredIntent] = None
    script_path: Optional[Path] = None
    confirmed: Optional[bool] = None
    execution_output: Optional[str] = None
    execution_error: Optional[str] = None
    feedback: Optional[str] = None
    error: Optional[BaseException] = None
    listen_attempts: int = 0

    @property
    def script_name(self) -> str:
        return f"cmd_{self.index:03d}"

    @property
    def executed(self) -> bool:
        return Stage.EXECUTING in self.history

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.execution_error is None
