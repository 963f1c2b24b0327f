"""Normalized float samples -> canonical mono 16-bit PCM WAV bytes."""
from __future__ import annotations

import io
import wave
from typing import Sequence, Tuple, Union

import numpy as np

from abel_voice.core.models import WAV_HEADER_BYTES, EncodedWaveform

INT16_MAX = 32767
INT16_MIN = -32768


def quantize(samples: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """Scale by the int16 maximum, clamp, truncate toward zero."""
    arr = np.nan_to_num(np.asarray(samples, dtype=np.float64).reshape(-1))
    scaled = np.clip(arr * INT16_MAX, INT16_MIN, INT16_MAX)
    return np.trunc(scaled).astype("<i2")


def encode(samples: Union[np.ndarray, Sequence[float]], sample_rate: int) -> EncodedWaveform:
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    pcm = quantize(samples)
    out = io.BytesIO()
    with wave.open(out, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm.tobytes())
    data = out.getvalue()
    assert len(data) == WAV_HEADER_BYTES + 2 * pcm.size
    return EncodedWaveform(data=data, sample_rate=int(sample_rate))


def decode(data: bytes) -> Tuple[np.ndarray, int]:
    """Read back int16 samples and the declared rate from a mono 16-bit WAV."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"Expected 16-bit PCM, got {wf.getsampwidth() * 8}-bit")
        rate = wf.getframerate()
        frames = wf.readframes(wf.getnframes())
        channels = wf.getnchannels()
    samples = np.frombuffer(frames, dtype="<i2")
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1).astype(np.int16)
    return samples, rate
