"""WAV encoding: header layout, quantization and clamping."""
from __future__ import annotations

import struct

import numpy as np
import pytest

from abel_voice.audio.wav_encoder import decode, encode, quantize


def _header(data: bytes) -> dict:
    riff, riff_size, wave_id = struct.unpack("<4sI4s", data[:12])
    fmt_id, fmt_size, audio_format, channels, rate, byte_rate, block_align, bits = struct.unpack(
        "<4sIHHIIHH", data[12:36]
    )
    data_id, data_size = struct.unpack("<4sI", data[36:44])
    return {
        "riff": riff,
        "riff_size": riff_size,
        "wave": wave_id,
        "fmt": fmt_id,
        "fmt_size": fmt_size,
        "audio_format": audio_format,
        "channels": channels,
        "rate": rate,
        "byte_rate": byte_rate,
        "block_align": block_align,
        "bits": bits,
        "data": data_id,
        "data_size": data_size,
    }


@pytest.mark.parametrize("n, rate", [(0, 8000), (1, 16000), (1000, 44100), (4801, 48000)])
def test_length_and_declared_rate(n: int, rate: int) -> None:
    samples = np.linspace(-1.0, 1.0, n, dtype=np.float32)
    wav = encode(samples, rate)
    assert len(wav.data) == 44 + 2 * n
    assert wav.sample_count == n
    hdr = _header(wav.data)
    assert hdr["riff"] == b"RIFF" and hdr["wave"] == b"WAVE"
    assert hdr["fmt"] == b"fmt " and hdr["data"] == b"data"
    assert hdr["audio_format"] == 1
    assert hdr["channels"] == 1
    assert hdr["bits"] == 16
    assert hdr["rate"] == rate
    assert hdr["byte_rate"] == rate * 2
    assert hdr["data_size"] == 2 * n
    assert hdr["riff_size"] == 36 + 2 * n


def test_decode_within_one_quantization_step() -> None:
    rng = np.random.default_rng(7)
    samples = rng.uniform(-1.0, 1.0, 2048)
    decoded, rate = decode(encode(samples, 16000).data)
    assert rate == 16000
    assert decoded.size == samples.size
    assert np.all(np.abs(decoded / 32767.0 - samples) <= 1.0 / 32767.0 + 1e-9)


def test_out_of_range_samples_are_clamped() -> None:
    decoded, _ = decode(encode([1.5, -1.5, 1.0, -1.0, 0.0], 8000).data)
    assert decoded.tolist() == [32767, -32768, 32767, -32767, 0]


def test_quantize_truncates_toward_zero() -> None:
    # 0.5 * 32767 = 16383.5 ; -0.5 * 32767 = -16383.5
    assert quantize([0.5, -0.5]).tolist() == [16383, -16383]


def test_nan_becomes_silence() -> None:
    assert quantize([float("nan")]).tolist() == [0]


def test_encoding_is_deterministic() -> None:
    samples = np.sin(np.linspace(0, 20, 500))
    assert encode(samples, 22050).data == encode(samples.copy(), 22050).data


def test_samples_are_little_endian() -> None:
    wav = encode([1.0], 8000)
    assert wav.data[44:] == struct.pack("<h", 32767)


def test_rejects_non_positive_rate() -> None:
    with pytest.raises(ValueError):
        encode([0.0], 0)
