"""Fixed-duration microphone capture.

The audio driver invokes the stream callback on its own thread. The callback
normalizes each chunk to mono float32 in [-1.0, 1.0] and hands it to a bounded
queue; the capture call drains that queue until the wall-clock deadline, then
stops and closes the stream and encodes what it collected.

    driver thread:  callback -> normalize -> queue.put_nowait
    caller thread:  start -> drain until deadline -> stop/close -> drain -> encode
"""
from __future__ import annotations

import math
import queue
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import numpy as np
from scipy import signal

from abel_voice.audio.wav_encoder import encode
from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import DeviceError, EmptyCaptureError, NoDeviceError, UnsupportedFormatError
from abel_voice.core.logging_setup import get_logger
from abel_voice.core.models import (
    SUPPORTED_SAMPLE_FORMATS,
    AudioBuffer,
    EncodedWaveform,
    RecordingSession,
)

# Backend callback: (chunk, driver status text or None)
StreamCallback = Callable[[np.ndarray, Optional[str]], None]


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    sample_rate: int
    channels: int
    sample_format: str
    index: Optional[int] = None


class InputStreamHandle(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def close(self) -> None: ...


class InputBackend(Protocol):
    def default_input(self) -> DeviceInfo: ...

    def open_stream(self, device: DeviceInfo, *, blocksize: int, callback: StreamCallback) -> InputStreamHandle: ...


def normalize_chunk(data: Any, sample_format: str, channels: int = 1) -> np.ndarray:
    """Scale native samples to float32 in [-1.0, 1.0] and down-mix to mono."""
    arr = np.asarray(data)
    if sample_format == "float32":
        out = arr.astype(np.float32)
    elif sample_format == "int16":
        out = arr.astype(np.float32) / 32768.0
    elif sample_format == "uint16":
        out = (arr.astype(np.float32) - 32768.0) / 32768.0
    else:
        raise UnsupportedFormatError(sample_format)

    if out.ndim == 2:
        out = out.mean(axis=1) if out.shape[1] > 1 else out[:, 0]
    elif channels > 1:
        usable = out.size - (out.size % channels)
        out = out[:usable].reshape(-1, channels).mean(axis=1)
    return np.clip(out, -1.0, 1.0).astype(np.float32)


class SoundDeviceBackend:
    """PortAudio input via ``sounddevice``.

    PortAudio streams expose float32 and int16 but no unsigned 16-bit type, so
    ``uint16`` is rejected here even though the normalizer supports it.
    """

    DTYPES = {"float32": "float32", "int16": "int16"}

    def __init__(self, device: Optional[str] = None, sample_format: str = "float32", sample_rate: Optional[int] = None) -> None:
        self.device = device
        self.sample_format = sample_format
        self.sample_rate = sample_rate

    @staticmethod
    def _sd():
        try:
            import sounddevice as sd  # type: ignore
        except OSError as exc:  # PortAudio shared library missing
            raise NoDeviceError(f"PortAudio unavailable: {exc}") from exc
        return sd

    def default_input(self) -> DeviceInfo:
        sd = self._sd()
        try:
            info = sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as exc:
            raise NoDeviceError(f"No input device available: {exc}") from exc
        channels = int(info.get("max_input_channels", 0))
        if channels < 1:
            raise NoDeviceError(f"Device {info.get('name')!r} has no input channels")
        rate = self.sample_rate or int(info.get("default_samplerate", 16000))
        return DeviceInfo(
            name=str(info.get("name", "default")),
            sample_rate=rate,
            channels=channels,
            sample_format=self.sample_format,
            index=info.get("index"),
        )

    def open_stream(self, device: DeviceInfo, *, blocksize: int, callback: StreamCallback) -> InputStreamHandle:
        sd = self._sd()
        dtype = self.DTYPES.get(device.sample_format)
        if dtype is None:
            raise UnsupportedFormatError(device.sample_format)

        def _on_audio(indata, frames, time_info, status) -> None:  # noqa: ARG001
            callback(indata.copy(), str(status) if status else None)

        try:
            stream = sd.InputStream(
                device=device.index if device.index is not None else self.device,
                samplerate=device.sample_rate,
                channels=device.channels,
                dtype=dtype,
                blocksize=blocksize,
                callback=_on_audio,
            )
        except sd.PortAudioError as exc:
            raise NoDeviceError(f"Unable to open input stream on {device.name!r}: {exc}") from exc
        return _PortAudioStream(stream, sd.PortAudioError, device.name)


class _PortAudioStream:
    """Wraps a ``sounddevice.InputStream`` so driver errors surface as ``DeviceError``."""

    def __init__(self, stream, error_type, device_name: str) -> None:
        self._stream = stream
        self._error_type = error_type
        self._device_name = device_name

    def start(self) -> None:
        try:
            self._stream.start()
        except self._error_type as exc:
            raise NoDeviceError(f"Unable to start input stream on {self._device_name!r}: {exc}") from exc

    def stop(self) -> None:
        try:
            self._stream.stop()
        except self._error_type as exc:
            raise DeviceError(f"Input stream on {self._device_name!r} failed to stop: {exc}") from exc

    def close(self) -> None:
        try:
            self._stream.close()
        except self._error_type as exc:
            raise DeviceError(f"Input stream on {self._device_name!r} failed to close: {exc}") from exc


class AudioCapture:
    def __init__(
        self,
        backend: InputBackend,
        *,
        block_ms: int = 50,
        queue_max_chunks: int = 512,
        target_sample_rate: Optional[int] = None,
        log_dir: Path = Path("logs"),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.block_ms = block_ms
        self.queue_max_chunks = queue_max_chunks
        self.target_sample_rate = target_sample_rate
        self.logger = get_logger("audio.capture", log_dir)
        self._clock = clock

    @classmethod
    def from_config(cls, config: AppConfig) -> "AudioCapture":
        audio = config.audio
        backend = SoundDeviceBackend(audio.device, audio.sample_format, audio.sample_rate)
        return cls(
            backend,
            block_ms=audio.block_ms,
            queue_max_chunks=audio.queue_max_chunks,
            target_sample_rate=audio.target_sample_rate,
            log_dir=config.logs_dir,
        )

    def capture(self, duration_s: float) -> EncodedWaveform:
        if duration_s <= 0:
            raise ValueError(f"Capture duration must be positive, got {duration_s}")

        device = self.backend.default_input()
        if device.sample_format not in SUPPORTED_SAMPLE_FORMATS:
            raise UnsupportedFormatError(device.sample_format)

        session = RecordingSession(
            duration_s=duration_s,
            sample_format=device.sample_format,
            sample_rate=device.sample_rate,
            native_channels=device.channels,
            buffer=AudioBuffer(device.sample_rate, channels=1),
            device_name=device.name,
        )
        chunks: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=self.queue_max_chunks)
        blocksize = max(1, int(device.sample_rate * self.block_ms / 1000))
        stream = self.backend.open_stream(device, blocksize=blocksize, callback=self._make_callback(session, chunks))

        self.logger.info(
            "Capture started (device=%s, rate=%d, channels=%d, format=%s, duration=%.2fs)",
            device.name,
            device.sample_rate,
            device.channels,
            device.sample_format,
            duration_s,
        )
        try:
            stream.start()
            deadline = self._clock() + duration_s
            while True:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                try:
                    chunk = chunks.get(timeout=min(remaining, 0.25))
                except queue.Empty:
                    continue
                session.buffer.append(chunk)
        finally:
            try:
                stream.stop()
            finally:
                stream.close()

        while True:
            try:
                session.buffer.append(chunks.get_nowait())
            except queue.Empty:
                break
        session.buffer.freeze()
        return self._finalize(session)

    def _make_callback(self, session: RecordingSession, chunks: "queue.Queue[np.ndarray]") -> StreamCallback:
        def _on_chunk(data: np.ndarray, status: Optional[str]) -> None:
            if status:
                session.status_warnings += 1
                self.logger.warning("Input stream status: %s (capture continues)", status)
            try:
                mono = normalize_chunk(data, session.sample_format, session.native_channels)
            except Exception as exc:  # noqa: BLE001 - never raise into the driver thread
                session.status_warnings += 1
                self.logger.error("Dropping undecodable chunk: %s", exc)
                return
            try:
                chunks.put_nowait(mono)
                session.chunks_received += 1
            except queue.Full:
                session.chunks_dropped += 1
                self.logger.warning("Capture queue full; dropped %d samples", mono.size)

        return _on_chunk

    def _finalize(self, session: RecordingSession) -> EncodedWaveform:
        samples = session.buffer.to_array()
        if samples.size == 0:
            raise EmptyCaptureError(
                f"No samples captured from {session.device_name!r} in {session.duration_s:.2f}s"
            )

        rate = session.sample_rate
        if self.target_sample_rate and self.target_sample_rate != rate:
            samples = resample(samples, rate, self.target_sample_rate)
            rate = self.target_sample_rate

        waveform = encode(samples, rate)
        self.logger.info(
            "Capture finished: %d samples @ %dHz (chunks=%d, dropped=%d, warnings=%d)",
            waveform.sample_count,
            rate,
            session.chunks_received,
            session.chunks_dropped,
            session.status_warnings,
        )
        return waveform


def resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    g = math.gcd(int(src_rate), int(dst_rate))
    out = signal.resample_poly(samples, dst_rate // g, src_rate // g)
    return np.clip(out, -1.0, 1.0).astype(np.float32)
