"""OpenAI Whisper transcription of captured WAV bytes."""
from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, Optional

from openai import APIStatusError, OpenAI, OpenAIError

from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import ParseError, ServiceError
from abel_voice.core.logging_setup import get_logger

SERVICE = "Whisper API"


class WhisperClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "whisper-1",
        language: Optional[str] = None,
        timeout_s: Optional[float] = None,
        log_dir: Path = Path("logs"),
        client: Any = None,
    ) -> None:
        self.logger = get_logger("stt.whisper", log_dir)
        self.model = model
        self.language = language
        if client is None:
            api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
            if not api_key:
                raise ServiceError(SERVICE, "OPENAI_API_KEY environment variable not set")
            kwargs: dict = {"api_key": api_key, "max_retries": 0}
            if timeout_s:
                kwargs["timeout"] = timeout_s
            client = OpenAI(**kwargs)
        self.client = client

    @classmethod
    def from_config(cls, config: AppConfig) -> "WhisperClient":
        stt = config.stt
        return cls(model=stt.model, language=stt.language, timeout_s=stt.timeout_s, log_dir=config.logs_dir)

    def transcribe(self, audio_wav: bytes) -> str:
        """Return the trimmed transcript; an empty string means no speech."""
        params: dict = {"model": self.model, "file": ("audio.wav", audio_wav, "audio/wav")}
        if self.language:
            params["language"] = self.language
        start = time.time()
        try:
            result = self.client.audio.transcriptions.create(**params)
        except APIStatusError as exc:
            self.logger.error("Whisper HTTP %s: %s", exc.status_code, exc.message)
            raise ServiceError(SERVICE, exc.message, status=exc.status_code) from exc
        except OpenAIError as exc:
            self.logger.error("Whisper request failed: %s", exc)
            raise ServiceError(SERVICE, f"Failed to send transcription request: {exc}") from exc

        text = getattr(result, "text", None)
        if not isinstance(text, str):
            raise ParseError("Failed to parse Whisper response: missing 'text'")
        latency_ms = int((time.time() - start) * 1000)
        self.logger.info("Transcribed %d bytes in %dms (%d chars)", len(audio_wav), latency_ms, len(text))
        return text.strip()
