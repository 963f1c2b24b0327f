"""Deepgram text-to-speech with local playback.

The speak endpoint returns encoded audio (mp3 by default); playback goes
through the first installed command-line player that accepts the file.
"""
from __future__ import annotations

import json
import os
import shutil
import subprocess
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import AudioOutputError, ServiceError
from abel_voice.core.logging_setup import get_logger

SERVICE = "Deepgram API"
DEFAULT_BASE_URL = "https://api.deepgram.com/v1/speak"
DEFAULT_PLAYERS = ("afplay", "paplay", "aplay", "mpg123", "ffplay")

PLAYER_ARGS: Dict[str, List[str]] = {
    "ffplay": ["-nodisp", "-autoexit", "-loglevel", "quiet"],
    "mpg123": ["-q"],
    "aplay": ["-q"],
}


class DeepgramClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "aura-asteria-en",
        players: Sequence[str] = DEFAULT_PLAYERS,
        timeout_s: Optional[float] = None,
        base_url: str = DEFAULT_BASE_URL,
        log_dir: Path = Path("logs"),
    ) -> None:
        self.api_key = api_key or os.environ.get("DEEPGRAM_API_KEY", "")
        if not self.api_key:
            raise ServiceError(SERVICE, "DEEPGRAM_API_KEY environment variable not set")
        self.model = model
        self.players = tuple(players)
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.logger = get_logger("tts.deepgram", log_dir)

    @classmethod
    def from_config(cls, config: AppConfig) -> "DeepgramClient":
        tts = config.tts
        return cls(model=tts.model, players=tts.players, timeout_s=tts.timeout_s, log_dir=config.logs_dir)

    def synthesize(self, text: str) -> bytes:
        url = f"{self.base_url}?{urllib.parse.urlencode({'model': self.model})}"
        request = urllib.request.Request(
            url,
            data=json.dumps({"text": text}).encode("utf-8"),
            headers={
                "Authorization": f"Token {self.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:
                audio = response.read()
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", "ignore")
            self.logger.error("Deepgram HTTP %s: %s", exc.code, body)
            raise ServiceError(SERVICE, body or str(exc.reason), status=exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            self.logger.error("Deepgram request failed: %s", exc)
            raise ServiceError(SERVICE, f"Failed to send Deepgram TTS request: {exc}") from exc
        if not audio:
            raise ServiceError(SERVICE, "Empty audio response")
        return audio

    def play_audio(self, path: Path) -> str:
        """Play ``path`` with the first working player; return its name."""
        tried: List[str] = []
        for player in self.players:
            exe = shutil.which(player)
            if exe is None:
                continue
            tried.append(player)
            result = subprocess.run([exe, *PLAYER_ARGS.get(player, []), str(path)], capture_output=True)
            if result.returncode == 0:
                return player
            self.logger.warning("Player %s exited %d", player, result.returncode)
        if tried:
            raise AudioOutputError(f"All audio players failed: {', '.join(tried)}")
        raise AudioOutputError(f"No audio player found. Install one of: {', '.join(self.players)}")

    def speak(self, text: str) -> None:
        audio = self.synthesize(text)
        fd, tmp_name = tempfile.mkstemp(prefix="abel_tts_", suffix=".mp3")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(audio)
            player = self.play_audio(tmp_path)
            self.logger.info("Spoke %d chars via %s", len(text), player)
        finally:
            tmp_path.unlink(missing_ok=True)
