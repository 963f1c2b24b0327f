"""HTTP facade over capture, transcription and command interpretation.

Routes:
    GET  /health                 -> {"status": "ok", "service": ..., "version": ...}
    POST /capture?seconds=N      -> audio/wav recorded on the host microphone
    POST /transcribe             -> {"transcript": ...}; body is raw audio/wav or
                                    multipart/form-data with the audio in a file part
    POST /interpret              -> intent dict for {"transcript": ...}

Collaborators are created on first use so ``/health`` answers even when API
keys are missing.
"""
from __future__ import annotations

import json
import threading
from email.parser import BytesParser
from email.policy import HTTP
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs, urlparse

from abel_voice import __version__
from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import AbelVoiceError, DeviceError
from abel_voice.core.interfaces import Capturer, Transcriber
from abel_voice.core.logging_setup import get_logger

SERVICE_NAME = "abel-voice-service"
MAX_CAPTURE_SECONDS = 30.0

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class BadRequest(ValueError):
    pass


def extract_multipart_audio(content_type: str, body: bytes) -> bytes:
    """Return the payload of the first file part (or the first part) of a form body."""
    message = BytesParser(policy=HTTP).parsebytes(
        b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    )
    if not message.is_multipart():
        raise BadRequest("Failed to parse multipart body")
    parts = list(message.iter_parts())
    if not parts:
        raise BadRequest("No audio data received")
    chosen = next((p for p in parts if p.get_filename()), parts[0])
    return chosen.get_payload(decode=True) or b""


class _Lazy:
    """Builds a collaborator once, on first successful call."""

    def __init__(self, factory: Callable[[], Any]) -> None:
        self._factory = factory
        self._value: Any = None
        self._lock = threading.Lock()

    def get(self) -> Any:
        with self._lock:
            if self._value is None:
                self._value = self._factory()
            return self._value


class VoiceService:
    def __init__(
        self,
        *,
        transcriber: Callable[[], Transcriber],
        interpreter: Callable[[], Any],
        capturer: Optional[Callable[[], Capturer]] = None,
        bind_host: str = "127.0.0.1",
        port: int = 8080,
        capture_seconds: float = 5.0,
        log_dir: Path = Path("logs"),
    ) -> None:
        self._transcriber = _Lazy(transcriber)
        self._interpreter = _Lazy(interpreter)
        self._capturer = _Lazy(capturer) if capturer is not None else None
        self.bind_host = bind_host
        self.port = port
        self.capture_seconds = capture_seconds
        self.logger = get_logger("remote.voice_service", log_dir)

    @classmethod
    def from_config(cls, config: AppConfig, *, port: Optional[int] = None) -> "VoiceService":
        from abel_voice.audio.capture import AudioCapture
        from abel_voice.llm.gemini_client import GeminiClient
        from abel_voice.stt.whisper_client import WhisperClient

        return cls(
            transcriber=lambda: WhisperClient.from_config(config),
            interpreter=lambda: GeminiClient.from_config(config),
            capturer=lambda: AudioCapture.from_config(config),
            bind_host=config.remote.bind_host,
            port=port or config.remote.port,
            capture_seconds=config.audio.capture_seconds,
            log_dir=config.logs_dir,
        )

    # ------------------------------------------------------------------
    # Route logic (transport independent)
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {"status": "ok", "service": SERVICE_NAME, "version": __version__}

    def capture(self, seconds: Optional[str]) -> bytes:
        if self._capturer is None:
            raise BadRequest("Audio capture is not available on this host")
        duration = self.capture_seconds
        if seconds is not None:
            try:
                duration = float(seconds)
            except ValueError as exc:
                raise BadRequest(f"Invalid seconds value: {seconds!r}") from exc
        if not 0 < duration <= MAX_CAPTURE_SECONDS:
            raise BadRequest(f"seconds must be in (0, {MAX_CAPTURE_SECONDS:g}]")
        return self._capturer.get().capture(duration).data

    def transcribe(self, content_type: str, body: bytes) -> Dict[str, Any]:
        if content_type.lower().startswith("multipart/form-data"):
            body = extract_multipart_audio(content_type, body)
        if not body:
            raise BadRequest("No audio data received")
        return {"transcript": self._transcriber.get().transcribe(body)}

    def interpret(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        transcript = payload.get("transcript")
        if not isinstance(transcript, str) or not transcript.strip():
            raise BadRequest("missing transcript")
        return self._interpreter.get().interpret_command(transcript).to_dict()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def make_server(self) -> ThreadingHTTPServer:
        return ThreadingHTTPServer((self.bind_host, self.port), self._make_handler())

    def serve(self) -> None:
        server = self.make_server()
        self.logger.info("Voice service listening on %s:%s", self.bind_host, server.server_address[1])
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            server.server_close()

    def _make_handler(self):
        service = self

        class Handler(BaseHTTPRequestHandler):
            def _send(self, code: int, data: bytes, content_type: str) -> None:
                self.send_response(code)
                for key, value in CORS_HEADERS.items():
                    self.send_header(key, value)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def _send_json(self, code: int, payload: Dict[str, Any]) -> None:
                self._send(code, json.dumps(payload).encode("utf-8"), "application/json")

            def _read_body(self) -> bytes:
                length = int(self.headers.get("Content-Length", "0") or 0)
                return self.rfile.read(length) if length > 0 else b""

            def _dispatch(self, route: Callable[[], None], label: str) -> None:
                try:
                    route()
                except BadRequest as exc:
                    self._send_json(400, {"error": str(exc)})
                except DeviceError as exc:
                    service.logger.error("%s failed: %s", label, exc)
                    self._send_json(500, {"error": f"Recording failed: {exc}"})
                except AbelVoiceError as exc:
                    service.logger.error("%s failed: %s", label, exc)
                    self._send_json(500, {"error": f"{label} failed: {exc}"})

            def do_OPTIONS(self) -> None:
                self._send(204, b"", "text/plain")

            def do_GET(self) -> None:
                if urlparse(self.path).path == "/health":
                    self._send_json(200, service.health())
                    return
                self._send_json(404, {"error": "not_found"})

            def do_POST(self) -> None:
                url = urlparse(self.path)
                if url.path == "/capture":
                    seconds = parse_qs(url.query).get("seconds", [None])[0]
                    self._read_body()
                    self._dispatch(lambda: self._send(200, service.capture(seconds), "audio/wav"), "Capture")
                    return
                if url.path == "/transcribe":
                    content_type = self.headers.get("Content-Type", "audio/wav")
                    body = self._read_body()
                    self._dispatch(
                        lambda: self._send_json(200, service.transcribe(content_type, body)),
                        "Transcription",
                    )
                    return
                if url.path == "/interpret":
                    raw = self._read_body()
                    try:
                        payload = json.loads(raw or b"{}")
                    except json.JSONDecodeError:
                        service.logger.warning("Voice service received invalid JSON")
                        self._send_json(400, {"error": "invalid JSON body"})
                        return
                    if not isinstance(payload, dict):
                        self._send_json(400, {"error": "invalid JSON body"})
                        return
                    self._dispatch(lambda: self._send_json(200, service.interpret(payload)), "Interpretation")
                    return
                self._send_json(404, {"error": "not_found"})

            def log_message(self, format: str, *args) -> None:
                service.logger.info("remote.http %s - %s", self.client_address[0], format % args)

        return Handler
