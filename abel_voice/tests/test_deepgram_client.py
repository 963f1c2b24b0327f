"""Deepgram TTS against a stub speak endpoint, with playback mocked out."""
from __future__ import annotations

import json
import subprocess
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

import pytest

from abel_voice.core.errors import AudioOutputError, ServiceError
from abel_voice.tts import deepgram_client
from abel_voice.tts.deepgram_client import DeepgramClient


class _StubHandler(BaseHTTPRequestHandler):
    requests: list = []
    status = 200
    body = b"ID3-fake-mp3"

    def do_POST(self):  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        payload = json.loads(self.rfile.read(length)) if length else {}
        type(self).requests.append(
            {"path": self.path, "auth": self.headers.get("Authorization"), "payload": payload}
        )
        self.send_response(self.status)
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        self.wfile.write(self.body)

    def log_message(self, format: str, *args):  # noqa: A003
        return


@pytest.fixture()
def stub_server():
    _StubHandler.requests = []
    _StubHandler.status = 200
    _StubHandler.body = b"ID3-fake-mp3"
    server = HTTPServer(("127.0.0.1", 0), _StubHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def _client(server: HTTPServer, tmp_path: Path, **kwargs) -> DeepgramClient:
    url = f"http://127.0.0.1:{server.server_address[1]}/v1/speak"
    return DeepgramClient(api_key="dg-test", base_url=url, log_dir=tmp_path, timeout_s=5, **kwargs)


def test_missing_api_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)
    with pytest.raises(ServiceError, match="DEEPGRAM_API_KEY"):
        DeepgramClient(log_dir=tmp_path)


def test_synthesize_posts_text(stub_server, tmp_path: Path) -> None:
    audio = _client(stub_server, tmp_path).synthesize("Command executed successfully")
    assert audio == b"ID3-fake-mp3"
    req = _StubHandler.requests[0]
    assert req["path"] == "/v1/speak?model=aura-asteria-en"
    assert req["auth"] == "Token dg-test"
    assert req["payload"] == {"text": "Command executed successfully"}


def test_http_error_maps_to_service_error(stub_server, tmp_path: Path) -> None:
    _StubHandler.status = 401
    _StubHandler.body = b'{"err_msg": "Invalid credentials"}'
    with pytest.raises(ServiceError) as exc_info:
        _client(stub_server, tmp_path).synthesize("hello")
    assert exc_info.value.status == 401
    assert "Invalid credentials" in str(exc_info.value)


def test_unreachable_endpoint(tmp_path: Path) -> None:
    client = DeepgramClient(api_key="k", base_url="http://127.0.0.1:9/v1/speak", log_dir=tmp_path, timeout_s=2)
    with pytest.raises(ServiceError):
        client.synthesize("hello")


def test_speak_plays_and_removes_temp_file(stub_server, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    played = []

    monkeypatch.setattr(deepgram_client.shutil, "which", lambda name: f"/usr/bin/{name}" if name == "mpg123" else None)

    def _fake_run(cmd, **kwargs):
        path = Path(cmd[-1])
        played.append((cmd, path.read_bytes()))
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(deepgram_client.subprocess, "run", _fake_run)
    _client(stub_server, tmp_path).speak("hi")

    cmd, data = played[0]
    assert cmd[:2] == ["/usr/bin/mpg123", "-q"]
    assert data == b"ID3-fake-mp3"
    assert not Path(cmd[-1]).exists()


def test_next_player_tried_after_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(deepgram_client.shutil, "which", lambda name: f"/usr/bin/{name}")
    codes = iter([1, 0])
    monkeypatch.setattr(
        deepgram_client.subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, next(codes))
    )
    client = DeepgramClient(api_key="k", players=("paplay", "ffplay"), log_dir=tmp_path)
    assert client.play_audio(tmp_path / "x.mp3") == "ffplay"


def test_no_player_installed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(deepgram_client.shutil, "which", lambda name: None)
    client = DeepgramClient(api_key="k", log_dir=tmp_path)
    with pytest.raises(AudioOutputError, match="No audio player found"):
        client.play_audio(tmp_path / "x.mp3")
