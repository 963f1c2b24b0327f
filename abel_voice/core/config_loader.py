"""Utility helpers to load YAML config with environment expansion.

``load_config`` returns the plain dict most modules read from; ``ConfigLoader``
builds the typed views used by the CLI and the orchestrator factory.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")
DEFAULT_CONFIG_PATH = Path("config/system.yaml")


def load_config(path: Path) -> Dict[str, Any]:
    """Load YAML config expanding ${PROJECT_ROOT}, ${ENV:VAR} and ${VAR:-default}."""

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    project_root = path.resolve().parent.parent
    _load_dotenv(project_root / ".env")

    if path.suffix not in {".yaml", ".yml"}:
        raise ValueError("Unsupported config format; only YAML supported")

    data = yaml.safe_load(path.read_text()) or {}
    return _expand(data, project_root)


def _load_dotenv(env_path: Path) -> None:
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"')
        os.environ.setdefault(key, value)


def _expand(value: Any, project_root: Path) -> Any:
    if isinstance(value, dict):
        return {k: _expand(v, project_root) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v, project_root) for v in value]
    if isinstance(value, str):
        return _expand_string(value, project_root)
    return value


def _expand_string(value: str, project_root: Path) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token and not token.startswith("ENV:"):
            name, default = token.split(":-", 1)
            return os.environ.get(name, default)
        if token == "PROJECT_ROOT":
            return str(project_root)
        if token.startswith("ENV:"):
            env_key = token.split(":", 1)[1]
            return os.environ.get(env_key, "")
        return os.environ.get(token, match.group(0))

    value = ENV_PATTERN.sub(replacer, value)
    return os.path.expanduser(value)


# ---------------------------------------------------------------------------
# Typed configuration views
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AudioConfig:
    device: Optional[str] = None
    sample_format: str = "float32"
    sample_rate: Optional[int] = None
    target_sample_rate: Optional[int] = None
    capture_seconds: float = 5.0
    block_ms: int = 50
    queue_max_chunks: int = 512


@dataclass(slots=True)
class STTConfig:
    model: str = "whisper-1"
    language: Optional[str] = None
    timeout_s: Optional[float] = None


@dataclass(slots=True)
class LLMConfig:
    model: str = "gemini-2.0-flash-exp"
    mode: str = "codegen"  # codegen | interpret
    temperature: float = 0.2
    serial_port: str = "/dev/cu.usbserial-140"
    timeout_s: Optional[float] = None


@dataclass(slots=True)
class TTSConfig:
    enabled: bool = False
    model: str = "aura-asteria-en"
    players: tuple[str, ...] = ("afplay", "paplay", "aplay", "mpg123", "ffplay")
    timeout_s: Optional[float] = None
    success_message: str = "Command executed successfully"
    failure_message: str = "Execution failed"


@dataclass(slots=True)
class ExecutorConfig:
    venv_path: Path = field(default_factory=lambda: Path.home() / ".abel-voice-venv")
    python: str = "python3"
    packages: tuple[str, ...] = ("pyserial",)
    interpreter: Optional[Path] = None


@dataclass(slots=True)
class SessionConfig:
    output_dir: Path = Path("scripts")
    max_listen_attempts: int = 3
    preview_lines: int = 10
    device_retry_s: float = 1.0


@dataclass(slots=True)
class RemoteConfig:
    bind_host: str = "127.0.0.1"
    port: int = 8080


@dataclass(slots=True)
class IPCConfig:
    enabled: bool = False
    stage_endpoint: str = "tcp://127.0.0.1:6030"


@dataclass(slots=True)
class AppConfig:
    audio: AudioConfig
    stt: STTConfig
    llm: LLMConfig
    tts: TTSConfig
    executor: ExecutorConfig
    session: SessionConfig
    remote: RemoteConfig
    ipc: IPCConfig
    logs_dir: Path
    raw: Dict[str, Any] = field(default_factory=dict)


def _opt_int(value: Any) -> Optional[int]:
    return None if value in (None, "") else int(value)


def _opt_float(value: Any) -> Optional[float]:
    return None if value in (None, "") else float(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class ConfigLoader:
    """Builds an ``AppConfig`` from ``config/system.yaml``.

    Every key is optional; missing sections fall back to the dataclass
    defaults so a bare file still yields a runnable configuration.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> AppConfig:
        raw = load_config(self.path)
        return self.from_dict(raw, project_root=self.path.resolve().parent.parent)

    @staticmethod
    def from_dict(raw: Dict[str, Any], *, project_root: Optional[Path] = None) -> AppConfig:
        root = project_root or Path.cwd()

        audio_raw = raw.get("audio", {}) or {}
        audio = AudioConfig(
            device=audio_raw.get("device") or None,
            sample_format=str(audio_raw.get("sample_format", "float32")).lower(),
            sample_rate=_opt_int(audio_raw.get("sample_rate")),
            target_sample_rate=_opt_int(audio_raw.get("target_sample_rate")),
            capture_seconds=float(audio_raw.get("capture_seconds", 5.0)),
            block_ms=int(audio_raw.get("block_ms", 50)),
            queue_max_chunks=int(audio_raw.get("queue_max_chunks", 512)),
        )

        stt_raw = raw.get("stt", {}) or {}
        stt = STTConfig(
            model=str(stt_raw.get("model", "whisper-1")),
            language=stt_raw.get("language") or None,
            timeout_s=_opt_float(stt_raw.get("timeout_s")),
        )

        llm_raw = raw.get("llm", {}) or {}
        mode = str(llm_raw.get("mode", "codegen")).lower()
        if mode not in {"codegen", "interpret"}:
            raise ValueError(f"llm.mode must be 'codegen' or 'interpret', got {mode!r}")
        llm = LLMConfig(
            model=str(llm_raw.get("model", "gemini-2.0-flash-exp")),
            mode=mode,
            temperature=float(llm_raw.get("temperature", 0.2)),
            serial_port=str(llm_raw.get("serial_port", "/dev/cu.usbserial-140")),
            timeout_s=_opt_float(llm_raw.get("timeout_s")),
        )

        tts_raw = raw.get("tts", {}) or {}
        players = tts_raw.get("players")
        tts = TTSConfig(
            enabled=_as_bool(tts_raw.get("enabled", False)),
            model=str(tts_raw.get("model", "aura-asteria-en")),
            timeout_s=_opt_float(tts_raw.get("timeout_s")),
            success_message=str(tts_raw.get("success_message", "Command executed successfully")),
            failure_message=str(tts_raw.get("failure_message", "Execution failed")),
        )
        if players:
            tts.players = tuple(str(p) for p in players)

        exec_raw = raw.get("executor", {}) or {}
        executor = ExecutorConfig(python=str(exec_raw.get("python", "python3")))
        if exec_raw.get("venv_path"):
            executor.venv_path = Path(str(exec_raw["venv_path"]))
        if exec_raw.get("packages") is not None:
            executor.packages = tuple(str(p) for p in exec_raw["packages"])
        if exec_raw.get("interpreter"):
            executor.interpreter = Path(str(exec_raw["interpreter"]))

        session_raw = raw.get("session", {}) or {}
        output_dir = Path(str(session_raw.get("output_dir", "scripts")))
        if not output_dir.is_absolute():
            output_dir = root / output_dir
        session = SessionConfig(
            output_dir=output_dir,
            max_listen_attempts=int(session_raw.get("max_listen_attempts", 3)),
            preview_lines=int(session_raw.get("preview_lines", 10)),
            device_retry_s=float(session_raw.get("device_retry_s", 1.0)),
        )

        remote_raw = raw.get("remote_interface", {}) or {}
        remote = RemoteConfig(
            bind_host=str(remote_raw.get("bind_host", "127.0.0.1")),
            port=int(remote_raw.get("port", 8080)),
        )

        ipc_raw = raw.get("ipc", {}) or {}
        ipc = IPCConfig(
            enabled=_as_bool(ipc_raw.get("enabled", False)),
            stage_endpoint=str(ipc_raw.get("stage_endpoint", "tcp://127.0.0.1:6030")),
        )

        logs_dir = Path(str((raw.get("logs", {}) or {}).get("directory", "logs")))
        if not logs_dir.is_absolute():
            logs_dir = root / logs_dir

        return AppConfig(
            audio=audio,
            stt=stt,
            llm=llm,
            tts=tts,
            executor=executor,
            session=session,
            remote=remote,
            ipc=ipc,
            logs_dir=logs_dir,
            raw=raw,
        )
