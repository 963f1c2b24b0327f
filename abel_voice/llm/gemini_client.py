"""Gemini adapter: transcript -> robot script text or structured intent.

Two request shapes share one model handle:

- ``generate_robot_script`` asks for a complete Python script and strips a
  ```python fence (falling back to a bare fence, then the raw text).
- ``interpret_command`` asks for a JSON command result and parses it into a
  ``StructuredIntent``.

``generate`` dispatches on the configured mode (``codegen`` | ``interpret``).
"""
from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

try:  # Optional at import time; missing library is reported at construction.
    import google.generativeai as genai  # type: ignore
except Exception:  # pragma: no cover - handled in GeminiClient.__init__
    genai = None  # type: ignore

from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import ParseError, ServiceError
from abel_voice.core.logging_setup import get_logger
from abel_voice.core.models import GeneratedScript, GeneratorResult, StructuredIntent
from abel_voice.llm.extract import extract_python_code, parse_intent
from abel_voice.llm.prompts import build_codegen_prompt, build_interpret_prompt

SERVICE = "Gemini API"


class GeminiClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.0-flash-exp",
        temperature: float = 0.2,
        mode: str = "codegen",
        serial_port: str = "/dev/cu.usbserial-140",
        timeout_s: Optional[float] = None,
        log_dir: Path = Path("logs"),
        model: Any = None,
    ) -> None:
        self.logger = get_logger("llm.gemini", log_dir)
        self.mode = mode
        self.serial_port = serial_port
        self.timeout_s = timeout_s
        self.model_name = model_name

        if model is None:
            api_key = api_key or os.environ.get("GEMINI_API_KEY", "")
            if not api_key:
                raise ServiceError(SERVICE, "GEMINI_API_KEY environment variable not set")
            if genai is None:
                raise ServiceError(SERVICE, "google-generativeai is not installed")
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(model_name, generation_config={"temperature": temperature})
        self.model = model
        self.logger.info("GeminiClient initialized (model=%s, mode=%s)", model_name, mode)

    @classmethod
    def from_config(cls, config: AppConfig) -> "GeminiClient":
        llm = config.llm
        return cls(
            model_name=llm.model,
            temperature=llm.temperature,
            mode=llm.mode,
            serial_port=llm.serial_port,
            timeout_s=llm.timeout_s,
            log_dir=config.logs_dir,
        )

    def _complete(self, prompt: str) -> str:
        kwargs: Dict[str, Any] = {}
        if self.timeout_s:
            kwargs["request_options"] = {"timeout": self.timeout_s}
        start = time.time()
        try:
            resp = self.model.generate_content(prompt, **kwargs)
        except Exception as exc:  # noqa: BLE001 - SDK raises a wide range of transport errors
            self.logger.error("Gemini generate_content failed: %s", exc)
            raise ServiceError(SERVICE, str(exc)) from exc
        try:
            text = resp.text or ""
        except (AttributeError, ValueError) as exc:
            # .text raises ValueError when the candidate was blocked or empty
            raise ParseError(f"No response from Gemini: {exc}") from exc
        latency_ms = int((time.time() - start) * 1000)
        self.logger.info("Gemini response latency=%dms len=%d", latency_ms, len(text))
        if not text.strip():
            raise ParseError("No response from Gemini")
        return text

    def generate_robot_script(self, command: str) -> GeneratedScript:
        raw = self._complete(build_codegen_prompt(command, self.serial_port))
        return GeneratedScript(text=extract_python_code(raw))

    def interpret_command(self, command: str) -> StructuredIntent:
        raw = self._complete(build_interpret_prompt(command))
        intent = parse_intent(raw)
        self.logger.info("Interpreted command as %s", intent.to_dict())
        return intent

    def generate(self, command: str) -> GeneratorResult:
        if self.mode == "interpret":
            return self.interpret_command(command)
        return self.generate_robot_script(command)
