"""Voice command pipeline: listen -> transcribe -> generate -> confirm -> execute -> feedback.

``PipelineOrchestrator`` owns the run counter and every collaborator handle for
its lifetime. It is single threaded: each stage blocks until its collaborator
returns, and no stage of run N+1 starts before run N has finished.

Session mode (``run_session``) gates execution on a confirmation prompt and
keeps looping through per-run failures. Single-shot mode
(``run_once``) executes without asking and surfaces any fatal error.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, List, Optional

from abel_voice.core.config_loader import AppConfig
from abel_voice.core.confirm import ConsoleConfirmer
from abel_voice.core.errors import (
    AbelVoiceError,
    AudioOutputError,
    ConfirmationDeclined,
    DeviceError,
    ExecutionError,
    ServiceError,
)
from abel_voice.core.interfaces import Capturer, CommandGenerator, Confirmer, ScriptRunner, Speaker, Transcriber
from abel_voice.core.ipc import StagePublisher
from abel_voice.core.logging_setup import get_logger
from abel_voice.core.models import GeneratedScript, PipelineRun, Stage, StopIntent, UnknownIntent
from abel_voice.llm.intent_script import render_intent_script

StageCallback = Callable[[PipelineRun, Stage], None]
RunCallback = Callable[[PipelineRun], None]

CONFIRM_QUESTION = "Execute this script?"
STOP_MESSAGE = "Stopping"
UNKNOWN_MESSAGE = "Command not recognized"


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        capturer: Capturer,
        transcriber: Transcriber,
        generator: CommandGenerator,
        runner: ScriptRunner,
        confirmer: Optional[Confirmer] = None,
        speaker: Optional[Speaker] = None,
        publisher: Optional[StagePublisher] = None,
        on_stage: Optional[StageCallback] = None,
        on_complete: Optional[RunCallback] = None,
        output_dir: Path = Path("scripts"),
        capture_seconds: float = 5.0,
        max_listen_attempts: int = 3,
        device_retry_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        serial_port: str = "/dev/cu.usbserial-140",
        success_message: str = "Command executed successfully",
        failure_message: str = "Execution failed",
        log_dir: Path = Path("logs"),
    ) -> None:
        self.capturer = capturer
        self.transcriber = transcriber
        self.generator = generator
        self.runner = runner
        self.confirmer = confirmer or ConsoleConfirmer()
        self.speaker = speaker
        self.publisher = publisher
        self.on_stage = on_stage
        self.on_complete = on_complete
        self.output_dir = output_dir
        self.capture_seconds = capture_seconds
        self.max_listen_attempts = max(1, int(max_listen_attempts))
        self.device_retry_s = max(0.0, float(device_retry_s))
        self._sleep = sleep
        self.serial_port = serial_port
        self.success_message = success_message
        self.failure_message = failure_message
        self.logger = get_logger("pipeline.orchestrator", log_dir)
        self.run_count = 0

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        tts: Optional[bool] = None,
        output_dir: Optional[Path] = None,
        capture_seconds: Optional[float] = None,
        on_stage: Optional[StageCallback] = None,
        on_complete: Optional[RunCallback] = None,
        confirmer: Optional[Confirmer] = None,
    ) -> "PipelineOrchestrator":
        """Wire the real adapters. Missing API keys raise ``ServiceError`` here."""
        # Adapter modules pull in sounddevice/openai/genai; import on demand.
        from abel_voice.audio.capture import AudioCapture
        from abel_voice.executor.runner import ScriptRunner as VenvScriptRunner
        from abel_voice.llm.gemini_client import GeminiClient
        from abel_voice.stt.whisper_client import WhisperClient
        from abel_voice.tts.deepgram_client import DeepgramClient

        use_tts = config.tts.enabled if tts is None else tts
        return cls(
            capturer=AudioCapture.from_config(config),
            transcriber=WhisperClient.from_config(config),
            generator=GeminiClient.from_config(config),
            runner=VenvScriptRunner.from_config(config),
            confirmer=confirmer,
            speaker=DeepgramClient.from_config(config) if use_tts else None,
            publisher=StagePublisher.from_config(config.ipc),
            on_stage=on_stage,
            on_complete=on_complete,
            output_dir=output_dir or config.session.output_dir,
            capture_seconds=capture_seconds or config.audio.capture_seconds,
            max_listen_attempts=config.session.max_listen_attempts,
            device_retry_s=config.session.device_retry_s,
            serial_port=config.llm.serial_port,
            success_message=config.tts.success_message,
            failure_message=config.tts.failure_message,
            log_dir=config.logs_dir,
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run_once(self) -> PipelineRun:
        """Single-shot run without a confirmation gate; fatal errors propagate."""
        run = self.run_iteration(interactive=False)
        if run.error is not None:
            raise run.error
        return run

    def run_session(self, max_iterations: Optional[int] = None) -> List[PipelineRun]:
        """Loop until interrupted (or ``max_iterations`` runs).

        Every pipeline failure ends only the current run. After a ``DeviceError``
        the loop waits ``device_retry_s`` before listening again.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        runs: List[PipelineRun] = []
        while max_iterations is None or len(runs) < max_iterations:
            run = self.run_iteration(interactive=True)
            runs.append(run)
            if run.error is not None:
                self.logger.warning("Run #%d failed, continuing session: %s", run.index, run.error)
            if isinstance(run.error, DeviceError) and self.device_retry_s:
                self._sleep(self.device_retry_s)
        return runs

    def run_iteration(self, interactive: bool) -> PipelineRun:
        self.run_count += 1
        run = PipelineRun(index=self.run_count, interactive=interactive)
        self.logger.info("Run #%d started (interactive=%s)", run.index, interactive)
        try:
            self._drive(run)
        except AbelVoiceError as exc:
            run.error = exc
            self.logger.error("Run #%d failed in %s: %s", run.index, run.stage.value, exc)
            self._transition(run, Stage.ERROR)
            if interactive:
                self._transition(run, Stage.LISTENING, notify=False)
        self._publish_result(run)
        if self.on_complete is not None:
            self.on_complete(run)
        return run

    def close(self) -> None:
        if self.publisher is not None:
            self.publisher.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _drive(self, run: PipelineRun) -> None:
        transcript = self._listen(run)
        if transcript is None:
            self._finish(run)
            return

        self._transition(run, Stage.GENERATING)
        result = self.generator.generate(transcript)

        if isinstance(result, GeneratedScript):
            run.script = result
        else:
            run.intent = result
            self.logger.info("Run #%d intent %s", run.index, result.to_dict())
            run.script = render_intent_script(result, self.serial_port)
            if run.script is None:
                self._feedback(run, self._intent_message(result))
                self._finish(run)
                return

        run.script_path = self._write_script(run)

        if run.interactive:
            self._transition(run, Stage.AWAITING_CONFIRMATION)
            try:
                run.confirmed = bool(self.confirmer.confirm(CONFIRM_QUESTION))
            except ConfirmationDeclined as exc:
                self.logger.info("Run #%d confirmation declined: %s", run.index, exc)
                run.confirmed = False
            if not run.confirmed:
                self.logger.info("Run #%d skipped; %s left on disk", run.index, run.script_path)
                self._finish(run)
                return

        self._transition(run, Stage.EXECUTING)
        try:
            run.execution_output = self.runner.run_script(run.script_path)
            message = self.success_message
            self.logger.info("Run #%d executed %s", run.index, run.script_path.name)
        except ExecutionError as exc:
            run.execution_error = exc.diagnostic.strip() or str(exc)
            message = self.failure_message
            self.logger.warning("Run #%d execution failed: %s", run.index, run.execution_error)

        self._feedback(run, message)
        self._finish(run)

    def _listen(self, run: PipelineRun) -> Optional[str]:
        """Capture and transcribe; ``None`` when no speech was heard.

        Session mode gives up after one empty transcript (the loop re-listens
        in the next run). Single-shot mode retries within the run.
        """
        attempts = 1 if run.interactive else self.max_listen_attempts
        while run.listen_attempts < attempts:
            run.listen_attempts += 1
            self._transition(run, Stage.LISTENING)
            waveform = self.capturer.capture(self.capture_seconds)

            self._transition(run, Stage.TRANSCRIBING)
            transcript = self.transcriber.transcribe(waveform.data)
            run.transcript = transcript
            if transcript and transcript.strip():
                self.logger.info("Run #%d transcript: %r", run.index, transcript)
                return transcript.strip()
            self.logger.info("Run #%d: no speech detected (attempt %d)", run.index, run.listen_attempts)
        return None

    def _write_script(self, run: PipelineRun) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{run.script_name}.py"
        path.write_text(run.script.text, encoding="utf-8")
        self.logger.info("Run #%d saved %s", run.index, path)
        return path

    def _intent_message(self, intent) -> str:
        if isinstance(intent, StopIntent):
            return STOP_MESSAGE
        if isinstance(intent, UnknownIntent):
            return intent.message or UNKNOWN_MESSAGE
        return self.success_message

    def _feedback(self, run: PipelineRun, message: str) -> None:
        run.feedback = message
        if self.speaker is None:
            return
        self._transition(run, Stage.FEEDBACK)
        try:
            self.speaker.speak(message)
        except (AudioOutputError, ServiceError) as exc:
            self.logger.error("Run #%d feedback failed: %s", run.index, exc)

    def _finish(self, run: PipelineRun) -> None:
        if run.interactive:
            # The next run's Listening transition announces the loop-back.
            self._transition(run, Stage.LISTENING, notify=False)
        else:
            self._transition(run, Stage.IDLE)

    def _transition(self, run: PipelineRun, stage: Stage, *, notify: bool = True) -> None:
        run.stage = stage
        run.history.append(stage)
        if not notify:
            return
        self.logger.info("Run #%d -> %s", run.index, stage.value)
        if self.publisher is not None:
            self.publisher.stage(stage, run.index)
        if self.on_stage is not None:
            self.on_stage(run, stage)

    def _publish_result(self, run: PipelineRun) -> None:
        if self.publisher is None:
            return
        self.publisher.result(
            {
                "run": run.index,
                "transcript": run.transcript,
                "intent": run.intent.to_dict() if run.intent is not None else None,
                "script_path": str(run.script_path) if run.script_path else None,
                "executed": run.executed,
                "success": run.succeeded,
                "error": str(run.error) if run.error else run.execution_error,
            }
        )
