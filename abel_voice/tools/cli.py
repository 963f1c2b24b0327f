"""``abel-voice`` command line entrypoint.

Subcommands:
    session   listen/confirm/execute loop until Ctrl+C
    once      single command, executed without confirmation
    run       execute an existing script in the robot venv
    serve     start the HTTP voice service
"""
from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from abel_voice.core.config_loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigLoader
from abel_voice.core.errors import AbelVoiceError
from abel_voice.core.models import PipelineRun, Stage


class ConsoleReporter:
    """Prints pipeline progress for a terminal user."""

    def __init__(self, preview_lines: int = 10, *, full_script: bool = False) -> None:
        self.preview_lines = preview_lines
        self.full_script = full_script

    def on_stage(self, run: PipelineRun, stage: Stage) -> None:
        if stage is Stage.LISTENING:
            if run.interactive and run.listen_attempts == 1:
                print(f"\n[Session #{run.index}]")
            print("Listening... (speak now)")
        elif stage is Stage.TRANSCRIBING:
            print("Recording complete")
            print("Transcribing...")
        elif stage is Stage.GENERATING:
            print(f'You said: "{run.transcript}"')
            print("Generating robot control script...")
        elif stage is Stage.AWAITING_CONFIRMATION or (stage is Stage.EXECUTING and not run.interactive):
            self._show_script(run)
        if stage is Stage.EXECUTING:
            print("Executing...")
        elif stage is Stage.FEEDBACK:
            print(f"Speaking: {run.feedback}")

    def _show_script(self, run: PipelineRun) -> None:
        if run.script_path is not None:
            print(f"Saved: {run.script_path}")
        if run.script is None:
            return
        lines = run.script.text.splitlines()
        print("\nGenerated Script:")
        shown = lines if self.full_script else lines[: self.preview_lines]
        for line in shown:
            print(f"  {line}")
        if len(shown) < len(lines):
            print("  ...")
        print()

    def on_complete(self, run: PipelineRun) -> None:
        if run.error is not None:
            # single-shot errors propagate to main() and are printed there
            if run.interactive:
                print(f"Error: {run.error}", file=sys.stderr)
        elif run.transcript is not None and not run.transcript.strip():
            print("No speech detected, try again")
        elif run.confirmed is False:
            print("Skipped execution")
        elif run.execution_error is not None:
            print(f"Execution failed: {run.execution_error}")
        elif run.executed:
            print("Execution complete")
            if run.execution_output:
                print(run.execution_output.rstrip())
        elif run.feedback:
            print(run.feedback)


def _load(args: argparse.Namespace) -> AppConfig:
    config = ConfigLoader(Path(args.config)).load()
    if args.duration is not None:
        config.audio.capture_seconds = args.duration
    return config


def cmd_session(args: argparse.Namespace) -> int:
    from abel_voice.core.orchestrator import PipelineOrchestrator

    config = _load(args)
    reporter = ConsoleReporter(config.session.preview_lines)
    orchestrator = PipelineOrchestrator.from_config(
        config,
        tts=True if args.tts else None,
        output_dir=Path(args.output_dir) if args.output_dir else None,
        on_stage=reporter.on_stage,
        on_complete=reporter.on_complete,
    )
    print("Starting Abel Voice Control Session")
    print("Press Ctrl+C to exit")
    try:
        orchestrator.run_session()
    finally:
        orchestrator.close()
    return 0


def cmd_once(args: argparse.Namespace) -> int:
    from abel_voice.core.orchestrator import PipelineOrchestrator

    config = _load(args)
    reporter = ConsoleReporter(config.session.preview_lines, full_script=True)
    orchestrator = PipelineOrchestrator.from_config(
        config,
        tts=True if args.tts else None,
        on_stage=reporter.on_stage,
        on_complete=reporter.on_complete,
    )
    print("Voice Command")
    try:
        run = orchestrator.run_once()
    finally:
        orchestrator.close()
    if args.save and run.script_path is not None:
        shutil.copyfile(run.script_path, args.save)
        print(f"Saved: {args.save}")
    if not (run.transcript or "").strip():
        return 1
    return 0 if run.succeeded else 1


def cmd_run(args: argparse.Namespace) -> int:
    from abel_voice.executor.runner import ScriptRunner

    config = _load(args)
    output = ScriptRunner.from_config(config).run_script(Path(args.script))
    if output:
        print(output.rstrip())
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from abel_voice.remote.voice_service import VoiceService

    config = _load(args)
    service = VoiceService.from_config(config, port=args.port)
    print(f"Abel voice service on http://{service.bind_host}:{service.port}")
    service.serve()
    return 0


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r}") from None
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"duration must be positive, got {value}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to system config")
    common.add_argument("--duration", type=_positive_seconds, default=None, help="Recording length in seconds")

    parser = argparse.ArgumentParser(prog="abel-voice", description="Voice control for the Abel robot arm")
    sub = parser.add_subparsers(dest="command", required=True)

    session = sub.add_parser("session", parents=[common], help="Interactive voice session")
    session.add_argument("--output-dir", default=None, help="Directory for generated scripts")
    session.add_argument("--tts", action="store_true", help="Speak feedback after execution")
    session.set_defaults(func=cmd_session)

    once = sub.add_parser("once", parents=[common], help="Single command, no confirmation")
    once.add_argument("--save", default=None, help="Also write the generated script here")
    once.add_argument("--tts", action="store_true", help="Speak feedback after execution")
    once.set_defaults(func=cmd_once)

    run = sub.add_parser("run", parents=[common], help="Execute an existing script")
    run.add_argument("script", help="Path to the Python script")
    run.set_defaults(func=cmd_run)

    serve = sub.add_parser("serve", parents=[common], help="Start the HTTP voice service")
    serve.add_argument("--port", type=int, default=None, help="Port to bind")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nExiting.")
        return 0
    except (AbelVoiceError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
