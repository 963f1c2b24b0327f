"""CLI argument handling, console reporting and the confirmation prompt."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from abel_voice.core.confirm import ConsoleConfirmer
from abel_voice.core.models import GeneratedScript, PipelineRun, Stage
from abel_voice.tools import cli


def _answers(*replies):
    it = iter(replies)

    def _input(prompt: str) -> str:
        value = next(it)
        if isinstance(value, BaseException):
            raise value
        return value

    return _input


def test_confirm_defaults_to_yes() -> None:
    assert ConsoleConfirmer(input_fn=_answers("")).confirm("Execute this script?") is True


def test_confirm_explicit_answers() -> None:
    assert ConsoleConfirmer(input_fn=_answers("n")).confirm("?") is False
    assert ConsoleConfirmer(input_fn=_answers("YES")).confirm("?") is True


def test_confirm_reasks_on_garbage(capsys: pytest.CaptureFixture) -> None:
    assert ConsoleConfirmer(input_fn=_answers("maybe", "no")).confirm("?") is False
    assert "Please answer y or n." in capsys.readouterr().out


def test_confirm_eof_declines() -> None:
    assert ConsoleConfirmer(input_fn=_answers(EOFError())).confirm("?") is False


def test_parser_subcommands() -> None:
    parser = cli.build_parser()
    args = parser.parse_args(["session", "--output-dir", "out", "--tts", "--duration", "3"])
    assert args.func is cli.cmd_session
    assert args.output_dir == "out" and args.tts and args.duration == 3.0

    args = parser.parse_args(["once", "--save", "cmd.py"])
    assert args.func is cli.cmd_once and args.save == "cmd.py" and not args.tts

    args = parser.parse_args(["run", "scripts/cmd_001.py", "--config", "alt.yaml"])
    assert args.script == "scripts/cmd_001.py" and args.config == "alt.yaml"

    args = parser.parse_args(["serve", "--port", "9000"])
    assert args.func is cli.cmd_serve and args.port == 9000


def test_parser_requires_subcommand() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_run_executes_script(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config = config_dir / "system.yaml"
    config.write_text(f"executor:\n  interpreter: {sys.executable}\nlogs:\n  directory: {tmp_path / 'logs'}\n")
    script = tmp_path / "cmd_001.py"
    script.write_text("print('arm ready')\n")

    assert cli.main(["run", str(script), "--config", str(config)]) == 0
    assert "arm ready" in capsys.readouterr().out


def test_errors_become_exit_status(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config = config_dir / "system.yaml"
    config.write_text(f"executor:\n  interpreter: {sys.executable}\nlogs:\n  directory: {tmp_path / 'logs'}\n")

    assert cli.main(["run", str(tmp_path / "missing.py"), "--config", str(config)]) == 1
    assert "Script not found" in capsys.readouterr().err


def test_missing_config_file(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["run", "x.py", "--config", str(tmp_path / "nope.yaml")]) == 1
    assert "Configuration file not found" in capsys.readouterr().err


def test_reporter_preview_is_truncated(capsys: pytest.CaptureFixture) -> None:
    run = PipelineRun(index=4, interactive=True)
    run.script = GeneratedScript(text="\n".join(f"line {i}" for i in range(15)))
    run.script_path = Path("scripts/cmd_004.py")
    cli.ConsoleReporter(preview_lines=10).on_stage(run, Stage.AWAITING_CONFIRMATION)
    out = capsys.readouterr().out
    assert "line 9" in out and "line 10" not in out
    assert "  ..." in out
    assert "cmd_004.py" in out


def test_reporter_outcomes(capsys: pytest.CaptureFixture) -> None:
    reporter = cli.ConsoleReporter()

    skipped = PipelineRun(index=1, interactive=True, transcript="wave", confirmed=False)
    reporter.on_complete(skipped)
    failed = PipelineRun(index=2, interactive=True, transcript="wave", execution_error="connection refused")
    reporter.on_complete(failed)
    silent = PipelineRun(index=3, interactive=True, transcript="")
    reporter.on_complete(silent)

    out = capsys.readouterr().out
    assert "Skipped execution" in out
    assert "Execution failed: connection refused" in out
    assert "No speech detected" in out


@pytest.mark.parametrize("value", ["0", "-2", "soon"])
def test_duration_must_be_positive(value: str, capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.build_parser().parse_args(["once", "--duration", value])
    assert excinfo.value.code == 2
    assert "duration" in capsys.readouterr().err


class SilentOrchestrator:
    closed = False

    def run_once(self) -> PipelineRun:
        run = PipelineRun(index=1, interactive=False, transcript="")
        run.history = [Stage.LISTENING, Stage.TRANSCRIBING, Stage.IDLE]
        return run

    def close(self) -> None:
        self.closed = True


def test_once_without_speech_exits_nonzero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from abel_voice.core.orchestrator import PipelineOrchestrator

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config = config_dir / "system.yaml"
    config.write_text(f"logs:\n  directory: {tmp_path / 'logs'}\n")
    fake = SilentOrchestrator()
    monkeypatch.setattr(PipelineOrchestrator, "from_config", classmethod(lambda cls, cfg, **kwargs: fake))

    assert cli.main(["once", "--config", str(config)]) == 1
    assert fake.closed
