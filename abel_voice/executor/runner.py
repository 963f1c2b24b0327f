"""Run generated scripts inside a dedicated virtual environment.

The environment is created on first use (``python3 -m venv``) and seeded with
the packages the scripts import (pyserial by default).
"""
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from abel_voice.core.config_loader import AppConfig
from abel_voice.core.errors import ExecutionError
from abel_voice.core.logging_setup import get_logger


class ScriptRunner:
    def __init__(
        self,
        venv_path: Path,
        *,
        python: str = "python3",
        packages: Sequence[str] = ("pyserial",),
        interpreter: Optional[Path] = None,
        log_dir: Path = Path("logs"),
    ) -> None:
        self.venv_path = venv_path
        self.python = python
        self.packages = tuple(packages)
        self.interpreter = interpreter
        self.logger = get_logger("executor.runner", log_dir)

    @classmethod
    def from_config(cls, config: AppConfig) -> "ScriptRunner":
        ex = config.executor
        return cls(
            ex.venv_path,
            python=ex.python,
            packages=ex.packages,
            interpreter=ex.interpreter,
            log_dir=config.logs_dir,
        )

    def _venv_bin(self, name: str) -> Path:
        if os.name == "nt":
            return self.venv_path / "Scripts" / f"{name}.exe"
        return self.venv_path / "bin" / name

    def _check(self, cmd: list[str], what: str) -> None:
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ExecutionError(f"{what}: {exc}") from exc
        if proc.returncode != 0:
            raise ExecutionError(f"{what}:\n{proc.stderr}", returncode=proc.returncode, diagnostic=proc.stderr)

    def ensure_environment(self) -> Path:
        """Return the interpreter path, creating the venv if needed."""
        if self.interpreter is not None:
            return self.interpreter
        python_exe = self._venv_bin("python")
        if python_exe.exists():
            return python_exe

        self.logger.info("Creating Python virtual environment at %s", self.venv_path)
        print("Creating Python virtual environment...")
        self._check(
            [self.python, "-m", "venv", str(self.venv_path)],
            "Failed to create virtual environment. Is python3 installed?",
        )
        if self.packages:
            print(f"Installing {', '.join(self.packages)}...")
            self._check(
                [str(self._venv_bin("pip")), "install", *self.packages],
                f"Failed to install {', '.join(self.packages)}",
            )
        return python_exe

    def run_script(self, script_path: Path) -> str:
        """Execute ``script_path``; return stdout or raise ``ExecutionError`` with stderr."""
        if not script_path.exists():
            raise ExecutionError(f"Script not found: {script_path}")
        python_exe = self.ensure_environment()
        self.logger.info("Executing %s with %s", script_path, python_exe)
        try:
            proc = subprocess.run([str(python_exe), str(script_path)], capture_output=True, text=True)
        except OSError as exc:
            raise ExecutionError(f"Failed to execute Python script: {exc}") from exc

        if proc.returncode != 0:
            self.logger.warning("Script %s exited %d: %s", script_path.name, proc.returncode, proc.stderr.strip())
            raise ExecutionError(
                f"Script execution failed:\n{proc.stderr}",
                returncode=proc.returncode,
                diagnostic=proc.stderr,
            )
        self.logger.info("Script %s completed (%d bytes output)", script_path.name, len(proc.stdout))
        return proc.stdout
