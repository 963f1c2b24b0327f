"""Terminal yes/no prompt used as the confirmation gate in session mode."""
from __future__ import annotations

from typing import Callable

YES = {"y", "yes"}
NO = {"n", "no"}


class ConsoleConfirmer:
    def __init__(self, *, default: bool = True, input_fn: Callable[[str], str] = input) -> None:
        self.default = default
        self._input = input_fn

    def confirm(self, question: str) -> bool:
        suffix = "[Y/n]" if self.default else "[y/N]"
        while True:
            try:
                answer = self._input(f"{question} {suffix} ").strip().lower()
            except EOFError:
                # stdin closed; never run a script unattended
                return False
            if not answer:
                return self.default
            if answer in YES:
                return True
            if answer in NO:
                return False
            print("Please answer y or n.")
