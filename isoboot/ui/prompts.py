"""Terminal prompts with a uniform 'exit' escape.

Typing ``exit`` (any case) at any prompt raises UserCancelled. Prompts never
terminate the process themselves; the workflow turns the cancellation into a
clean exit. End of input and Ctrl-C count as ``exit``.
"""

from __future__ import annotations

from typing import Callable

from isoboot.domain.models import Answer
from isoboot.storage.exceptions import UserCancelled


EXIT_KEYWORD = "exit"

YES_ANSWERS = {"y", "yes"}
NO_ANSWERS = {"n", "no"}


class Prompter:
    """Reads operator answers and writes notices.

    ``input_func`` and ``output_func`` default to the builtins; tests pass
    scripted replacements.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[..., None] = print,
    ):
        self._input = input_func
        self._output = output_func

    def _read(self, prompt: str) -> str:
        try:
            return self._input(prompt)
        except (EOFError, KeyboardInterrupt):
            self._output()
            raise UserCancelled()

    def prompt_yes_no(self, question: str) -> Answer:
        """Ask until the answer is yes or no; never falls back to a default."""
        while True:
            response = self._read(f"{question} (y/n/exit): ").strip().lower()
            if response in YES_ANSWERS:
                return Answer.YES
            if response in NO_ANSWERS:
                return Answer.NO
            if response == EXIT_KEYWORD:
                raise UserCancelled()
            self._output("Please answer 'y', 'n', or 'exit'.")

    def prompt_text(self, question: str) -> str:
        response = self._read(f"{question} (or type 'exit'): ").strip()
        if response.lower() == EXIT_KEYWORD:
            raise UserCancelled()
        return response

    def wait_for_enter(self, message: str) -> None:
        while True:
            response = self._read(f"{message}: ").strip().lower()
            if response == EXIT_KEYWORD:
                raise UserCancelled()
            if response == "":
                return
            self._output("Invalid input. Please press Enter or type 'exit'.")

    def say(self, *lines: str) -> None:
        for line in lines:
            self._output(line)

    def warn(self, message: str) -> None:
        self._output(f"Warning: {message}")

    def error(self, message: str) -> None:
        self._output(f"Error: {message}")
