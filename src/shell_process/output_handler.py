from __future__ import annotations

from collections.abc import Callable
from typing import Protocol


class OutputHandler(Protocol):
    """Protocol for consumers of process output.

    ``handle`` is called from the polling loop each time the process drains its
    pipes. Either argument may be "" (nothing new) or None (the stream is not a
    pipe owned by the process).
    """

    def handle(self, stdout: str | None, stderr: str | None) -> None: ...


def split_lines(text: str, keep_empty: bool = False) -> list[str]:
    """Split text on newlines, stripping each line."""
    lines = [line.strip() for line in text.split("\n")]
    if keep_empty:
        return lines
    return [line for line in lines if line]


class NullOutputHandler:
    """Discards all output."""

    def handle(self, stdout: str | None, stderr: str | None) -> None:
        return None

    def read_stdout(self) -> str:
        return ""

    def read_stdout_lines(self, keep_empty: bool = False) -> list[str]:
        return []

    def read_stderr(self) -> str:
        return ""

    def read_stderr_lines(self, keep_empty: bool = False) -> list[str]:
        return []


class AccumulatingOutputHandler:
    """Keeps everything read from stdout and stderr."""

    def __init__(self) -> None:
        self.stdout = ""
        self.stderr = ""

    def handle(self, stdout: str | None, stderr: str | None) -> None:
        if stdout is not None:
            self.stdout += stdout
        if stderr is not None:
            self.stderr += stderr

    def read_stdout(self) -> str:
        return self.stdout

    def read_stdout_lines(self, keep_empty: bool = False) -> list[str]:
        """Stdout split on newlines; blank lines are dropped unless ``keep_empty``."""
        return split_lines(self.stdout, keep_empty)

    def read_stderr(self) -> str:
        return self.stderr

    def read_stderr_lines(self, keep_empty: bool = False) -> list[str]:
        return split_lines(self.stderr, keep_empty)


class EchoOutputHandler(AccumulatingOutputHandler):
    """Accumulates output and forwards each non-blank chunk to ``echo``.

    Example output for ``echo=print``: the stripped chunk, as it arrives.
    """

    def __init__(self, echo: Callable[[str], None] = print) -> None:
        super().__init__()
        self._echo = echo

    def handle(self, stdout: str | None, stderr: str | None) -> None:
        super().handle(stdout, stderr)
        for chunk in (stdout, stderr):
            if chunk and chunk.strip():
                self._echo(chunk.strip())
