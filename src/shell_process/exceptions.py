"""Exception types raised by shell_process."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shell_process.process import Process


class ShellProcessError(Exception):
    """Base class for every error raised by this package."""


class CommandError(ShellProcessError):
    """Raised when a command cannot be executed as described."""


class IllegalStateError(ShellProcessError, RuntimeError):
    """Raised when an operation is not allowed in the current process state."""


class CapacityError(ShellProcessError):
    """Raised when a bounded manager would exceed its capacity."""


class ProcessError(ShellProcessError):
    """OS level failure of a process, or an unexpected exit code.

    The offending process is kept on the exception so callers can inspect its
    exit code, signal and captured output.
    """

    def __init__(self, message: str, process: Process) -> None:
        super().__init__(message)
        self.process = process
