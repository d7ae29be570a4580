"""Process states and the status snapshot read from the OS."""

from __future__ import annotations

import enum
import signal
import subprocess
from dataclasses import dataclass
from typing import Any

import psutil

from shell_process.process_utils import is_stopped


class ProcessState(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    KILLED = "killed"

    @property
    def terminal(self) -> bool:
        return self in (ProcessState.COMPLETED, ProcessState.KILLED)


@dataclass(frozen=True)
class ProcessStatus:
    """One observation of a child process.

    ``exit_code`` is -1 while the process runs and when it was terminated by a
    signal. ``term_signal`` is only meaningful when ``signaled`` is set and
    ``stop_signal`` only when ``stopped`` is set.
    """

    running: bool = False
    exit_code: int = -1
    signaled: bool = False
    stopped: bool = False
    term_signal: int = -1
    stop_signal: int = -1

    @property
    def returncode(self) -> int | None:
        """The status in subprocess conventions: negative for signals."""
        if self.running:
            return None
        if self.signaled:
            return -self.term_signal
        return self.exit_code


def poll_status(proc: subprocess.Popen[Any], inspector: psutil.Process | None = None) -> ProcessStatus:
    """Ask the OS for the current status of ``proc``.

    ``inspector`` is an optional psutil handle for the same pid, used to tell a
    stopped process from a running one.
    """
    rc = proc.poll()
    if rc is None:
        if is_stopped(inspector):
            return ProcessStatus(running=True, stopped=True, stop_signal=int(signal.SIGSTOP))
        return ProcessStatus(running=True)
    if rc < 0:
        return ProcessStatus(running=False, signaled=True, term_signal=-rc)
    return ProcessStatus(running=False, exit_code=rc)
