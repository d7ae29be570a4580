"""Launch external processes, track their lifecycle and run many of them with bounded concurrency."""

from __future__ import annotations

__version__ = "1.0.0"

from shell_process.batch_executor import BatchExecutor
from shell_process.command import Command, default_search_path, find_executable
from shell_process.exceptions import CapacityError, CommandError, IllegalStateError, ProcessError, ShellProcessError
from shell_process.output_handler import (
    AccumulatingOutputHandler,
    EchoOutputHandler,
    NullOutputHandler,
    OutputHandler,
)
from shell_process.process import Process
from shell_process.process_manager import ProcessManager
from shell_process.process_status import ProcessState, ProcessStatus
from shell_process.runner import run_command
from shell_process.streams import PIPE, FileSpec

__all__ = [
    "PIPE",
    "AccumulatingOutputHandler",
    "BatchExecutor",
    "CapacityError",
    "Command",
    "CommandError",
    "EchoOutputHandler",
    "FileSpec",
    "IllegalStateError",
    "NullOutputHandler",
    "OutputHandler",
    "Process",
    "ProcessError",
    "ProcessManager",
    "ProcessState",
    "ProcessStatus",
    "ShellProcessError",
    "default_search_path",
    "find_executable",
    "run_command",
]
