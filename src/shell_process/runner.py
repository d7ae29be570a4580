"""subprocess.run() style convenience wrapper around Process."""

from __future__ import annotations

import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from shell_process.command import Command, Options
from shell_process.output_handler import AccumulatingOutputHandler
from shell_process.process import Process


def run_command(
    command: Command | str,
    args: Sequence[Any] | None = None,
    options: Options | None = None,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    check: bool = False,
    expected_exit_codes: Iterable[int] = (0,),
) -> subprocess.CompletedProcess[str]:
    """
    Execute a command synchronously and collect its output.

    Args:
        command: A Command, or a name to build one from with ``args`` and ``options``.
        args: Positional arguments when ``command`` is a name.
        options: Options when ``command`` is a name.
        cwd: Working directory for command execution.
        timeout: Seconds after which the process is killed. None waits forever.
        check: If True, raise ProcessError unless the exit code is expected.
        expected_exit_codes: Exit codes counted as success.

    Returns:
        CompletedProcess with the serialized command line as ``args``, separate
        stdout and stderr, and a negative return code for signalled processes.

    Raises:
        CommandError: If the command cannot be executed.
        ProcessError: If check=True and the process ended unexpectedly.
    """
    if isinstance(command, str):
        command = Command(command, args, options)

    handler = AccumulatingOutputHandler()
    process = Process(command, cwd=cwd, output_handler=handler)
    process.set_expected_exit_codes(expected_exit_codes)
    if not check:
        process.on_error(lambda _process: None)

    process.run(timeout=timeout)

    returncode = process.returncode
    assert returncode is not None  # Process has completed, so returncode exists
    return subprocess.CompletedProcess(
        args=command.serialize(),
        returncode=returncode,
        stdout=handler.read_stdout(),
        stderr=handler.read_stderr(),
    )
