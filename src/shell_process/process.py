"""Single child process lifecycle: spawn, poll, drain, signal, clean up.

## Basic Usage

### Synchronous run
```python
handler = AccumulatingOutputHandler()
process = Process(Command.make("ls").with_options(["-l"]), output_handler=handler)
process.run()
print(process.exit_code)       # 0
print(handler.read_stdout())   # the listing
```

### Asynchronous run and kill
```python
process = Process.make(Command.make("sleep").with_args(5)).on_error(lambda p: None)
process.run_async()
...
process.kill()                 # blocks until the OS confirms death
process.get_signal()           # signal.SIGTERM
```

### Timeouts
```python
process = Process.make(Command.make("make")).on_error(report_failure)
process.run(timeout=300)       # killed after 300 seconds
process.timed_out              # True if the deadline fired
```

### Interactive input
```python
process = Process.make(Command.make("cat"))
process.run_interactive()
process.send("foo")
process.close_stdin()
process.wait()
process.output_handler.read_stdout()  # "foo"
```

## Lifecycle

NOT_STARTED -> RUNNING -> COMPLETED | KILLED. A process is single use; any
attempt to start it again raises IllegalStateError.

Leaving RUNNING always runs the cleanup exactly once: output is drained into
the handler, owned pipes are closed, and then either the success callback (exit
code in the expected set) or the error callback is invoked. Without an error
callback an unexpected exit raises ProcessError from the call that observed it.

Streams supplied by the caller are never closed. Commands are run through the
shell prefixed with ``exec`` so the OS pid belongs to the command itself; this
only works for simple commands, not compound shell statements.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import time
import uuid
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path
from typing import IO, Any

import psutil

from shell_process.command import Command
from shell_process.exceptions import IllegalStateError, ProcessError, ShellProcessError
from shell_process.output_handler import AccumulatingOutputHandler, OutputHandler
from shell_process.process_status import ProcessState, ProcessStatus, poll_status
from shell_process.process_utils import inspect_process, signal_children
from shell_process.streams import PIPE, OpenedTargets, PipeReader, StreamTarget, set_nonblocking, validate_target
from shell_process.ticker import Deadline, Ticker

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.005
DEFAULT_KILL_POLL_INTERVAL = 0.05

STDIN = 0
STDOUT = 1
STDERR = 2

SuccessCallback = Callable[[], None]
ErrorCallback = Callable[["Process"], None]


def wrap_command(cmd: str) -> str:
    """Prefix ``cmd`` with exec so the shell is replaced by the command."""
    if cmd.startswith("exec "):
        return cmd
    return f"exec {cmd}"


class Process:
    """
    Owns one OS process from creation to cleanup.

    Output is pulled, never pushed: every poll drains the non-blocking stdout
    and stderr pipes into the output handler. Exit status, signal and stop
    information are refreshed from the OS on every liveness check.
    """

    def __init__(
        self,
        command: Command,
        cwd: str | Path | None = None,
        output_handler: OutputHandler | None = None,
        env: Mapping[str, str] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        kill_poll_interval: float = DEFAULT_KILL_POLL_INTERVAL,
        encoding: str = "utf-8",
    ) -> None:
        """
        Initialize the Process instance. Nothing is spawned until one of the run methods.

        Args:
            command: The command to execute.
            cwd: Working directory for the command. None uses the current directory.
            output_handler: Receives stdout/stderr text as it is read. Defaults to an
                AccumulatingOutputHandler.
            env: Extra environment variables layered over os.environ.
            poll_interval: Seconds between liveness polls while waiting.
            kill_poll_interval: Seconds between liveness polls after a signal was sent.
            encoding: Encoding used to decode output and encode input.
        """
        self.id = uuid.uuid4().hex
        self.command = command
        self.cwd = str(cwd) if cwd is not None else None
        self.output_handler: OutputHandler = output_handler if output_handler is not None else AccumulatingOutputHandler()
        self.env: dict[str, str] = dict(env) if env is not None else {}
        self.poll_interval = poll_interval
        self.kill_poll_interval = kill_poll_interval
        self.encoding = encoding

        self._targets: list[StreamTarget] = [PIPE, PIPE, PIPE]
        self._expected_exit_codes: frozenset[int] = frozenset({0})
        self._on_success: SuccessCallback | None = None
        self._on_error: ErrorCallback | None = None

        self._proc: subprocess.Popen[bytes] | None = None
        self._inspector: psutil.Process | None = None
        self._readers: dict[int, PipeReader] = {}
        self._state = ProcessState.NOT_STARTED
        self._status = ProcessStatus()
        self._exit_code = -1
        self._pid: int | None = None
        self._interactive = False
        self._timed_out = False
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._started_at: float | None = None

    @classmethod
    def make(cls, command: Command, output_handler: OutputHandler | None = None) -> Process:
        """Static constructor, convenient when chaining calls."""
        return cls(command, output_handler=output_handler)

    # Configuration

    def using_cwd(self, cwd: str | Path) -> Process:
        if not Path(cwd).is_dir():
            error_msg = f"Directory [{cwd}] not found."
            raise ValueError(error_msg)
        self.cwd = str(cwd)
        return self

    def on_success(self, callback: SuccessCallback | None = None) -> Process:
        """Called once the process completes with an expected exit code."""
        self._on_success = callback
        return self

    def on_error(self, callback: ErrorCallback | None = None) -> Process:
        """Called with the process once it ends with an unexpected exit code or signal.

        Installing a callback suppresses the ProcessError otherwise raised.
        """
        self._on_error = callback
        return self

    @property
    def expected_exit_codes(self) -> frozenset[int]:
        return self._expected_exit_codes

    def set_expected_exit_codes(self, codes: Iterable[int]) -> Process:
        self._expected_exit_codes = frozenset(codes)
        return self

    def _set_target(self, index: int, target: StreamTarget) -> Process:
        if self._state is ProcessState.RUNNING:
            error_msg = "Process already running."
            raise IllegalStateError(error_msg)
        self._targets[index] = validate_target(target)
        return self

    def set_stdin(self, target: StreamTarget) -> Process:
        return self._set_target(STDIN, target)

    def set_stdout(self, target: StreamTarget) -> Process:
        return self._set_target(STDOUT, target)

    def set_stderr(self, target: StreamTarget) -> Process:
        return self._set_target(STDERR, target)

    @property
    def stdin(self) -> IO[bytes] | None:
        """Write end of the stdin pipe while running, if stdin is a pipe."""
        return self._proc.stdin if self._proc is not None else None

    @property
    def stdout(self) -> IO[bytes] | None:
        return self._proc.stdout if self._proc is not None else None

    @property
    def stderr(self) -> IO[bytes] | None:
        return self._proc.stderr if self._proc is not None else None

    # Execution

    def run_async(self, blocking: bool = False) -> Process:
        """Start the process and return immediately.

        Args:
            blocking: Leave stdout/stderr pipes in blocking mode, for callers
                that read them directly.
        """
        self._start(interactive=False, blocking=blocking)
        return self

    def run(self, timeout: float | None = None, blocking: bool = False) -> Process:
        """Start the process and wait for it to finish.

        Args:
            timeout: Seconds after which the process is killed. None or a
                negative number waits forever.
            blocking: See run_async.

        Raises:
            CommandError: If the command cannot be executed.
            IllegalStateError: If the process was already started.
            ProcessError: On creation failure, or an unexpected exit without an
                error callback.
        """
        self._start(interactive=False, blocking=blocking)
        self.wait(timeout)
        return self

    def run_interactive(self, blocking: bool = False) -> Process:
        """Start the process keeping stdin open for send()."""
        self._start(interactive=True, blocking=blocking)
        return self

    def wait(self, timeout: float | None = None) -> int:
        """
        Block until the process exits, draining output into the handler.

        The timeout is measured from the process start. When it elapses the
        process is killed and ``timed_out`` is set.

        Returns:
            The exit code, -1 if the process was terminated by a signal.
        """
        if self._state is ProcessState.NOT_STARTED:
            error_msg = "Process not started."
            raise IllegalStateError(error_msg)

        with self._guard():
            deadline = Deadline(timeout, start=self._started_at)
            ticker = Ticker(self.poll_interval)
            while self.is_alive():
                self.read()

                if deadline.expired():
                    if self.kill():
                        logger.warning("Killed timed out process after %s seconds: %s", timeout, self)
                        self._timed_out = True
                    break

                ticker.tick()

            self._cleanup()

        return self._exit_code

    def send(self, data: str | bytes) -> None:
        """Write ``data`` to the stdin of a live interactive process.

        Raises:
            IllegalStateError: If the process is not alive or not interactive.
            ProcessError: If the write fails. The process is killed first.
        """
        if not self.is_alive():
            error_msg = "Process is not alive."
            raise IllegalStateError(error_msg)
        if not self._interactive:
            error_msg = f"Process [{self._pid}] not running interactively."
            raise IllegalStateError(error_msg)

        assert self._proc is not None
        stdin = self._proc.stdin
        if stdin is None or stdin.closed:
            error_msg = f"Process [{self._pid}] has no open stdin pipe."
            raise IllegalStateError(error_msg)

        payload = data.encode(self.encoding) if isinstance(data, str) else bytes(data)
        view = memoryview(payload)
        start = 0
        try:
            while start < len(view):
                written = stdin.write(view[start:])
                start += written or 0
        except OSError as e:
            with contextlib.suppress(ProcessError):
                self.kill()
            error_msg = f"Error sending {data!r} to {self} stdin."
            raise ProcessError(error_msg, self) from e

    def close_stdin(self) -> None:
        """Close the stdin pipe so the child sees end of input."""
        if self._proc is not None and self._proc.stdin is not None:
            self._close_stream(self._proc.stdin)

    def read(self) -> None:
        """Drain whatever stdout and stderr currently hold into the output handler."""
        stdout = self._read_stream(STDOUT)
        stderr = self._read_stream(STDERR)
        self.output_handler.handle(stdout, stderr)

    def is_alive(self) -> bool:
        """
        Poll the OS for the process status.

        Observing the exit moves the process to COMPLETED and runs the cleanup,
        which may raise ProcessError.
        """
        if self._proc is None:
            return False

        self._refresh_status()
        if self._status.running:
            return True

        self._finish(ProcessState.COMPLETED)
        return False

    def kill(self, sig: int = signal.SIGTERM, timeout: float | None = None, children: bool = False) -> bool:
        """
        Send ``sig`` and block until the OS reports the process dead.

        A process that exits normally in response to the signal, or exits
        before the signal could be sent, is recorded as COMPLETED rather than
        KILLED.

        Args:
            sig: Signal to send.
            timeout: Seconds to wait before escalating to SIGKILL. None waits forever.
            children: Also signal every descendant of the process first.

        Returns:
            False without any effect if the process was not alive, True once the
            signal was sent and the process is gone.
        """
        if not self.is_alive():
            return False

        assert self._proc is not None
        if children:
            signal_children(self._proc.pid, sig)

        try:
            self._proc.send_signal(sig)
        except OSError as e:
            logger.warning("Failed to send signal %s to %s: %s", sig, self, e)
            return False

        if self._proc.returncode is not None:
            # Exited before the signal went out
            self._refresh_status()
            self._finish(ProcessState.COMPLETED)
            return False

        # A stopped process only acts on the signal once continued
        if self._status.stopped and sig not in (signal.SIGSTOP, signal.SIGTSTP, signal.SIGCONT):
            with contextlib.suppress(OSError):
                self._proc.send_signal(signal.SIGCONT)

        deadline = Deadline(timeout)
        ticker = Ticker(self.kill_poll_interval)
        escalated = False
        while True:
            self._refresh_status()
            if not self._status.running:
                break
            if not escalated and deadline.expired():
                logger.warning("Process survived signal %s for %s seconds, sending SIGKILL: %s", sig, timeout, self)
                with contextlib.suppress(OSError):
                    self._proc.kill()
                escalated = True
            ticker.tick()

        self._finish(ProcessState.KILLED if self._status.signaled else ProcessState.COMPLETED)
        return True

    def close(self) -> None:
        """Kill the process if it is alive, otherwise finish its cleanup. Idempotent."""
        if self.is_alive():
            self.kill()
        else:
            self._cleanup()

    def __enter__(self) -> Process:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any | None) -> bool:
        self.close()
        return False

    # State

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def status(self) -> ProcessStatus:
        """The last status observed from the OS."""
        return self._status

    @property
    def pid(self) -> int:
        if self._state is not ProcessState.RUNNING or self._pid is None:
            error_msg = "Process not running."
            raise IllegalStateError(error_msg)
        return self._pid

    @property
    def exit_code(self) -> int:
        """-1 until the process has terminated, and for processes ended by a signal."""
        return self._exit_code

    @property
    def returncode(self) -> int | None:
        """Exit status in subprocess conventions, None until terminated."""
        if not self._state.terminal:
            return None
        return self._status.returncode

    def get_signal(self) -> int:
        """The terminating or stopping signal, -1 if neither applies."""
        if self._status.signaled:
            return self._status.term_signal
        if self._status.stopped:
            return self._status.stop_signal
        return -1

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    @property
    def interactive(self) -> bool:
        return self._interactive

    def is_started(self) -> bool:
        return self._start_time is not None

    @property
    def start_time(self) -> float | None:
        """Get the process start time"""
        return self._start_time

    @property
    def end_time(self) -> float | None:
        """Get the time the process was seen to terminate"""
        return self._end_time

    @property
    def duration(self) -> float | None:
        """Get the process duration in seconds, or None if not completed"""
        if self._start_time is None or self._end_time is None:
            return None
        return self._end_time - self._start_time

    def __str__(self) -> str:
        return f"Process [{self.command.serialize()}]"

    def __repr__(self) -> str:
        return f"<Process id={self.id} state={self._state.value} command={self.command.serialize()!r}>"

    # Internals

    @contextlib.contextmanager
    def _guard(self) -> Iterator[None]:
        """Kill and release on unexpected errors, re-raising them as ProcessError."""
        try:
            yield
        except ShellProcessError:
            raise
        except KeyboardInterrupt:
            logger.warning("Keyboard interrupt, killing %s", self)
            self._abort()
            raise
        except Exception as e:  # noqa: BLE001
            self._abort()
            error_msg = f"Unknown process exception: {self}"
            raise ProcessError(error_msg, self) from e

    def _start(self, interactive: bool, blocking: bool) -> None:
        if self._state is ProcessState.RUNNING:
            error_msg = "Process already running."
            raise IllegalStateError(error_msg)

        with self._guard():
            self._exec(interactive, blocking)

    def _validate(self) -> None:
        if self._state.terminal:
            error_msg = "Process already closed."
            raise IllegalStateError(error_msg)
        if self._state is ProcessState.RUNNING:
            error_msg = "Process already running."
            raise IllegalStateError(error_msg)

        self.command.validate()

    def _exec(self, interactive: bool, blocking: bool) -> None:
        """Create the child process with the configured stream wiring."""
        self._validate()

        popen_command = wrap_command(self.command.serialize())

        # Force unbuffered output for Python children so polling sees output promptly
        env = os.environ.copy()
        env.update(self.env)
        env["PYTHONUNBUFFERED"] = "1"

        try:
            opened = OpenedTargets((self._targets[STDIN], self._targets[STDOUT], self._targets[STDERR]))
        except OSError as e:
            error_msg = f"Could not open stream targets for {self}"
            raise ProcessError(error_msg, self) from e

        try:
            self._proc = subprocess.Popen(  # noqa: S602
                popen_command,
                shell=True,
                cwd=self.cwd,
                env=env,
                stdin=opened.arguments[STDIN],
                stdout=opened.arguments[STDOUT],
                stderr=opened.arguments[STDERR],
                bufsize=0,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            error_msg = f"Process creation failed: {self}"
            raise ProcessError(error_msg, self) from e
        finally:
            opened.close()

        self._start_time = time.time()
        self._started_at = time.monotonic()
        self._pid = self._proc.pid
        self._inspector = inspect_process(self._pid)
        self._interactive = interactive
        self._state = ProcessState.RUNNING
        self._status = ProcessStatus(running=True)

        # Without interactive input the child must see EOF on stdin
        if not interactive and self._proc.stdin is not None:
            self._close_stream(self._proc.stdin)

        for index, stream in ((STDOUT, self._proc.stdout), (STDERR, self._proc.stderr)):
            if stream is None:
                continue
            if not blocking:
                set_nonblocking(stream)
            self._readers[index] = PipeReader(stream, self.encoding)

        logger.debug("Started %s with pid %d", self, self._pid)

    def _read_stream(self, index: int) -> str | None:
        reader = self._readers.get(index)
        if reader is None:
            return None
        return reader.read_available()

    def _refresh_status(self) -> None:
        assert self._proc is not None
        self._status = poll_status(self._proc, self._inspector)

    def _finish(self, state: ProcessState) -> None:
        """Record the terminal transition and clean up."""
        self._state = state
        self._exit_code = self._status.exit_code
        self._end_time = time.time()
        logger.debug("%s %s (exit code %d, signal %d)", self, state.value, self._exit_code, self.get_signal())
        self._cleanup()

    def _cleanup(self) -> None:
        """Drain and close owned streams, release the process, dispatch callbacks. Idempotent."""
        if self._state is ProcessState.RUNNING:
            error_msg = f"Cleanup error - process still running: {self.command.serialize()}"
            raise RuntimeError(error_msg)

        if self._proc is None:
            return

        try:
            self.read()
        finally:
            self._release()

        self._dispatch()

    def _release(self) -> None:
        proc = self._proc
        self._proc = None
        self._inspector = None
        for reader in self._readers.values():
            reader.close()
        self._readers.clear()
        if proc is not None and proc.stdin is not None:
            self._close_stream(proc.stdin)

    def _dispatch(self) -> None:
        if self._exit_code in self._expected_exit_codes:
            if self._on_success is not None:
                self._on_success()
        elif self._on_error is not None:
            self._on_error(self)
        else:
            error_msg = f"Error executing process: {self.command.serialize()}"
            raise ProcessError(error_msg, self)

    def _abort(self) -> None:
        """Kill the child and release resources without dispatching callbacks."""
        if self._proc is None:
            return

        state = ProcessState.COMPLETED
        if self._proc.poll() is None:
            with contextlib.suppress(OSError):
                self._proc.kill()
            self._proc.wait()
            state = ProcessState.KILLED

        self._refresh_status()
        self._state = state
        self._exit_code = self._status.exit_code
        self._end_time = time.time()
        self._release()

    @staticmethod
    def _close_stream(stream: IO[bytes]) -> None:
        if stream.closed:
            return
        try:
            stream.close()
        except OSError as e:
            logger.debug("Error closing stream %s: %s", stream, e)
