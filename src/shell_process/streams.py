"""Stream wiring for child processes.

Each of stdin, stdout and stderr is described by a target:

- ``PIPE``: a pipe created at spawn time and owned by the process.
- ``FileSpec(path, mode)``: a file opened for the child only. The parent's copy
  is closed right after spawning.
- Any object with ``fileno()`` or a raw file descriptor: supplied by the caller
  and never closed by the process.

``PipeReader`` drains an owned output pipe without blocking and decodes the
bytes incrementally, so multi-byte characters split across reads survive.
"""

from __future__ import annotations

import codecs
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Union

logger = logging.getLogger(__name__)

MAX_BYTES_PER_READ = 4096


class _Pipe:
    """Sentinel type for the default pipe target."""

    _instance: _Pipe | None = None

    def __new__(cls) -> _Pipe:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PIPE"


PIPE = _Pipe()


@dataclass(frozen=True)
class FileSpec:
    """A file the child inherits, opened with ``mode`` ("r", "w" or "a")."""

    path: str | Path
    mode: str = "r"

    def open(self) -> IO[bytes]:
        mode = self.mode if "b" in self.mode else f"{self.mode}b"
        return open(self.path, mode)  # noqa: SIM115


StreamTarget = Union[_Pipe, FileSpec, IO[Any], int]


def is_pipe(target: StreamTarget) -> bool:
    return target is PIPE


def validate_target(target: StreamTarget) -> StreamTarget:
    """Reject targets the process creation call cannot use."""
    if target is PIPE or isinstance(target, (FileSpec, int)):
        return target
    if callable(getattr(target, "fileno", None)):
        return target
    msg = f"stream target must be PIPE, FileSpec, a file descriptor or a stream, got {type(target).__name__}"
    raise TypeError(msg)


class OpenedTargets:
    """Popen arguments for a set of targets plus the files opened for them.

    Files opened for ``FileSpec`` targets belong to the child; the parent
    closes its copies once the child has been spawned (or failed to spawn).
    """

    def __init__(self, targets: tuple[StreamTarget, StreamTarget, StreamTarget]) -> None:
        self._opened: list[IO[bytes]] = []
        self.arguments: list[Any] = []
        try:
            for target in targets:
                self.arguments.append(self._resolve(target))
        except OSError:
            self.close()
            raise

    def _resolve(self, target: StreamTarget) -> Any:
        if target is PIPE:
            return subprocess.PIPE
        if isinstance(target, FileSpec):
            handle = target.open()
            self._opened.append(handle)
            return handle
        return target

    def close(self) -> None:
        for handle in self._opened:
            try:
                handle.close()
            except OSError as e:
                logger.warning("Failed to close inherited file %s: %s", handle, e)
        self._opened.clear()


def set_nonblocking(stream: IO[Any]) -> None:
    os.set_blocking(stream.fileno(), False)


class PipeReader:
    """Reads whatever an output pipe currently holds and decodes it."""

    def __init__(self, stream: IO[bytes], encoding: str = "utf-8", errors: str = "replace") -> None:
        self._stream = stream
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        self.eof = False

    def read_available(self) -> str:
        """Return the text available right now; "" when there is none.

        On a blocking pipe this reads until end of stream.
        """
        if self.eof or self._stream.closed:
            return ""
        chunks: list[bytes] = []
        while True:
            try:
                chunk = self._stream.read(MAX_BYTES_PER_READ)
            except BlockingIOError:
                break
            except (OSError, ValueError) as e:
                logger.debug("Pipe read failed, treating as end of stream: %s", e)
                chunk = b""
            if chunk is None:
                break
            if not chunk:
                self.eof = True
                break
            chunks.append(chunk)
        text = self._decoder.decode(b"".join(chunks), final=self.eof)
        return text

    def close(self) -> None:
        if self._stream.closed:
            return
        try:
            self._stream.close()
        except OSError as e:
            logger.warning("Failed to close pipe: %s", e)
