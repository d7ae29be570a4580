"""Bounded concurrency: run queued processes at most ``batch_size`` at a time."""

from __future__ import annotations

import contextlib
import logging
from collections import deque
from typing import TYPE_CHECKING

from shell_process.exceptions import ProcessError
from shell_process.process_manager import DEFAULT_JOIN_INTERVAL, ProcessManager
from shell_process.ticker import Ticker

if TYPE_CHECKING:
    from shell_process.process import Process

logger = logging.getLogger(__name__)


class BatchExecutor(ProcessManager):
    """
    Keeps up to ``batch_size`` processes running until the queue is empty.

    Pending processes are admitted in registration order. As soon as a running
    process is seen finished its slot is refilled with the next pending one.
    After ``start()`` the managed processes are ordered by completion.
    """

    def __init__(
        self,
        *processes: Process,
        batch_size: int = 5,
        capacity: int = -1,
        poll_interval: float = DEFAULT_JOIN_INTERVAL,
    ) -> None:
        if batch_size < 1:
            error_msg = f"batch_size must be >= 1, got {batch_size}"
            raise ValueError(error_msg)
        super().__init__(*processes, capacity=capacity, poll_interval=poll_interval)
        self.batch_size = batch_size
        self.peak_concurrency = 0
        self._finished: list[Process] = []

    def start(self) -> None:
        """
        Run every managed process, at most ``batch_size`` at once. Blocks until all are done.

        If a process error escapes (an unexpected exit without error callback),
        the processes still running are killed before it propagates.
        """
        snapshot = self._snapshot()
        pending: deque[Process] = deque(p for p in snapshot if not p.is_started())
        running: list[Process] = [p for p in snapshot if p.is_started() and p.is_alive()]
        finished: list[Process] = [p for p in snapshot if p.is_started() and p not in running]
        self.peak_concurrency = max(self.peak_concurrency, len(running))

        ticker = Ticker(self.poll_interval)
        try:
            while pending or running:
                while len(running) < self.batch_size and pending:
                    self._launch(pending, running)

                for process in list(running):
                    try:
                        alive = self._poll(process)
                    except ProcessError:
                        running.remove(process)
                        finished.append(process)
                        raise
                    if not alive:
                        running.remove(process)
                        finished.append(process)
                        if pending:
                            self._launch(pending, running)

                if pending or running:
                    ticker.tick()
        except BaseException:
            logger.warning("Batch aborted, killing %d running processes", len(running))
            for process in running:
                with contextlib.suppress(ProcessError):
                    process.kill()
            raise
        finally:
            self._finished = list(finished)
            with self._lock:
                self._processes = {p.id: p for p in (*finished, *running, *pending)}

    def _launch(self, pending: deque[Process], running: list[Process]) -> None:
        process = pending.popleft()
        try:
            process.run_async()
        except BaseException:
            pending.appendleft(process)
            raise
        running.append(process)
        self.peak_concurrency = max(self.peak_concurrency, len(running))

    def finished(self) -> list[Process]:
        """Processes from the last ``start()`` in completion order."""
        return list(self._finished)
