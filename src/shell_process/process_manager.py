"""Process manager for running many processes side by side."""

from __future__ import annotations

import logging
import threading
import time
import warnings
from collections.abc import Iterator
from typing import TYPE_CHECKING

from shell_process.exceptions import CapacityError, ProcessError
from shell_process.process_status import ProcessState
from shell_process.process_utils import get_process_tree_info
from shell_process.ticker import Deadline, Ticker

if TYPE_CHECKING:
    from shell_process.process import Process

logger = logging.getLogger(__name__)

DEFAULT_JOIN_INTERVAL = 0.01


class ProcessManager:
    """Pool of processes keyed by process id.

    Processes are started together and observed through polling; there is no
    ordering between them. A non-negative ``capacity`` bounds how many
    processes may ever be registered.
    """

    def __init__(self, *processes: Process, capacity: int = -1, poll_interval: float = DEFAULT_JOIN_INTERVAL) -> None:
        self._lock = threading.RLock()
        self._processes: dict[str, Process] = {}
        self._capacity = capacity
        self._registered = 0
        self.poll_interval = poll_interval
        if processes:
            self.manage(*processes)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def bounded(self) -> bool:
        return self._capacity >= 0

    def manage(self, *processes: Process) -> ProcessManager:
        """Register processes.

        Raises:
            CapacityError: If a bounded manager would exceed its capacity. No
                process is registered in that case.
        """
        with self._lock:
            new = [p for p in dict.fromkeys(processes) if p.id not in self._processes]
            if self.bounded and self._registered + len(new) > self._capacity:
                error_msg = (
                    f"{type(self).__name__} capacity [{self._capacity}] exceeded: "
                    f"{self._registered} registered, {len(new)} more requested."
                )
                raise CapacityError(error_msg)

            for process in new:
                self._processes[process.id] = process
            self._registered += len(new)
        return self

    def start(self) -> None:
        """Start every managed process not started yet. Does not block."""
        for process in self._snapshot():
            if not process.is_started():
                process.run_async()
        logger.debug("Started %d managed processes", len(self))

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until no managed process is alive.

        Args:
            timeout: Give up after this many seconds. None waits forever.

        Returns:
            True once nothing is alive, False if the timeout elapsed first.
        """
        deadline = Deadline(timeout)
        ticker = Ticker(self.poll_interval)
        while self.has_alive():
            if deadline.expired():
                return False
            ticker.tick()
        return True

    def has_alive(self) -> bool:
        """Poll every managed process, draining its output. True if any is still alive."""
        alive = False
        for process in self._snapshot():
            alive = self._poll(process) or alive
        return alive

    def processes(self) -> list[str]:
        """Ids of the managed processes."""
        with self._lock:
            return list(self._processes)

    def get(self, process_id: str) -> Process | None:
        with self._lock:
            return self._processes.get(process_id)

    def abandon(self, *process_ids: str, kill: bool = True) -> None:
        """
        Stop managing the given processes, or all of them when no id is given.

        With ``kill`` each abandoned process is killed first. Every process is
        killed even if one of them raises; the first ProcessError is re-raised
        afterwards.
        """
        with self._lock:
            ids = list(process_ids) if process_ids else list(self._processes)
            abandoned = [self._processes.pop(pid) for pid in ids if pid in self._processes]

        first_error: ProcessError | None = None
        if kill:
            for process in abandoned:
                try:
                    process.kill()
                except ProcessError as e:
                    logger.warning("Error killing abandoned process %s: %s", process, e)
                    if first_error is None:
                        first_error = e
        if first_error is not None:
            raise first_error

    def list_active(self) -> list[Process]:
        """List all managed processes still alive."""
        return [p for p in self._snapshot() if self._poll(p)]

    def dump_active(self) -> None:
        """Dump information about active processes."""
        active = self.list_active()
        if not active:
            warnings.warn("No active managed processes.", UserWarning, stacklevel=2)
            return

        warnings.warn("ACTIVE MANAGED PROCESSES:", UserWarning, stacklevel=2)

        now = time.time()
        for idx, p in enumerate(active, 1):
            start = p.start_time
            duration_str = f"{(now - start):.1f}s" if start is not None else "?"
            warnings.warn(
                f"  {idx}. cmd={p.command.serialize()} pid={p.pid} duration={duration_str}\n{get_process_tree_info(p.pid)}",
                UserWarning,
                stacklevel=2,
            )

    @staticmethod
    def _poll(process: Process) -> bool:
        # Children block on a full pipe unless their output is read
        if process.state is ProcessState.RUNNING:
            process.read()
        return process.is_alive()

    def _snapshot(self) -> list[Process]:
        with self._lock:
            return list(self._processes.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def __iter__(self) -> Iterator[Process]:
        return iter(self._snapshot())
