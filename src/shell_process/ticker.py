"""Polling cadence helpers.

Liveness of child processes is observed, never pushed, so every blocking loop
in this package polls. These helpers keep the cadence steady and make timeout
checks readable.
"""

from __future__ import annotations

import time


class Ticker:
    """Sleep until the next tick of a fixed interval.

    Time spent by the caller between ticks counts against the interval, so a
    loop doing real work does not drift. A caller that fell behind by more than
    one interval restarts the schedule instead of bursting.
    """

    def __init__(self, interval: float) -> None:
        if interval < 0:
            msg = f"interval must be >= 0, got {interval}"
            raise ValueError(msg)
        self.interval = interval
        self._next: float | None = None

    def tick(self) -> None:
        now = time.monotonic()
        if self._next is None or now - self._next > self.interval:
            self._next = now
        self._next += self.interval
        delay = self._next - now
        if delay > 0:
            time.sleep(delay)


class Deadline:
    """A point in time after which a wait gives up.

    A timeout of None or a negative number never expires.
    """

    def __init__(self, timeout: float | None, start: float | None = None) -> None:
        self.timeout = timeout
        self.start = time.monotonic() if start is None else start

    @property
    def forever(self) -> bool:
        return self.timeout is None or self.timeout < 0

    def elapsed(self) -> float:
        return time.monotonic() - self.start

    def remaining(self) -> float | None:
        if self.forever:
            return None
        assert self.timeout is not None
        return max(0.0, self.timeout - self.elapsed())

    def expired(self) -> bool:
        if self.forever:
            return False
        assert self.timeout is not None
        return self.elapsed() > self.timeout
