"""
Cancellable periodic tasks driven by an injectable clock.

``SystemClock`` backs production loops; ``ManualClock`` lets tests step time
forward without sleeping.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Protocol

from loguru import logger


class Clock(Protocol):
    def now(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Monotonic wall-clock time."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """Clock that only moves when told to; ``sleep`` advances it."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += seconds

    def sleep(self, seconds: float) -> None:
        self.advance(max(seconds, 0.0))


class PeriodicTask:
    """
    Runs ``callback`` every ``interval`` seconds of ``clock`` time.

    Args:
        interval (float): Seconds between runs, > 0.
        callback (Callable[[], None]): Work to run; exceptions are logged and
            counted in ``errors``, the task keeps its schedule.
        clock (Optional[Clock]): Time source, defaults to ``SystemClock``.
        run_immediately (bool): Fire on the first ``run_pending`` call
            instead of one interval later.
        name (str): Label used in log records.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        clock: Optional[Clock] = None,
        *,
        run_immediately: bool = False,
        name: str = "task",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = float(interval)
        self.callback = callback
        self.clock: Clock = clock or SystemClock()
        self.name = name
        self.runs = 0
        self.errors = 0
        self._cancelled = False
        start = self.clock.now()
        self._next_run = start if run_immediately else start + self.interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def next_run(self) -> float:
        return self._next_run

    def cancel(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            logger.debug("[scheduler] cancelled name={} runs={}", self.name, self.runs)

    def run_pending(self) -> bool:
        """
        Fire the callback once if it is due.

        Missed occurrences are collapsed: after a long gap the task runs once
        and the next run is scheduled one interval from now.

        Returns:
            bool: True when the callback ran.
        """
        if self._cancelled:
            return False
        now = self.clock.now()
        if now < self._next_run:
            return False
        try:
            self.callback()
        except Exception:
            self.errors += 1
            logger.exception("[scheduler] callback failed name={}", self.name)
        self.runs += 1
        self._next_run += self.interval
        if self._next_run <= now:
            self._next_run = now + self.interval
        return True

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Block, running the task on schedule until cancelled or ``stop_event`` is set."""
        while not self._cancelled and not (stop_event is not None and stop_event.is_set()):
            self.run_pending()
            if self._cancelled:
                break
            wait = self._next_run - self.clock.now()
            if stop_event is not None and isinstance(self.clock, SystemClock):
                stop_event.wait(max(wait, 0.0))
            else:
                self.clock.sleep(max(wait, 0.0))


__all__ = ["Clock", "SystemClock", "ManualClock", "PeriodicTask"]
