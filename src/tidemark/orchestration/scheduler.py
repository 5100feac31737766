"""Scheduler implementations: wall clock for production, simulated time for tests."""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

from tidemark.models.workflow import to_utc


class SystemScheduler:
    """IScheduler backed by the system clock and ``time.sleep``."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def schedule_next(self, delay: timedelta) -> None:
        self.sleep(delay.total_seconds())


class SimulatedScheduler:
    """IScheduler whose clock only moves when something sleeps or schedules.

    Records every sleep and scheduled delay so tests can assert on waits and
    retry spacing without real time passing.
    """

    def __init__(self, start: datetime) -> None:
        self._now = to_utc(start)
        self.sleeps: list[float] = []
        self.scheduled: list[timedelta] = []

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now += delta

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(timedelta(seconds=seconds))

    def schedule_next(self, delay: timedelta) -> None:
        self.scheduled.append(delay)
        self.advance(delay)

    def monotonic(self) -> float:
        """Seconds since the epoch of the simulated clock, for lease expiry."""
        return self._now.timestamp()
