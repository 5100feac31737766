"""Periodic trigger of export cycles for one table."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from tidemark.core.deployment import ScheduleSpec
from tidemark.core.protocols import IScheduler
from tidemark.models.cycle import CycleOutcome
from tidemark.orchestration.controller import ExportLifecycleController

logger = logging.getLogger(__name__)


class CycleTrigger:
    """Fires ``controller.run_cycle`` on the schedule's rate grid.

    A cycle that raises is retried at most ``schedule.maximum_retry_attempts``
    times while the trigger event is younger than the maximum event age;
    after that the event is dropped and the next tick picks up the work.

    Time only moves through the injected scheduler: ``SystemScheduler`` for a
    long-running worker, ``SimulatedScheduler`` to replay a schedule without
    real sleeps. The operator API runs single cycles and does not use it.
    """

    def __init__(
        self,
        controller: ExportLifecycleController,
        scheduler: IScheduler,
        schedule: ScheduleSpec,
        rng: random.Random | None = None,
    ) -> None:
        self._controller = controller
        self._scheduler = scheduler
        self._schedule = schedule
        self._rng = rng or random.Random()

    def fire(self, event_time: datetime | None = None) -> CycleOutcome | None:
        """Deliver one trigger event. Returns ``None`` if the event was dropped."""
        event_time = event_time or self._scheduler.now()
        retries = 0
        while True:
            try:
                return self._controller.run_cycle()
            except Exception as exc:
                age = self._scheduler.now() - event_time
                if retries >= self._schedule.maximum_retry_attempts or age >= self._schedule.maximum_event_age:
                    logger.error(
                        "Dropping trigger event for table %s after %d retries (age %s): %s",
                        self._controller.table_name, retries, age, exc,
                    )
                    return None
                retries += 1
                logger.warning(
                    "Cycle for table %s raised %s; retrying trigger event",
                    self._controller.table_name, exc,
                )

    def run(self, max_cycles: int, origin: datetime | None = None) -> list[CycleOutcome | None]:
        """Fire ``max_cycles`` trigger events, waiting on the scheduler between them."""
        origin = origin or self._scheduler.now()
        outcomes: list[CycleOutcome | None] = []
        for tick in range(max_cycles):
            fire_at = self._schedule.fire_time(origin, tick, self._rng)
            delay = fire_at - self._scheduler.now()
            if delay > timedelta(0):
                self._scheduler.schedule_next(delay)
            outcomes.append(self.fire(fire_at))
        return outcomes
