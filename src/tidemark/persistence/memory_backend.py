"""In-memory backends: dict-backed fakes for unit tests and the no-op lease."""

from __future__ import annotations

import itertools
import time
from datetime import datetime
from typing import Callable

from tidemark.core.exceptions import ExportServiceError, ParameterNotFoundError
from tidemark.models.cycle import Notification
from tidemark.models.exports import ExportJob, ExportStatus, ExportType, ExportWindow, PitrStatus


class _FailureQueue:
    """Queued exceptions raised by the next calls to a named method.

    A queued ``None`` lets that call through, so a test can fail the n-th call.
    """

    def __init__(self) -> None:
        self._queued: dict[str, list[BaseException | None]] = {}

    def fail_next(self, method: str, *errors: BaseException | None) -> None:
        self._queued.setdefault(method, []).extend(errors)

    def raise_queued(self, method: str) -> None:
        queued = self._queued.get(method)
        if queued:
            error = queued.pop(0)
            if error is not None:
                raise error


class MemoryParameterStore(_FailureQueue):
    """Dict-backed IParameterStore for unit tests."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        super().__init__()
        self.values: dict[str, str] = dict(values or {})
        self.writes: list[tuple[str, str | None]] = []

    def get(self, key: str) -> str:
        self.raise_queued("get")
        if key not in self.values:
            raise ParameterNotFoundError(key)
        return self.values[key]

    def put(self, key: str, value: str) -> None:
        self.raise_queued("put")
        self.values[key] = value
        self.writes.append((key, value))

    def delete(self, key: str) -> None:
        self.raise_queued("delete")
        if key not in self.values:
            raise ParameterNotFoundError(key)
        del self.values[key]
        self.writes.append((key, None))


class MemoryExportService(_FailureQueue):
    """Scriptable IExportService for unit tests.

    Every started export reports ``IN_PROGRESS`` for ``polls_until_complete``
    describe calls, then ``final_status``.
    """

    def __init__(
        self,
        table_name: str = "orders",
        *,
        table_exists: bool = True,
        pitr_enabled: bool = True,
        earliest_restorable_time: datetime | None = None,
        polls_until_complete: int = 0,
        final_status: ExportStatus = ExportStatus.COMPLETED,
    ) -> None:
        super().__init__()
        self.table_name = table_name
        self.table_exists = table_exists
        self.pitr_enabled = pitr_enabled
        self.earliest_restorable_time = earliest_restorable_time
        self.polls_until_complete = polls_until_complete
        self.final_status = final_status
        self.jobs: dict[str, ExportJob] = {}
        self.started: list[ExportJob] = []
        self.incremental_windows: list[ExportWindow] = []
        self.describe_calls = 0
        self._polls: dict[str, int] = {}
        self._ids = itertools.count(1)

    @property
    def table_arn(self) -> str:
        return f"arn:aws:dynamodb:us-east-1:000000000000:table/{self.table_name}"

    def ensure_table_exists(self) -> str:
        self.raise_queued("ensure_table_exists")
        if not self.table_exists:
            raise ExportServiceError(f"Table {self.table_name!r} not found")
        return self.table_arn

    def describe_pitr(self) -> PitrStatus:
        self.raise_queued("describe_pitr")
        return PitrStatus(
            enabled=self.pitr_enabled,
            earliest_restorable_time=self.earliest_restorable_time if self.pitr_enabled else None,
        )

    def _start(self, export_type: ExportType, export_time: datetime | None) -> ExportJob:
        export_id = f"{self.table_arn}/export/{next(self._ids):04d}"
        job = ExportJob(export_id=export_id, export_type=export_type, export_time=export_time)
        self.jobs[export_id] = job
        self.started.append(job)
        self._polls[export_id] = 0
        return job

    def start_full_export(self, export_time: datetime) -> ExportJob:
        self.raise_queued("start_full_export")
        return self._start(ExportType.FULL_EXPORT, export_time)

    def start_incremental_export(self, window: ExportWindow) -> ExportJob:
        self.raise_queued("start_incremental_export")
        self.incremental_windows.append(window)
        return self._start(ExportType.INCREMENTAL_EXPORT, None)

    def describe_export(self, export_id: str) -> ExportJob:
        self.raise_queued("describe_export")
        self.describe_calls += 1
        if export_id not in self.jobs:
            raise ExportServiceError(f"Export {export_id!r} not found")
        job = self.jobs[export_id]
        if job.is_terminal:
            return job
        self._polls[export_id] += 1
        if self._polls[export_id] > self.polls_until_complete:
            job = job.model_copy(update={"status": self.final_status})
            self.jobs[export_id] = job
        return job


class MemoryNotifier(_FailureQueue):
    """List-backed INotifier for unit tests."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[Notification] = []

    def publish(self, notification: Notification) -> None:
        self.raise_queued("publish")
        self.published.append(notification)


class MemoryCycleLease:
    """Dict-backed ICycleLease for unit tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._holders: dict[str, tuple[str, float]] = {}

    def holder(self, table_name: str) -> str | None:
        held = self._holders.get(table_name)
        if held is None or held[1] <= self._clock():
            return None
        return held[0]

    def acquire(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        if self.holder(table_name) not in (None, owner):
            return False
        self._holders[table_name] = (owner, self._clock() + ttl_seconds)
        return True

    def renew(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        if self.holder(table_name) != owner:
            return False
        self._holders[table_name] = (owner, self._clock() + ttl_seconds)
        return True

    def release(self, table_name: str, owner: str) -> None:
        if self.holder(table_name) == owner:
            del self._holders[table_name]


class NullCycleLease:
    """ICycleLease that never blocks; overlapping cycles are left to the trigger cadence."""

    def acquire(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        return True

    def renew(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        return True

    def release(self, table_name: str, owner: str) -> None:
        return None