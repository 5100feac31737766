"""Protocol interfaces for all Tidemark collaborators.

The controller only talks to these Protocols: structural typing, no
inheritance required, easy to swap AWS bindings for in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from tidemark.core.types import ExportId, ParameterKey, TableName
from tidemark.models.cycle import Notification
from tidemark.models.exports import ExportJob, ExportWindow, PitrStatus


# ---------------------------------------------------------------------------
# Parameter Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IParameterStore(Protocol):
    """Durable string key-value store for workflow markers.

    ``get`` and ``delete`` raise ``ParameterNotFoundError`` for missing keys;
    any call may raise ``ParameterThrottledError`` or ``SdkClientError``.
    """

    def get(self, key: ParameterKey) -> str: ...

    def put(self, key: ParameterKey, value: str) -> None: ...

    def delete(self, key: ParameterKey) -> None: ...


# ---------------------------------------------------------------------------
# Export Service
# ---------------------------------------------------------------------------

@runtime_checkable
class IExportService(Protocol):
    """Full and incremental exports of one source table."""

    def ensure_table_exists(self) -> str: ...

    def describe_pitr(self) -> PitrStatus: ...

    def start_full_export(self, export_time: datetime) -> ExportJob: ...

    def start_incremental_export(self, window: ExportWindow) -> ExportJob: ...

    def describe_export(self, export_id: ExportId) -> ExportJob: ...


# ---------------------------------------------------------------------------
# Notification Channel
# ---------------------------------------------------------------------------

@runtime_checkable
class INotifier(Protocol):
    """Publishes structured success/failure notifications."""

    def publish(self, notification: Notification) -> None: ...


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@runtime_checkable
class IScheduler(Protocol):
    """Clock and cooperative waiting used by wait steps, retries and the trigger."""

    def now(self) -> datetime: ...

    def sleep(self, seconds: float) -> None: ...

    def schedule_next(self, delay: timedelta) -> None: ...


# ---------------------------------------------------------------------------
# Cycle Lease
# ---------------------------------------------------------------------------

@runtime_checkable
class ICycleLease(Protocol):
    """Per-table mutual exclusion between overlapping cycles."""

    def acquire(self, table_name: TableName, owner: str, ttl_seconds: int) -> bool: ...

    def renew(self, table_name: TableName, owner: str, ttl_seconds: int) -> bool: ...

    def release(self, table_name: TableName, owner: str) -> None: ...
