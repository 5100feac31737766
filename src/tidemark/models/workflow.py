"""Workflow marker models persisted in the parameter store."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel


class WorkflowAction(StrEnum):
    PAUSE = "PAUSE"
    RUN = "RUN"
    RESET_WITH_FULL_EXPORT_AGAIN = "RESET_WITH_FULL_EXPORT_AGAIN"


class WorkflowState(StrEnum):
    NORMAL = "NORMAL"
    PITR_GAP = "PITR_GAP"


class WorkflowInitiated(StrEnum):
    TRUE = "true"
    FALSE = "false"
    PENDING = "PENDING"  # full export in flight


class ParameterName(StrEnum):
    """Per-table parameter key suffixes."""

    WORKFLOW_ACTION = "workflow-action"
    WORKFLOW_STATE = "workflow-state"
    WORKFLOW_INITIATED = "workflow-initiated"
    FULL_EXPORT_TIME = "full-export-time"
    FULL_EXPORT_ID = "full-export-id"
    LAST_INCREMENTAL_EXPORT_TIME = "last-incremental-export-time"


PARAMETER_ROOT = "/dynamodb/export"


def parameter_key(table_name: str, name: ParameterName) -> str:
    """Namespaced parameter key for a table, e.g. ``/dynamodb/export/orders/workflow-state``."""
    return f"{PARAMETER_ROOT}/{table_name}/{name.value}"


def to_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    return to_utc(value).isoformat()


def parse_timestamp(raw: str | datetime | None) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None for blank or malformed input."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return to_utc(raw)
    raw = raw.strip()
    if not raw:
        return None
    try:
        return to_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def _parse_enum(enum_cls, raw: str | None, default):
    if raw is None:
        return default
    try:
        return enum_cls(raw.strip())
    except ValueError:
        return default


class WorkflowParameters(BaseModel):
    """Snapshot of a table's workflow markers, read once at the start of a cycle."""

    workflow_action: WorkflowAction = WorkflowAction.RUN
    workflow_state: WorkflowState = WorkflowState.NORMAL
    workflow_initiated: Optional[WorkflowInitiated] = None
    full_export_time: Optional[datetime] = None
    full_export_id: Optional[str] = None
    last_incremental_export_time: Optional[datetime] = None

    @classmethod
    def from_raw(cls, raw: dict[ParameterName, str]) -> WorkflowParameters:
        """Build from raw string values; missing or unreadable values fall back to defaults."""
        return cls(
            workflow_action=_parse_enum(
                WorkflowAction, raw.get(ParameterName.WORKFLOW_ACTION), WorkflowAction.RUN
            ),
            workflow_state=_parse_enum(
                WorkflowState, raw.get(ParameterName.WORKFLOW_STATE), WorkflowState.NORMAL
            ),
            workflow_initiated=_parse_enum(
                WorkflowInitiated, raw.get(ParameterName.WORKFLOW_INITIATED), None
            ),
            full_export_time=parse_timestamp(raw.get(ParameterName.FULL_EXPORT_TIME)),
            full_export_id=(raw.get(ParameterName.FULL_EXPORT_ID) or "").strip() or None,
            last_incremental_export_time=parse_timestamp(
                raw.get(ParameterName.LAST_INCREMENTAL_EXPORT_TIME)
            ),
        )

    @property
    def is_paused(self) -> bool:
        return self.workflow_action == WorkflowAction.PAUSE

    @property
    def is_initiated(self) -> bool:
        return self.workflow_initiated == WorkflowInitiated.TRUE

    @property
    def has_pitr_gap(self) -> bool:
        return self.workflow_state == WorkflowState.PITR_GAP

    @property
    def reset_requested(self) -> bool:
        """True when an operator asked to re-baseline after a PITR gap."""
        return self.has_pitr_gap and self.workflow_action == WorkflowAction.RESET_WITH_FULL_EXPORT_AGAIN

    @property
    def full_export_running(self) -> bool:
        return self.workflow_initiated == WorkflowInitiated.PENDING and self.full_export_id is not None

    @property
    def last_incremental_export_time_valid(self) -> bool:
        if self.last_incremental_export_time is None:
            return False
        if not self.is_initiated or self.has_pitr_gap:
            return False
        if self.full_export_time is not None and self.last_incremental_export_time < self.full_export_time:
            return False  # stale: predates the current baseline
        return True
