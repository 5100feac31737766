"""Cycle context, outcome and notification models."""

from __future__ import annotations

import json
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from tidemark.core.exceptions import ErrorKind
from tidemark.models.exports import ExportJob, ExportWindow, PitrStatus
from tidemark.models.workflow import WorkflowParameters
from tidemark.orchestration.steps import CycleStatus, ExportPath, Step


class NotificationStatus(StrEnum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class NotificationEvent(StrEnum):
    FULL_EXPORT = "FULL_EXPORT"
    INCREMENTAL_EXPORT = "INCREMENTAL_EXPORT"
    PITR_DISABLED = "PITR_DISABLED"
    PITR_GAP = "PITR_GAP"
    START_TIME_OUTSIDE_PITR_WINDOW = "START_TIME_OUTSIDE_PITR_WINDOW"
    TASK_FAILED = "TASK_FAILED"


class Notification(BaseModel):
    """Structured message published on the notification channel.

    Subscribers filter on ``status`` in the message body.
    """

    status: NotificationStatus
    event: NotificationEvent
    table: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject(self) -> str:
        return f"[{self.status}] {self.event} {self.table}"[:100]

    def to_message(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)


class CycleError(BaseModel):
    """The last failure caught by the graph during a cycle."""

    step: Step
    kind: ErrorKind
    message: str


class CycleContext(BaseModel):
    """Data flowing between steps of a single cycle."""

    table_name: str
    started_at: datetime
    parameters: WorkflowParameters = Field(default_factory=WorkflowParameters)
    table_arn: Optional[str] = None
    pitr: Optional[PitrStatus] = None
    full_export: Optional[ExportJob] = None
    workflow_initiated_result: Optional[bool] = None
    watermark: Optional[datetime] = None
    window: Optional[ExportWindow] = None
    incremental_export: Optional[ExportJob] = None
    incremental_export_succeeded: Optional[bool] = None
    error: Optional[CycleError] = None

    def with_updates(self, **changes: Any) -> CycleContext:
        return self.model_copy(update=changes)


class CycleOutcome(BaseModel):
    """Result of one run of the export lifecycle graph."""

    table_name: str
    terminal: Step
    status: CycleStatus
    path: Optional[ExportPath] = None
    steps: list[Step] = Field(default_factory=list)
    error: Optional[CycleError] = None
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.status == CycleStatus.SUCCEEDED
