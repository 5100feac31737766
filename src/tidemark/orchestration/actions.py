"""Side-effecting task actions of the export lifecycle graph.

Each public method is named by a ``TaskNode.action``, receives the current
cycle context and returns the task output; merging that output into the
context is left to the pure transition function.
"""

from __future__ import annotations

import logging
from typing import Callable

from tidemark.core.exceptions import GraphError
from tidemark.core.protocols import IExportService, INotifier, IScheduler
from tidemark.functions.time_manipulator import compute_export_window
from tidemark.models.cycle import (
    CycleContext,
    Notification,
    NotificationEvent,
    NotificationStatus,
)
from tidemark.models.exports import ExportJob, ExportWindow, PitrStatus
from tidemark.models.workflow import (
    ParameterName,
    WorkflowAction,
    WorkflowInitiated,
    WorkflowParameters,
    WorkflowState,
    format_timestamp,
)
from tidemark.persistence.parameters import WorkflowParameterRepository

logger = logging.getLogger(__name__)

TimeManipulator = Callable[..., ExportWindow]


def _iso(value) -> str | None:
    return format_timestamp(value) if value is not None else None


class ExportActions:
    """Task actions for one table, bound to its collaborators."""

    def __init__(
        self,
        *,
        parameters: WorkflowParameterRepository,
        exports: IExportService,
        notifier: INotifier,
        scheduler: IScheduler,
        window_size_minutes: int,
        time_manipulator: TimeManipulator = compute_export_window,
    ) -> None:
        self._parameters = parameters
        self._exports = exports
        self._notifier = notifier
        self._scheduler = scheduler
        self._window_size_minutes = window_size_minutes
        self._time_manipulator = time_manipulator

    # ---- entry ----

    def get_parameters(self, ctx: CycleContext) -> WorkflowParameters:
        return self._parameters.load()

    def ensure_table_exists(self, ctx: CycleContext) -> str:
        return self._exports.ensure_table_exists()

    def describe_continuous_backups(self, ctx: CycleContext) -> PitrStatus:
        return self._exports.describe_pitr()

    # ---- full export ----

    def execute_full_export(self, ctx: CycleContext) -> ExportJob:
        job = self._exports.start_full_export(self._scheduler.now())
        logger.info("Started full export %s for table %s", job.export_id, ctx.table_name)
        return job

    def set_workflow_initiated_pending(self, ctx: CycleContext) -> None:
        """Record the new export id, then mark the baseline as unconfirmed.

        Runs before the new full export time is written, so a cycle that stops
        part way never leaves a fresh FullExportTime next to WorkflowInitiated=true.
        The id goes first because it is only read while the flag is PENDING.
        """
        job = self._require_full_export(ctx)
        self._parameters.put(ParameterName.FULL_EXPORT_ID, job.export_id)
        self._parameters.put(ParameterName.WORKFLOW_INITIATED, WorkflowInitiated.PENDING.value)

    def set_full_export_time(self, ctx: CycleContext) -> None:
        job = self._require_full_export(ctx)
        export_time = job.export_time or ctx.started_at
        self._parameters.put(ParameterName.FULL_EXPORT_TIME, format_timestamp(export_time))

    def set_workflow_action_to_run(self, ctx: CycleContext) -> None:
        self._parameters.put(ParameterName.WORKFLOW_ACTION, WorkflowAction.RUN.value)

    def set_workflow_state_to_normal(self, ctx: CycleContext) -> None:
        self._parameters.put(ParameterName.WORKFLOW_STATE, WorkflowState.NORMAL.value)

    def delete_last_incremental_export_time(self, ctx: CycleContext) -> None:
        self._parameters.delete(ParameterName.LAST_INCREMENTAL_EXPORT_TIME)

    def describe_full_export(self, ctx: CycleContext) -> ExportJob:
        export_id = ctx.full_export.export_id if ctx.full_export else ctx.parameters.full_export_id
        if export_id is None:
            raise GraphError(f"No full export to describe for table {ctx.table_name}")
        return self._exports.describe_export(export_id)

    def set_workflow_initiated(self, ctx: CycleContext) -> None:
        job = ctx.full_export
        if ctx.workflow_initiated_result and job is not None and job.export_time is not None:
            # a resumed cycle may have skipped SetFullExportTime
            self._parameters.put(ParameterName.FULL_EXPORT_TIME, format_timestamp(job.export_time))
        value = WorkflowInitiated.TRUE if ctx.workflow_initiated_result else WorkflowInitiated.FALSE
        self._parameters.put(ParameterName.WORKFLOW_INITIATED, value.value)

    def notify_full_export(self, ctx: CycleContext) -> None:
        job = ctx.full_export
        succeeded = bool(ctx.workflow_initiated_result)
        self._publish(
            ctx,
            NotificationStatus.SUCCESS if succeeded else NotificationStatus.FAILED,
            NotificationEvent.FULL_EXPORT,
            "Full export completed" if succeeded else "Full export failed",
            export_id=job.export_id if job else None,
            export_time=_iso(job.export_time) if job else None,
            failure_message=job.failure_message if job else "",
        )

    # ---- incremental export ----

    def get_next_incremental_export_time(self, ctx: CycleContext) -> ExportWindow:
        if ctx.watermark is None:
            raise GraphError(f"No export watermark recorded for table {ctx.table_name}")
        return self._time_manipulator(self._scheduler.now(), ctx.watermark, self._window_size_minutes)

    def set_workflow_state_to_pitr_gap(self, ctx: CycleContext) -> None:
        self._parameters.put(ParameterName.WORKFLOW_STATE, WorkflowState.PITR_GAP.value)

    def execute_incremental_export(self, ctx: CycleContext) -> ExportJob:
        window = self._require_window(ctx)
        job = self._exports.start_incremental_export(window)
        logger.info(
            "Started incremental export %s for table %s [%s, %s)",
            job.export_id, ctx.table_name,
            _iso(window.export_from_time), _iso(window.export_to_time),
        )
        return job

    def describe_incremental_export(self, ctx: CycleContext) -> ExportJob:
        if ctx.incremental_export is None:
            raise GraphError(f"No incremental export to describe for table {ctx.table_name}")
        return self._exports.describe_export(ctx.incremental_export.export_id)

    def set_last_incremental_export_time(self, ctx: CycleContext) -> None:
        window = self._require_window(ctx)
        self._parameters.put(
            ParameterName.LAST_INCREMENTAL_EXPORT_TIME, format_timestamp(window.export_to_time)
        )

    def notify_incremental_export(self, ctx: CycleContext) -> None:
        job = ctx.incremental_export
        window = ctx.window
        succeeded = bool(ctx.incremental_export_succeeded)
        self._publish(
            ctx,
            NotificationStatus.SUCCESS if succeeded else NotificationStatus.FAILED,
            NotificationEvent.INCREMENTAL_EXPORT,
            "Incremental export completed" if succeeded else "Incremental export failed",
            export_id=job.export_id if job else None,
            export_from_time=_iso(window.export_from_time) if window else None,
            export_to_time=_iso(window.export_to_time) if window else None,
            failure_message=job.failure_message if job else "",
        )

    def notify_start_time_outside_pitr_window(self, ctx: CycleContext) -> None:
        window = ctx.window
        self._publish(
            ctx,
            NotificationStatus.FAILED,
            NotificationEvent.START_TIME_OUTSIDE_PITR_WINDOW,
            "Incremental export start time is outside the PITR window; "
            f"set workflow action to {WorkflowAction.RESET_WITH_FULL_EXPORT_AGAIN} to re-baseline",
            export_from_time=_iso(window.export_from_time) if window else None,
            earliest_restorable_time=_iso(ctx.pitr.earliest_restorable_time) if ctx.pitr else None,
            error=ctx.error.message if ctx.error else None,
        )

    # ---- PITR and failures ----

    def notify_pitr_disabled(self, ctx: CycleContext) -> None:
        self._publish(
            ctx,
            NotificationStatus.FAILED,
            NotificationEvent.PITR_DISABLED,
            "Point-in-time recovery is disabled on the source table",
        )

    def notify_pitr_gap(self, ctx: CycleContext) -> None:
        self._publish(
            ctx,
            NotificationStatus.FAILED,
            NotificationEvent.PITR_GAP,
            "PITR gap found; set workflow action to "
            f"{WorkflowAction.RESET_WITH_FULL_EXPORT_AGAIN} to restart with a full export",
            last_incremental_export_time=_iso(ctx.parameters.last_incremental_export_time),
        )

    def notify_on_task_failed(self, ctx: CycleContext) -> None:
        error = ctx.error
        self._publish(
            ctx,
            NotificationStatus.FAILED,
            NotificationEvent.TASK_FAILED,
            f"Step {error.step} failed" if error else "Task failed",
            step=error.step.value if error else None,
            error_kind=error.kind.value if error else None,
            error=error.message if error else None,
        )

    # ---- helpers ----

    def _publish(self, ctx: CycleContext, status: NotificationStatus, event: NotificationEvent,
                 message: str, **details) -> None:
        notification = Notification(
            status=status,
            event=event,
            table=ctx.table_name,
            message=message,
            details={k: v for k, v in details.items() if v not in (None, "")},
        )
        self._notifier.publish(notification)

    @staticmethod
    def _require_full_export(ctx: CycleContext) -> ExportJob:
        if ctx.full_export is None:
            raise GraphError(f"No full export started for table {ctx.table_name}")
        return ctx.full_export

    @staticmethod
    def _require_window(ctx: CycleContext) -> ExportWindow:
        if ctx.window is None:
            raise GraphError(f"No export window computed for table {ctx.table_name}")
        return ctx.window
