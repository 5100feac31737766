"""Named steps of the export lifecycle graph and the cycle outcome enums."""

from __future__ import annotations

from enum import StrEnum


class Step(StrEnum):
    # Entry and PITR checks
    GET_PARAMETERS = "GetParameters"
    CHECK_WORKFLOW_ACTION = "CheckWorkflowAction"
    ENSURE_TABLE_EXISTS = "EnsureTableExists"
    DESCRIBE_CONTINUOUS_BACKUPS = "DescribeContinuousBackups"
    CHECK_PITR_ENABLED = "CheckPitrEnabled"
    CHOOSE_EXPORT_PATH = "ChooseExportPath"
    NOTIFY_PITR_DISABLED = "NotifyPitrDisabled"
    NOTIFY_PITR_GAP = "NotifyPitrGap"

    # Full export path
    EXECUTE_FULL_EXPORT = "ExecuteFullExport"
    SET_FULL_EXPORT_TIME = "SetFullExportTime"
    SET_WORKFLOW_ACTION_TO_RUN = "SetWorkflowActionToRun"
    SET_WORKFLOW_STATE_TO_NORMAL = "SetWorkflowStateToNormal"
    SET_WORKFLOW_INITIATED_PENDING = "SetWorkflowInitiatedPending"
    DELETE_LAST_INCREMENTAL_EXPORT_TIME = "DeleteLastIncrementalExportTime"
    DESCRIBE_FULL_EXPORT = "DescribeFullExport"
    CHECK_FULL_EXPORT_STATUS = "CheckFullExportStatus"
    WAIT_FOR_FULL_EXPORT = "WaitForFullExport"
    MARK_WORKFLOW_INITIATED_TRUE = "MarkWorkflowInitiatedTrue"
    MARK_WORKFLOW_INITIATED_FALSE = "MarkWorkflowInitiatedFalse"
    SET_WORKFLOW_INITIATED = "SetWorkflowInitiated"
    NOTIFY_FULL_EXPORT = "NotifyFullExport"
    CHECK_FULL_EXPORT_OUTCOME = "CheckFullExportOutcome"

    # Incremental export path
    USE_LAST_INCREMENTAL_EXPORT_TIME = "UseLastIncrementalExportTime"
    USE_FULL_EXPORT_TIME = "UseFullExportTime"
    GET_NEXT_INCREMENTAL_EXPORT_TIME = "GetNextIncrementalExportTime"
    CHECK_INCREMENTAL_EXPORT_NEEDED = "CheckIncrementalExportNeeded"
    CHECK_EARLIEST_RESTORE_TIME = "CheckEarliestRestoreTime"
    SET_WORKFLOW_STATE_TO_PITR_GAP = "SetWorkflowStateToPitrGap"
    NOTIFY_START_TIME_OUTSIDE_PITR_WINDOW = "NotifyStartTimeOutsidePitrWindow"
    EXECUTE_INCREMENTAL_EXPORT = "ExecuteIncrementalExport"
    DESCRIBE_INCREMENTAL_EXPORT = "DescribeIncrementalExport"
    CHECK_INCREMENTAL_EXPORT_STATUS = "CheckIncrementalExportStatus"
    WAIT_FOR_INCREMENTAL_EXPORT = "WaitForIncrementalExport"
    SET_LAST_INCREMENTAL_EXPORT_TIME = "SetLastIncrementalExportTime"
    MARK_INCREMENTAL_EXPORT_SUCCEEDED = "MarkIncrementalExportSucceeded"
    MARK_INCREMENTAL_EXPORT_FAILED = "MarkIncrementalExportFailed"
    NOTIFY_INCREMENTAL_EXPORT = "NotifyIncrementalExport"
    CHECK_INCREMENTAL_EXPORT_OUTCOME = "CheckIncrementalExportOutcome"

    # Catch-all
    NOTIFY_ON_TASK_FAILED = "NotifyOnTaskFailed"

    # Terminals
    WORKFLOW_PAUSED = "WorkflowPaused"
    PITR_DISABLED_FAIL = "PitrDisabledFail"
    PITR_GAP_FOUND = "PitrGapFound"
    FULL_EXPORT_SUCCEEDED = "FullExportSucceeded"
    FULL_EXPORT_FAILED = "FullExportFailed"
    INCREMENTAL_EXPORT_NOT_NEEDED = "IncrementalExportNotNeeded"
    INCREMENTAL_EXPORT_SUCCEEDED = "IncrementalExportSucceeded"
    INCREMENTAL_EXPORT_FAILED = "IncrementalExportFailed"
    START_TIME_OUTSIDE_PITR_WINDOW = "StartTimeOutsidePitrWindow"
    TASK_FAILED = "TaskFailed"
    CYCLE_SKIPPED = "CycleSkipped"


class ExportPath(StrEnum):
    """The single branch a cycle takes after reading its parameters."""

    PAUSED = "PAUSED"
    PITR_DISABLED = "PITR_DISABLED"
    PITR_GAP = "PITR_GAP"
    FULL_EXPORT = "FULL_EXPORT"
    RESUME_FULL_EXPORT = "RESUME_FULL_EXPORT"
    INCREMENTAL_EXPORT = "INCREMENTAL_EXPORT"


class CycleStatus(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
