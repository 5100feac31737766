"""Declarative definition of the export lifecycle graph.

The graph is a table from ``Step`` to node. Task nodes name the side-effecting
action the controller runs and how its result is merged into the cycle
context; every other node kind is evaluated purely by ``transitions.transition``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from tidemark.core.config import ExportConfig
from tidemark.core.exceptions import ErrorKind, GraphError
from tidemark.models.cycle import CycleContext
from tidemark.models.exports import ExportStatus
from tidemark.models.workflow import WorkflowParameters
from tidemark.orchestration.retry import RetryPolicy
from tidemark.orchestration.steps import CycleStatus, ExportPath, Step

SDK_EXCEPTION_INTERVAL_SECONDS = 2
SDK_EXCEPTION_RETRY_ATTEMPTS = 3
SDK_EXCEPTION_BACKOFF_RATE = 2.0

INVALID_EXPORT_TIME_INTERVAL_SECONDS = 60
INVALID_EXPORT_TIME_RETRY_ATTEMPTS = 2

DYNAMODB_SDK_RETRY = RetryPolicy(
    errors=(ErrorKind.SDK_CLIENT,),
    interval_seconds=SDK_EXCEPTION_INTERVAL_SECONDS,
    max_attempts=SDK_EXCEPTION_RETRY_ATTEMPTS,
    backoff_rate=SDK_EXCEPTION_BACKOFF_RATE,
)

SSM_SDK_RETRY = RetryPolicy(
    errors=(ErrorKind.SDK_CLIENT, ErrorKind.THROTTLED),
    interval_seconds=SDK_EXCEPTION_INTERVAL_SECONDS,
    max_attempts=SDK_EXCEPTION_RETRY_ATTEMPTS,
    backoff_rate=SDK_EXCEPTION_BACKOFF_RATE,
)

# The window end can land a few seconds ahead of the export service's clock.
INVALID_EXPORT_TIME_RETRY = RetryPolicy(
    errors=(ErrorKind.INVALID_EXPORT_TIME,),
    interval_seconds=INVALID_EXPORT_TIME_INTERVAL_SECONDS,
    max_attempts=INVALID_EXPORT_TIME_RETRY_ATTEMPTS,
    backoff_rate=1.0,
)


@dataclass(frozen=True)
class Catch:
    """Route a failure to another step. An empty ``errors`` tuple matches everything."""

    next: Step
    errors: tuple[ErrorKind, ...] = ()

    def matches(self, kind: ErrorKind) -> bool:
        return not self.errors or kind in self.errors


CATCH_ALL = Catch(Step.NOTIFY_ON_TASK_FAILED)


@dataclass(frozen=True)
class TaskNode:
    action: str
    next: Step
    retries: tuple[RetryPolicy, ...] = ()
    catches: tuple[Catch, ...] = (CATCH_ALL,)
    apply: Optional[Callable[[CycleContext, Any], CycleContext]] = None


@dataclass(frozen=True)
class ChoiceNode:
    choose: Callable[[CycleContext], Step]


@dataclass(frozen=True)
class PassNode:
    apply: Callable[[CycleContext], CycleContext]
    next: Step


@dataclass(frozen=True)
class WaitNode:
    seconds: int
    next: Step


@dataclass(frozen=True)
class TerminalNode:
    status: CycleStatus
    path: Optional[ExportPath] = None


Node = Union[TaskNode, ChoiceNode, PassNode, WaitNode, TerminalNode]
Graph = dict[Step, Node]


# ---------------------------------------------------------------------------
# Branch selection
# ---------------------------------------------------------------------------

def select_path(parameters: WorkflowParameters, pitr_enabled: bool) -> ExportPath:
    """Pick the one branch a cycle takes, in strict priority order."""
    if parameters.is_paused:
        return ExportPath.PAUSED
    if not pitr_enabled:
        return ExportPath.PITR_DISABLED
    if parameters.full_export_running:
        return ExportPath.RESUME_FULL_EXPORT
    # must be checked before the plain PITR_GAP state
    if parameters.reset_requested:
        return ExportPath.FULL_EXPORT
    if parameters.has_pitr_gap:
        return ExportPath.PITR_GAP
    if not parameters.is_initiated:
        return ExportPath.FULL_EXPORT
    return ExportPath.INCREMENTAL_EXPORT


def _check_workflow_action(ctx: CycleContext) -> Step:
    if ctx.parameters.is_paused:
        return Step.WORKFLOW_PAUSED
    return Step.ENSURE_TABLE_EXISTS


def _check_pitr_enabled(ctx: CycleContext) -> Step:
    if ctx.pitr is not None and ctx.pitr.enabled:
        return Step.CHOOSE_EXPORT_PATH
    return Step.NOTIFY_PITR_DISABLED


def _choose_export_path(ctx: CycleContext) -> Step:
    path = select_path(ctx.parameters, pitr_enabled=True)
    if path is ExportPath.RESUME_FULL_EXPORT:
        # re-apply the marker writes an interrupted cycle may have missed
        return Step.SET_WORKFLOW_ACTION_TO_RUN
    if path is ExportPath.FULL_EXPORT:
        return Step.EXECUTE_FULL_EXPORT
    if path is ExportPath.PITR_GAP:
        return Step.NOTIFY_PITR_GAP
    if path is ExportPath.INCREMENTAL_EXPORT:
        if ctx.parameters.last_incremental_export_time_valid:
            return Step.USE_LAST_INCREMENTAL_EXPORT_TIME
        return Step.USE_FULL_EXPORT_TIME
    raise GraphError(f"Path {path} cannot be taken after PITR was found enabled")


def _check_full_export_status(ctx: CycleContext) -> Step:
    status = ctx.full_export.status if ctx.full_export else ExportStatus.IN_PROGRESS
    if status == ExportStatus.COMPLETED:
        return Step.MARK_WORKFLOW_INITIATED_TRUE
    if status == ExportStatus.FAILED:
        return Step.MARK_WORKFLOW_INITIATED_FALSE
    return Step.WAIT_FOR_FULL_EXPORT


def _check_full_export_outcome(ctx: CycleContext) -> Step:
    if ctx.workflow_initiated_result:
        return Step.FULL_EXPORT_SUCCEEDED
    return Step.FULL_EXPORT_FAILED


def _check_incremental_export_needed(ctx: CycleContext) -> Step:
    if ctx.window is None or not ctx.window.export_needed:
        return Step.INCREMENTAL_EXPORT_NOT_NEEDED
    return Step.CHECK_EARLIEST_RESTORE_TIME


def _check_earliest_restore_time(ctx: CycleContext) -> Step:
    earliest = ctx.pitr.earliest_restorable_time if ctx.pitr else None
    if earliest is not None and earliest > ctx.window.export_from_time:
        return Step.SET_WORKFLOW_STATE_TO_PITR_GAP
    return Step.EXECUTE_INCREMENTAL_EXPORT


def _check_incremental_export_status(ctx: CycleContext) -> Step:
    job = ctx.incremental_export
    status = job.status if job else ExportStatus.IN_PROGRESS
    if status == ExportStatus.COMPLETED:
        return Step.SET_LAST_INCREMENTAL_EXPORT_TIME
    if status == ExportStatus.FAILED:
        return Step.MARK_INCREMENTAL_EXPORT_FAILED
    return Step.WAIT_FOR_INCREMENTAL_EXPORT


def _check_incremental_export_outcome(ctx: CycleContext) -> Step:
    if ctx.incremental_export_succeeded:
        return Step.INCREMENTAL_EXPORT_SUCCEEDED
    return Step.INCREMENTAL_EXPORT_FAILED


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

def _store(field: str) -> Callable[[CycleContext, Any], CycleContext]:
    def apply(ctx: CycleContext, output: Any) -> CycleContext:
        return ctx.with_updates(**{field: output})

    apply.__name__ = f"store_{field}"
    return apply


def _set(**changes: Any) -> Callable[[CycleContext], CycleContext]:
    return lambda ctx: ctx.with_updates(**changes)


def _use_last_incremental_export_time(ctx: CycleContext) -> CycleContext:
    return ctx.with_updates(watermark=ctx.parameters.last_incremental_export_time)


def _use_full_export_time(ctx: CycleContext) -> CycleContext:
    return ctx.with_updates(watermark=ctx.parameters.full_export_time)


def build_export_graph(config: ExportConfig | None = None) -> Graph:
    """Build the node table for one table's export lifecycle."""
    config = config or ExportConfig()
    # WorkflowInitiated is already PENDING here, so a missing marker is skipped
    fallthrough_on_missing = Catch(
        Step.DELETE_LAST_INCREMENTAL_EXPORT_TIME, (ErrorKind.PARAMETER_NOT_FOUND,),
    )

    return {
        Step.GET_PARAMETERS: TaskNode(
            "get_parameters", Step.CHECK_WORKFLOW_ACTION,
            retries=(SSM_SDK_RETRY,), apply=_store("parameters"),
        ),
        Step.CHECK_WORKFLOW_ACTION: ChoiceNode(_check_workflow_action),
        Step.ENSURE_TABLE_EXISTS: TaskNode(
            "ensure_table_exists", Step.DESCRIBE_CONTINUOUS_BACKUPS,
            retries=(DYNAMODB_SDK_RETRY,), apply=_store("table_arn"),
        ),
        Step.DESCRIBE_CONTINUOUS_BACKUPS: TaskNode(
            "describe_continuous_backups", Step.CHECK_PITR_ENABLED,
            retries=(DYNAMODB_SDK_RETRY,), apply=_store("pitr"),
        ),
        Step.CHECK_PITR_ENABLED: ChoiceNode(_check_pitr_enabled),
        Step.NOTIFY_PITR_DISABLED: TaskNode("notify_pitr_disabled", Step.PITR_DISABLED_FAIL),
        Step.CHOOSE_EXPORT_PATH: ChoiceNode(_choose_export_path),
        Step.NOTIFY_PITR_GAP: TaskNode("notify_pitr_gap", Step.PITR_GAP_FOUND),

        # -- full export --
        Step.EXECUTE_FULL_EXPORT: TaskNode(
            "execute_full_export", Step.SET_WORKFLOW_INITIATED_PENDING,
            retries=(DYNAMODB_SDK_RETRY,), apply=_store("full_export"),
        ),
        Step.SET_WORKFLOW_INITIATED_PENDING: TaskNode(
            "set_workflow_initiated_pending", Step.SET_FULL_EXPORT_TIME,
            retries=(SSM_SDK_RETRY,),
        ),
        Step.SET_FULL_EXPORT_TIME: TaskNode(
            "set_full_export_time", Step.SET_WORKFLOW_ACTION_TO_RUN, retries=(SSM_SDK_RETRY,),
        ),
        Step.SET_WORKFLOW_ACTION_TO_RUN: TaskNode(
            "set_workflow_action_to_run", Step.SET_WORKFLOW_STATE_TO_NORMAL,
            retries=(SSM_SDK_RETRY,), catches=(fallthrough_on_missing, CATCH_ALL),
        ),
        Step.SET_WORKFLOW_STATE_TO_NORMAL: TaskNode(
            "set_workflow_state_to_normal", Step.DELETE_LAST_INCREMENTAL_EXPORT_TIME,
            retries=(SSM_SDK_RETRY,), catches=(fallthrough_on_missing, CATCH_ALL),
        ),
        Step.DELETE_LAST_INCREMENTAL_EXPORT_TIME: TaskNode(
            "delete_last_incremental_export_time", Step.DESCRIBE_FULL_EXPORT,
            retries=(SSM_SDK_RETRY,),
            catches=(Catch(Step.DESCRIBE_FULL_EXPORT, (ErrorKind.PARAMETER_NOT_FOUND,)), CATCH_ALL),
        ),
        Step.DESCRIBE_FULL_EXPORT: TaskNode(
            "describe_full_export", Step.CHECK_FULL_EXPORT_STATUS,
            retries=(DYNAMODB_SDK_RETRY,), apply=_store("full_export"),
        ),
        Step.CHECK_FULL_EXPORT_STATUS: ChoiceNode(_check_full_export_status),
        Step.WAIT_FOR_FULL_EXPORT: WaitNode(config.full_export_poll_seconds, Step.DESCRIBE_FULL_EXPORT),
        Step.MARK_WORKFLOW_INITIATED_TRUE: PassNode(
            _set(workflow_initiated_result=True), Step.SET_WORKFLOW_INITIATED,
        ),
        Step.MARK_WORKFLOW_INITIATED_FALSE: PassNode(
            _set(workflow_initiated_result=False), Step.SET_WORKFLOW_INITIATED,
        ),
        Step.SET_WORKFLOW_INITIATED: TaskNode(
            "set_workflow_initiated", Step.NOTIFY_FULL_EXPORT, retries=(SSM_SDK_RETRY,),
        ),
        Step.NOTIFY_FULL_EXPORT: TaskNode("notify_full_export", Step.CHECK_FULL_EXPORT_OUTCOME),
        Step.CHECK_FULL_EXPORT_OUTCOME: ChoiceNode(_check_full_export_outcome),

        # -- incremental export --
        Step.USE_LAST_INCREMENTAL_EXPORT_TIME: PassNode(
            _use_last_incremental_export_time, Step.GET_NEXT_INCREMENTAL_EXPORT_TIME,
        ),
        Step.USE_FULL_EXPORT_TIME: PassNode(_use_full_export_time, Step.GET_NEXT_INCREMENTAL_EXPORT_TIME),
        Step.GET_NEXT_INCREMENTAL_EXPORT_TIME: TaskNode(
            "get_next_incremental_export_time", Step.CHECK_INCREMENTAL_EXPORT_NEEDED,
            apply=_store("window"),
        ),
        Step.CHECK_INCREMENTAL_EXPORT_NEEDED: ChoiceNode(_check_incremental_export_needed),
        Step.CHECK_EARLIEST_RESTORE_TIME: ChoiceNode(_check_earliest_restore_time),
        Step.SET_WORKFLOW_STATE_TO_PITR_GAP: TaskNode(
            "set_workflow_state_to_pitr_gap", Step.NOTIFY_START_TIME_OUTSIDE_PITR_WINDOW,
            retries=(SSM_SDK_RETRY,),
        ),
        Step.NOTIFY_START_TIME_OUTSIDE_PITR_WINDOW: TaskNode(
            "notify_start_time_outside_pitr_window", Step.START_TIME_OUTSIDE_PITR_WINDOW,
        ),
        Step.EXECUTE_INCREMENTAL_EXPORT: TaskNode(
            "execute_incremental_export", Step.DESCRIBE_INCREMENTAL_EXPORT,
            retries=(INVALID_EXPORT_TIME_RETRY, DYNAMODB_SDK_RETRY),
            catches=(
                Catch(Step.SET_WORKFLOW_STATE_TO_PITR_GAP, (ErrorKind.INVALID_EXPORT_TIME,)),
                CATCH_ALL,
            ),
            apply=_store("incremental_export"),
        ),
        Step.DESCRIBE_INCREMENTAL_EXPORT: TaskNode(
            "describe_incremental_export", Step.CHECK_INCREMENTAL_EXPORT_STATUS,
            retries=(DYNAMODB_SDK_RETRY,), apply=_store("incremental_export"),
        ),
        Step.CHECK_INCREMENTAL_EXPORT_STATUS: ChoiceNode(_check_incremental_export_status),
        Step.WAIT_FOR_INCREMENTAL_EXPORT: WaitNode(
            config.incremental_export_poll_seconds, Step.DESCRIBE_INCREMENTAL_EXPORT,
        ),
        Step.SET_LAST_INCREMENTAL_EXPORT_TIME: TaskNode(
            "set_last_incremental_export_time", Step.MARK_INCREMENTAL_EXPORT_SUCCEEDED,
            retries=(SSM_SDK_RETRY,),
        ),
        Step.MARK_INCREMENTAL_EXPORT_SUCCEEDED: PassNode(
            _set(incremental_export_succeeded=True), Step.NOTIFY_INCREMENTAL_EXPORT,
        ),
        Step.MARK_INCREMENTAL_EXPORT_FAILED: PassNode(
            _set(incremental_export_succeeded=False), Step.NOTIFY_INCREMENTAL_EXPORT,
        ),
        Step.NOTIFY_INCREMENTAL_EXPORT: TaskNode(
            "notify_incremental_export", Step.CHECK_INCREMENTAL_EXPORT_OUTCOME,
        ),
        Step.CHECK_INCREMENTAL_EXPORT_OUTCOME: ChoiceNode(_check_incremental_export_outcome),

        # -- catch-all --
        Step.NOTIFY_ON_TASK_FAILED: TaskNode(
            "notify_on_task_failed", Step.TASK_FAILED, catches=(Catch(Step.TASK_FAILED),),
        ),

        # -- terminals --
        Step.WORKFLOW_PAUSED: TerminalNode(CycleStatus.SUCCEEDED, ExportPath.PAUSED),
        Step.PITR_DISABLED_FAIL: TerminalNode(CycleStatus.FAILED, ExportPath.PITR_DISABLED),
        Step.PITR_GAP_FOUND: TerminalNode(CycleStatus.FAILED, ExportPath.PITR_GAP),
        Step.FULL_EXPORT_SUCCEEDED: TerminalNode(CycleStatus.SUCCEEDED, ExportPath.FULL_EXPORT),
        Step.FULL_EXPORT_FAILED: TerminalNode(CycleStatus.FAILED, ExportPath.FULL_EXPORT),
        Step.INCREMENTAL_EXPORT_NOT_NEEDED: TerminalNode(CycleStatus.SUCCEEDED, ExportPath.INCREMENTAL_EXPORT),
        Step.INCREMENTAL_EXPORT_SUCCEEDED: TerminalNode(CycleStatus.SUCCEEDED, ExportPath.INCREMENTAL_EXPORT),
        Step.INCREMENTAL_EXPORT_FAILED: TerminalNode(CycleStatus.FAILED, ExportPath.INCREMENTAL_EXPORT),
        Step.START_TIME_OUTSIDE_PITR_WINDOW: TerminalNode(CycleStatus.FAILED, ExportPath.INCREMENTAL_EXPORT),
        Step.TASK_FAILED: TerminalNode(CycleStatus.FAILED),
    }
