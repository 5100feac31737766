"""End-to-end cycles of the export lifecycle controller against in-memory backends."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.fakes import (
    MemoryCycleLease,
    MemoryExportService,
    MemoryNotifier,
    MemoryParameterStore,
    SimulatedScheduler,
    utc_datetime,
)
from tidemark.core.config import ExportConfig
from tidemark.core.exceptions import (
    ExportServiceError,
    InvalidExportTimeError,
    ParameterNotFoundError,
    SdkClientError,
)
from tidemark.models.cycle import NotificationEvent, NotificationStatus
from tidemark.models.exports import ExportStatus, ExportType
from tidemark.models.workflow import (
    ParameterName,
    WorkflowAction,
    WorkflowInitiated,
    WorkflowState,
    format_timestamp,
    parameter_key,
)
from tidemark.orchestration.controller import ExportLifecycleController
from tidemark.orchestration.steps import CycleStatus, ExportPath, Step

TABLE = "orders"
T0 = utc_datetime(2026, 1, 1, 0, 0)


def key(name: ParameterName) -> str:
    return parameter_key(TABLE, name)


class Harness:
    def __init__(self, values=None, *, lease=None, **export_kwargs):
        self.store = MemoryParameterStore(values)
        self.exports = MemoryExportService(TABLE, **export_kwargs)
        self.notifier = MemoryNotifier()
        self.scheduler = SimulatedScheduler(T0)
        self.controller = ExportLifecycleController(
            table_name=TABLE,
            parameters=self.store,
            exports=self.exports,
            notifier=self.notifier,
            scheduler=self.scheduler,
            export_config=ExportConfig(window_size_minutes=15),
            lease=lease,
        )

    def run(self):
        return self.controller.run_cycle()

    def param(self, name: ParameterName):
        return self.store.values.get(key(name))

    def events(self):
        return [(n.status, n.event) for n in self.notifier.published]


def initiated_values(full_export_time=T0, last_incremental=None, **extra):
    values = {
        key(ParameterName.WORKFLOW_ACTION): WorkflowAction.RUN.value,
        key(ParameterName.WORKFLOW_STATE): WorkflowState.NORMAL.value,
        key(ParameterName.WORKFLOW_INITIATED): WorkflowInitiated.TRUE.value,
        key(ParameterName.FULL_EXPORT_TIME): format_timestamp(full_export_time),
        key(ParameterName.FULL_EXPORT_ID): "arn:full/1",
    }
    if last_incremental is not None:
        values[key(ParameterName.LAST_INCREMENTAL_EXPORT_TIME)] = (
            last_incremental if isinstance(last_incremental, str) else format_timestamp(last_incremental)
        )
    values.update(extra)
    return values


class TestEntry:
    def test_paused_workflow_does_nothing(self):
        h = Harness({key(ParameterName.WORKFLOW_ACTION): WorkflowAction.PAUSE.value})
        outcome = h.run()
        assert outcome.terminal is Step.WORKFLOW_PAUSED
        assert outcome.path is ExportPath.PAUSED
        assert outcome.succeeded
        assert h.exports.started == []
        assert h.notifier.published == []
        assert h.store.writes == []

    def test_pitr_disabled_notifies_and_fails(self):
        h = Harness(pitr_enabled=False)
        outcome = h.run()
        assert outcome.terminal is Step.PITR_DISABLED_FAIL
        assert outcome.status is CycleStatus.FAILED
        assert h.events() == [(NotificationStatus.FAILED, NotificationEvent.PITR_DISABLED)]
        assert h.exports.started == []

    def test_missing_table_fails_through_catch_all(self):
        h = Harness(table_exists=False)
        outcome = h.run()
        assert outcome.terminal is Step.TASK_FAILED
        assert outcome.error.step is Step.ENSURE_TABLE_EXISTS
        assert h.events() == [(NotificationStatus.FAILED, NotificationEvent.TASK_FAILED)]


class TestFullExport:
    def test_first_run_takes_full_export(self):
        h = Harness()
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert outcome.path is ExportPath.FULL_EXPORT
        assert [j.export_type for j in h.exports.started] == [ExportType.FULL_EXPORT]
        assert h.param(ParameterName.FULL_EXPORT_TIME) == format_timestamp(T0)
        assert h.param(ParameterName.FULL_EXPORT_ID) == h.exports.started[0].export_id
        assert h.param(ParameterName.WORKFLOW_ACTION) == WorkflowAction.RUN.value
        assert h.param(ParameterName.WORKFLOW_STATE) == WorkflowState.NORMAL.value
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.TRUE.value
        assert h.events() == [(NotificationStatus.SUCCESS, NotificationEvent.FULL_EXPORT)]

    def test_initiated_flag_is_pending_until_completion(self):
        h = Harness()
        h.run()
        initiated_writes = [v for k, v in h.store.writes if k == key(ParameterName.WORKFLOW_INITIATED)]
        assert initiated_writes == [WorkflowInitiated.PENDING.value, WorkflowInitiated.TRUE.value]

    def test_polls_until_export_completes(self):
        h = Harness(polls_until_complete=2)
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert h.scheduler.sleeps == [300, 300]
        assert outcome.steps.count(Step.WAIT_FOR_FULL_EXPORT) == 2

    def test_failed_export_marks_not_initiated(self):
        h = Harness(final_status=ExportStatus.FAILED)
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_FAILED
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.FALSE.value
        assert h.events() == [(NotificationStatus.FAILED, NotificationEvent.FULL_EXPORT)]

    def test_not_initiated_never_runs_incremental(self):
        values = initiated_values(
            last_incremental=T0 + timedelta(hours=1),
            **{key(ParameterName.WORKFLOW_INITIATED): WorkflowInitiated.FALSE.value},
        )
        h = Harness(values)
        h.scheduler.advance(timedelta(days=1))
        outcome = h.run()
        assert outcome.path is ExportPath.FULL_EXPORT
        assert h.exports.incremental_windows == []
        assert key(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) not in h.store.values

    def test_resumes_in_flight_full_export(self):
        h = Harness(polls_until_complete=5)
        h.exports.fail_next("describe_export", ExportServiceError("describe unavailable"))
        first = h.run()
        assert first.terminal is Step.TASK_FAILED
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.PENDING.value

        second = h.run()
        assert second.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert Step.EXECUTE_FULL_EXPORT not in second.steps
        assert Step.DESCRIBE_FULL_EXPORT in second.steps
        assert Step.SET_WORKFLOW_ACTION_TO_RUN in second.steps
        assert len(h.exports.started) == 1

    def test_reset_after_pitr_gap_restarts_with_full_export(self):
        values = initiated_values(
            last_incremental=T0,
            **{
                key(ParameterName.WORKFLOW_STATE): WorkflowState.PITR_GAP.value,
                key(ParameterName.WORKFLOW_ACTION): WorkflowAction.RESET_WITH_FULL_EXPORT_AGAIN.value,
            },
        )
        h = Harness(values)
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert h.param(ParameterName.WORKFLOW_STATE) == WorkflowState.NORMAL.value
        assert h.param(ParameterName.WORKFLOW_ACTION) == WorkflowAction.RUN.value
        assert key(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) not in h.store.values

    # puts of a first full export: 1 id, 2 initiated, 3 time, 4 action, 5 state
    def test_missing_action_marker_skips_state_write(self):
        h = Harness()
        h.store.fail_next(
            "put", None, None, None, ParameterNotFoundError(key(ParameterName.WORKFLOW_ACTION)),
        )
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert Step.SET_WORKFLOW_INITIATED_PENDING in outcome.steps
        assert Step.SET_WORKFLOW_STATE_TO_NORMAL not in outcome.steps
        assert Step.DELETE_LAST_INCREMENTAL_EXPORT_TIME in outcome.steps
        assert h.param(ParameterName.WORKFLOW_STATE) is None
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.TRUE.value

    def test_missing_state_marker_falls_through(self):
        h = Harness()
        h.store.fail_next(
            "put", None, None, None, None, ParameterNotFoundError(key(ParameterName.WORKFLOW_STATE)),
        )
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert Step.SET_WORKFLOW_INITIATED_PENDING in outcome.steps
        assert Step.SET_WORKFLOW_STATE_TO_NORMAL in outcome.steps
        assert Step.DELETE_LAST_INCREMENTAL_EXPORT_TIME in outcome.steps
        assert h.param(ParameterName.WORKFLOW_ACTION) == WorkflowAction.RUN.value
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.TRUE.value

    def test_initiated_flag_is_cleared_before_full_export_time_is_written(self):
        h = Harness()
        h.run()
        written = [k for k, _ in h.store.writes]
        assert written.index(key(ParameterName.WORKFLOW_INITIATED)) < written.index(
            key(ParameterName.FULL_EXPORT_TIME)
        )


class TestIncrementalExport:
    def test_exports_next_window_from_last_watermark(self):
        last = T0 + timedelta(minutes=30)
        h = Harness(initiated_values(last_incremental=last))
        h.scheduler.advance(timedelta(hours=1))
        outcome = h.run()
        assert outcome.terminal is Step.INCREMENTAL_EXPORT_SUCCEEDED
        window = h.exports.incremental_windows[0]
        assert window.export_from_time == last
        assert window.export_to_time == last + timedelta(minutes=15)
        assert h.param(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) == format_timestamp(window.export_to_time)
        assert h.events() == [(NotificationStatus.SUCCESS, NotificationEvent.INCREMENTAL_EXPORT)]

    @pytest.mark.parametrize("last_incremental", [None, "garbage", T0 - timedelta(hours=1)])
    def test_invalid_watermark_falls_back_to_full_export_time(self, last_incremental):
        h = Harness(initiated_values(last_incremental=last_incremental))
        h.scheduler.advance(timedelta(hours=1))
        outcome = h.run()
        assert Step.USE_FULL_EXPORT_TIME in outcome.steps
        assert h.exports.incremental_windows[0].export_from_time == T0

    def test_open_window_is_not_exported(self):
        h = Harness(initiated_values())
        h.scheduler.advance(timedelta(minutes=10))
        outcome = h.run()
        assert outcome.terminal is Step.INCREMENTAL_EXPORT_NOT_NEEDED
        assert outcome.succeeded
        assert h.exports.started == []
        assert h.notifier.published == []

    def test_start_before_earliest_restore_time_sets_pitr_gap(self):
        h = Harness(initiated_values(), earliest_restorable_time=T0 + timedelta(minutes=5))
        h.scheduler.advance(timedelta(hours=1))
        outcome = h.run()
        assert outcome.terminal is Step.START_TIME_OUTSIDE_PITR_WINDOW
        assert h.param(ParameterName.WORKFLOW_STATE) == WorkflowState.PITR_GAP.value
        assert h.exports.started == []
        assert h.events() == [
            (NotificationStatus.FAILED, NotificationEvent.START_TIME_OUTSIDE_PITR_WINDOW),
        ]

    def test_next_cycle_after_gap_only_notifies(self):
        h = Harness(initiated_values(), earliest_restorable_time=T0 + timedelta(minutes=5))
        h.scheduler.advance(timedelta(hours=1))
        h.run()
        outcome = h.run()
        assert outcome.terminal is Step.PITR_GAP_FOUND
        assert h.events()[-1] == (NotificationStatus.FAILED, NotificationEvent.PITR_GAP)

    def test_repeated_invalid_export_time_becomes_pitr_gap(self):
        h = Harness(initiated_values())
        h.scheduler.advance(timedelta(hours=1))
        h.exports.fail_next(
            "start_incremental_export",
            *[InvalidExportTimeError("export time in the future") for _ in range(3)],
        )
        outcome = h.run()
        assert outcome.terminal is Step.START_TIME_OUTSIDE_PITR_WINDOW
        assert h.scheduler.sleeps == [60, 60]
        assert h.param(ParameterName.WORKFLOW_STATE) == WorkflowState.PITR_GAP.value
        assert h.exports.started == []

    def test_invalid_export_time_race_resolves_on_retry(self):
        h = Harness(initiated_values())
        h.scheduler.advance(timedelta(hours=1))
        h.exports.fail_next("start_incremental_export", InvalidExportTimeError("export time in the future"))
        outcome = h.run()
        assert outcome.terminal is Step.INCREMENTAL_EXPORT_SUCCEEDED
        assert h.scheduler.sleeps == [60]

    def test_failed_export_keeps_watermark(self):
        h = Harness(initiated_values(), final_status=ExportStatus.FAILED)
        h.scheduler.advance(timedelta(hours=1))
        outcome = h.run()
        assert outcome.terminal is Step.INCREMENTAL_EXPORT_FAILED
        assert h.param(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) is None
        assert h.events() == [(NotificationStatus.FAILED, NotificationEvent.INCREMENTAL_EXPORT)]

    def test_waits_for_incremental_export(self):
        h = Harness(initiated_values(), polls_until_complete=1)
        h.scheduler.advance(timedelta(hours=1))
        h.run()
        assert h.scheduler.sleeps == [60]


class TestFailureHandling:
    def test_transient_sdk_errors_are_retried(self):
        h = Harness()
        h.exports.fail_next("describe_pitr", SdkClientError("reset"), SdkClientError("reset"))
        outcome = h.run()
        assert outcome.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert h.scheduler.sleeps == [2, 4]

    def test_exhausted_retries_notify_and_fail(self):
        h = Harness()
        h.exports.fail_next("describe_pitr", *[SdkClientError("down") for _ in range(4)])
        outcome = h.run()
        assert outcome.terminal is Step.TASK_FAILED
        assert outcome.error.step is Step.DESCRIBE_CONTINUOUS_BACKUPS
        assert h.scheduler.sleeps == [2, 4, 8]
        notification = h.notifier.published[-1]
        assert notification.event is NotificationEvent.TASK_FAILED
        assert notification.details["step"] == Step.DESCRIBE_CONTINUOUS_BACKUPS.value

    def test_rerun_after_failed_watermark_write_is_idempotent(self):
        h = Harness(initiated_values())
        h.scheduler.advance(timedelta(hours=1))
        h.store.fail_next("put", ExportServiceError("write rejected"))
        first = h.run()
        assert first.terminal is Step.TASK_FAILED
        assert h.param(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) is None

        second = h.run()
        assert second.terminal is Step.INCREMENTAL_EXPORT_SUCCEEDED
        first_window, second_window = h.exports.incremental_windows
        assert first_window.export_from_time == second_window.export_from_time == T0

    @pytest.mark.parametrize("failing_put", [1, 2, 3, 4, 5])
    def test_interrupted_reset_never_exports_from_unconfirmed_baseline(self, failing_put):
        values = initiated_values(
            last_incremental=T0 + timedelta(minutes=15),
            **{
                key(ParameterName.WORKFLOW_STATE): WorkflowState.PITR_GAP.value,
                key(ParameterName.WORKFLOW_ACTION): WorkflowAction.RESET_WITH_FULL_EXPORT_AGAIN.value,
            },
        )
        h = Harness(values)
        h.scheduler.advance(timedelta(days=2))
        h.store.fail_next("put", *[None] * (failing_put - 1), ExportServiceError("write rejected"))

        first = h.run()
        assert first.terminal is Step.TASK_FAILED
        if h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.TRUE.value:
            assert h.param(ParameterName.FULL_EXPORT_TIME) == format_timestamp(T0)

        second = h.run()
        assert second.terminal is Step.FULL_EXPORT_SUCCEEDED
        assert h.exports.incremental_windows == []
        baseline = h.exports.started[-1]
        assert h.param(ParameterName.FULL_EXPORT_ID) == baseline.export_id
        assert h.param(ParameterName.FULL_EXPORT_TIME) == format_timestamp(baseline.export_time)
        assert h.param(ParameterName.WORKFLOW_INITIATED) == WorkflowInitiated.TRUE.value
        assert h.param(ParameterName.WORKFLOW_STATE) == WorkflowState.NORMAL.value
        assert h.param(ParameterName.WORKFLOW_ACTION) == WorkflowAction.RUN.value
        assert h.param(ParameterName.LAST_INCREMENTAL_EXPORT_TIME) is None

        h.scheduler.advance(timedelta(hours=1))
        third = h.run()
        assert third.terminal is Step.INCREMENTAL_EXPORT_SUCCEEDED
        assert h.exports.incremental_windows[0].export_from_time == baseline.export_time

    def test_notifier_failure_still_terminates(self):
        h = Harness(pitr_enabled=False)
        h.notifier.fail_next("publish", ExportServiceError("sns down"), ExportServiceError("sns down"))
        outcome = h.run()
        assert outcome.terminal is Step.TASK_FAILED

    def test_transition_limit_routes_to_failure(self):
        h = Harness(polls_until_complete=100)
        h.controller._max_transitions = 20
        outcome = h.run()
        assert outcome.terminal is Step.TASK_FAILED
        assert "Transition limit" in outcome.error.message
        assert h.notifier.published[-1].event is NotificationEvent.TASK_FAILED


class TestLease:
    def test_skips_when_another_cycle_holds_the_lease(self):
        lease = MemoryCycleLease()
        lease.acquire(TABLE, "other-cycle", 3600)
        h = Harness(lease=lease)
        outcome = h.run()
        assert outcome.terminal is Step.CYCLE_SKIPPED
        assert outcome.status is CycleStatus.SKIPPED
        assert h.store.writes == []
        assert h.exports.started == []

    def test_releases_lease_after_cycle(self):
        lease = MemoryCycleLease()
        h = Harness(lease=lease)
        h.run()
        assert lease.holder(TABLE) is None
