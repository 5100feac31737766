"""Export lifecycle controller: drives one table's graph from entry to a terminal step."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from functools import partial
from typing import Callable

from tidemark.core.config import AppSettings, ExportConfig
from tidemark.core.deployment import TableDeployment
from tidemark.core.exceptions import ErrorKind, classify
from tidemark.core.protocols import (
    ICycleLease,
    IExportService,
    INotifier,
    IParameterStore,
    IScheduler,
)
from tidemark.functions.time_manipulator import compute_export_window
from tidemark.models.cycle import CycleContext, CycleError, CycleOutcome
from tidemark.orchestration.actions import ExportActions, TimeManipulator
from tidemark.orchestration.graph import (
    Graph,
    TaskNode,
    TerminalNode,
    WaitNode,
    build_export_graph,
)
from tidemark.orchestration.retry import call_with_retries
from tidemark.orchestration.steps import CycleStatus, Step
from tidemark.orchestration.transitions import Advance, Event, TaskFailed, TaskSucceeded, transition
from tidemark.persistence.memory_backend import NullCycleLease
from tidemark.persistence.parameters import WorkflowParameterRepository

logger = logging.getLogger(__name__)

ENTRY_STEP = Step.GET_PARAMETERS
# A full export of a very large table can take a day of five-minute polls.
MAX_TRANSITIONS = 25_000

_FAILURE_STEPS = (Step.NOTIFY_ON_TASK_FAILED, Step.TASK_FAILED)


class ExportLifecycleController:
    """Runs export cycles for a single source table.

    One call to ``run_cycle`` walks the graph from ``GET_PARAMETERS`` to a
    terminal step. Task steps run through their retry policies; failures
    that escape them are routed by the graph's catches.
    """

    def __init__(
        self,
        *,
        table_name: str,
        parameters: IParameterStore,
        exports: IExportService,
        notifier: INotifier,
        scheduler: IScheduler,
        export_config: ExportConfig | None = None,
        lease: ICycleLease | None = None,
        lease_ttl_seconds: int = 21600,
        time_manipulator: TimeManipulator = compute_export_window,
        graph: Graph | None = None,
        max_transitions: int = MAX_TRANSITIONS,
    ) -> None:
        self._config = export_config or ExportConfig()
        self._table_name = table_name
        self._scheduler = scheduler
        self._lease = lease or NullCycleLease()
        self._lease_ttl_seconds = lease_ttl_seconds
        self._graph = graph or build_export_graph(self._config)
        self._max_transitions = max_transitions
        self._actions = ExportActions(
            parameters=WorkflowParameterRepository(parameters, table_name),
            exports=exports,
            notifier=notifier,
            scheduler=scheduler,
            window_size_minutes=self._config.window_size_minutes,
            time_manipulator=time_manipulator,
        )

    @property
    def table_name(self) -> str:
        return self._table_name

    def run_cycle(self) -> CycleOutcome:
        """Run one cycle. Returns a ``CYCLE_SKIPPED`` outcome if another cycle holds the lease."""
        owner = uuid.uuid4().hex
        started_at = self._scheduler.now()
        if not self._lease.acquire(self._table_name, owner, self._lease_ttl_seconds):
            logger.info("Cycle for table %s skipped: another cycle is running", self._table_name)
            return CycleOutcome(
                table_name=self._table_name,
                terminal=Step.CYCLE_SKIPPED,
                status=CycleStatus.SKIPPED,
                started_at=started_at,
                finished_at=started_at,
            )
        try:
            return self._run(owner, started_at)
        finally:
            self._lease.release(self._table_name, owner)

    def _run(self, owner: str, started_at: datetime) -> CycleOutcome:
        ctx = CycleContext(table_name=self._table_name, started_at=started_at)
        step = ENTRY_STEP
        visited: list[Step] = []
        limit_reached = False

        while not isinstance(self._graph[step], TerminalNode):
            visited.append(step)
            if len(visited) > self._max_transitions and not limit_reached:
                logger.error(
                    "Cycle for table %s exceeded %d transitions at %s",
                    self._table_name, self._max_transitions, step,
                )
                limit_reached = True
                ctx = ctx.with_updates(error=CycleError(
                    step=step,
                    kind=ErrorKind.UNCLASSIFIED,
                    message=f"Transition limit reached at {step}",
                ))
                step = Step.NOTIFY_ON_TASK_FAILED
                continue

            event = self._execute(step, owner, ctx)
            next_step, ctx = transition(self._graph, step, event, ctx)
            if isinstance(event, TaskFailed):
                level = logging.ERROR if next_step in _FAILURE_STEPS else logging.INFO
                logger.log(
                    level, "%s failed for table %s (%s): %s; continuing at %s",
                    step, self._table_name, event.kind, event.message, next_step,
                )
            logger.debug("%s: %s -> %s", self._table_name, step, next_step)
            step = next_step

        visited.append(step)
        node = self._graph[step]
        outcome = CycleOutcome(
            table_name=self._table_name,
            terminal=step,
            status=node.status,
            path=node.path,
            steps=visited,
            error=ctx.error,
            started_at=started_at,
            finished_at=self._scheduler.now(),
        )
        logger.info(
            "Cycle for table %s finished at %s (%s)", self._table_name, step, outcome.status,
        )
        return outcome

    def _execute(self, step: Step, owner: str, ctx: CycleContext) -> Event:
        node = self._graph[step]
        if isinstance(node, TaskNode):
            action = getattr(self._actions, node.action)
            try:
                output = call_with_retries(
                    partial(action, ctx),
                    node.retries,
                    sleep=self._scheduler.sleep,
                    label=f"{self._table_name}:{step}",
                )
            except Exception as exc:
                return TaskFailed(classify(exc), str(exc))
            return TaskSucceeded(output)
        if isinstance(node, WaitNode):
            self._scheduler.sleep(node.seconds)
            if not self._lease.renew(self._table_name, owner, self._lease_ttl_seconds):
                logger.warning("Lost cycle lease for table %s while waiting", self._table_name)
        return Advance()


ControllerFactory = Callable[[TableDeployment], ExportLifecycleController]


def build_controller(
    deployment: TableDeployment,
    settings: AppSettings,
    *,
    parameters: IParameterStore,
    exports: IExportService,
    notifier: INotifier,
    scheduler: IScheduler,
    lease: ICycleLease | None = None,
) -> ExportLifecycleController:
    """Wire a controller for ``deployment`` from settings and collaborators."""
    return ExportLifecycleController(
        table_name=deployment.table_name,
        parameters=parameters,
        exports=exports,
        notifier=notifier,
        scheduler=scheduler,
        export_config=settings.export,
        lease=lease,
        lease_ttl_seconds=settings.redis.lease_ttl_seconds,
    )
