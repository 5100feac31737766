"""Pure transition function of the export lifecycle graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from tidemark.core.exceptions import ErrorKind, GraphError
from tidemark.models.cycle import CycleContext, CycleError
from tidemark.orchestration.graph import (
    ChoiceNode,
    Graph,
    PassNode,
    TaskNode,
    TerminalNode,
    WaitNode,
)
from tidemark.orchestration.steps import Step


@dataclass(frozen=True)
class TaskSucceeded:
    output: Any = None


@dataclass(frozen=True)
class TaskFailed:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Advance:
    """Evaluate a choice, pass or elapsed wait step."""


Event = Union[TaskSucceeded, TaskFailed, Advance]


def transition(graph: Graph, step: Step, event: Event, ctx: CycleContext) -> tuple[Step, CycleContext]:
    """Return the next step and the updated context for ``event`` at ``step``.

    Never performs I/O: task results arrive already computed in the event.
    """
    node = graph[step]

    if isinstance(node, TerminalNode):
        raise GraphError(f"{step} is terminal")

    if isinstance(node, TaskNode):
        if isinstance(event, TaskSucceeded):
            if node.apply is not None:
                ctx = node.apply(ctx, event.output)
            return node.next, ctx
        if isinstance(event, TaskFailed):
            ctx = ctx.with_updates(error=CycleError(step=step, kind=event.kind, message=event.message))
            for catch in node.catches:
                if catch.matches(event.kind):
                    return catch.next, ctx
            return Step.TASK_FAILED, ctx
        raise GraphError(f"Task step {step} expects a task result, got {event!r}")

    if not isinstance(event, Advance):
        raise GraphError(f"Step {step} only advances, got {event!r}")

    if isinstance(node, ChoiceNode):
        return node.choose(ctx), ctx
    if isinstance(node, PassNode):
        return node.next, node.apply(ctx)
    if isinstance(node, WaitNode):
        return node.next, ctx
    raise GraphError(f"Unknown node type for {step}: {type(node).__name__}")
