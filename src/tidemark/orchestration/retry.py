"""Retry policies for task steps, executed with tenacity.

Each task step declares zero or more policies. A policy matches a set of
error kinds and keeps its own attempt counter for the duration of the step,
so a transient SDK failure does not consume the budget reserved for an
export-time race and vice versa.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

from tenacity import RetryCallState, Retrying

from tidemark.core.exceptions import ErrorKind, classify

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for a set of error kinds.

    The n-th retry waits ``interval_seconds * backoff_rate ** (n - 1)``.
    """

    errors: tuple[ErrorKind, ...]
    interval_seconds: float
    max_attempts: int
    backoff_rate: float = 2.0

    def matches(self, kind: ErrorKind) -> bool:
        return kind in self.errors

    def delay(self, retry_number: int) -> float:
        return self.interval_seconds * self.backoff_rate ** (retry_number - 1)


def call_with_retries(
    fn: Callable[[], T],
    policies: Sequence[RetryPolicy],
    *,
    sleep: Callable[[float], None],
    label: str = "",
) -> T:
    """Call ``fn`` and retry it according to the first policy matching each failure.

    Failures that match no policy, or whose policy is exhausted, are re-raised
    unchanged.
    """
    if not policies:
        return fn()

    used: dict[RetryPolicy, int] = {}

    def _policy_for(retry_state: RetryCallState) -> RetryPolicy | None:
        kind = classify(retry_state.outcome.exception())
        return next((p for p in policies if p.matches(kind)), None)

    def _should_retry(retry_state: RetryCallState) -> bool:
        if not retry_state.outcome.failed:
            return False
        policy = _policy_for(retry_state)
        if policy is None or used.get(policy, 0) >= policy.max_attempts:
            return False
        used[policy] = used.get(policy, 0) + 1
        return True

    def _wait(retry_state: RetryCallState) -> float:
        policy = _policy_for(retry_state)
        return policy.delay(used[policy]) if policy is not None else 0.0

    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "Retrying %s after %s (attempt %d, sleeping %.0fs)",
            label or getattr(fn, "__name__", "task"),
            retry_state.outcome.exception(),
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    retrying = Retrying(
        retry=_should_retry,
        wait=_wait,
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(fn)
