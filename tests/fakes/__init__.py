"""Shared test doubles: re-export memory backends plus a simulated clock."""

from __future__ import annotations

from datetime import UTC, datetime

from tidemark.orchestration.scheduler import SimulatedScheduler
from tidemark.persistence.memory_backend import (
    MemoryCycleLease,
    MemoryExportService,
    MemoryNotifier,
    MemoryParameterStore,
)


def utc_datetime(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


__all__ = [
    "MemoryCycleLease",
    "MemoryExportService",
    "MemoryNotifier",
    "MemoryParameterStore",
    "SimulatedScheduler",
    "utc_datetime",
]
