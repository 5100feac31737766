"""Per-table deployment plan and trigger schedule derived from settings."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from pydantic import BaseModel

from tidemark.core.config import AppSettings
from tidemark.core.exceptions import ConfigurationError

FLEXIBLE_WINDOW_MINUTES = 15
MAXIMUM_RETRY_ATTEMPTS = 1
SHORT_NAME_THRESHOLD = 10


class ScheduleSpec(BaseModel):
    """Periodic trigger of the export cycle.

    The trigger runs three times per export window so a stopped schedule can
    catch up quickly.
    """

    rate_minutes: int
    flexible_window_minutes: int = FLEXIBLE_WINDOW_MINUTES
    maximum_retry_attempts: int = MAXIMUM_RETRY_ATTEMPTS
    maximum_event_age_seconds: int

    @classmethod
    def for_window(cls, window_size_minutes: int) -> ScheduleSpec:
        rate = window_size_minutes // 3
        return cls(rate_minutes=rate, maximum_event_age_seconds=int(rate * 60 / 2))

    @property
    def expression(self) -> str:
        return f"rate({self.rate_minutes} minutes)"

    @property
    def description(self) -> str:
        return f"Triggers the export cycle every {self.rate_minutes} minutes"

    @property
    def period(self) -> timedelta:
        return timedelta(minutes=self.rate_minutes)

    @property
    def maximum_event_age(self) -> timedelta:
        return timedelta(seconds=self.maximum_event_age_seconds)

    def fire_time(self, origin: datetime, tick: int, rng: random.Random) -> datetime:
        """Time of the ``tick``-th trigger: on the rate grid plus a flexible-window offset."""
        jitter = rng.uniform(0, self.flexible_window_minutes * 60)
        return origin + tick * self.period + timedelta(seconds=jitter)


class TableDeployment(BaseModel):
    """Everything needed to run the export workflow for one source table."""

    table_name: str
    deployment_alias: str
    bucket_name: str
    bucket_prefix: str
    bucket_owner_account_id: str | None = None
    export_format: str
    schedule: ScheduleSpec


def short_table_name(table_name: str) -> str:
    """Last dash-separated segment for long names, lower-cased."""
    if len(table_name) > SHORT_NAME_THRESHOLD:
        return table_name.split("-")[-1].lower()
    return table_name.lower()


def build_table_deployments(settings: AppSettings) -> list[TableDeployment]:
    """One deployment per configured source table.

    Raises:
        ConfigurationError: if no source table is configured.
    """
    export = settings.export
    tables = export.table_names
    if not tables:
        raise ConfigurationError("Source DynamoDB table name must be supplied")

    schedule = ScheduleSpec.for_window(export.window_size_minutes)
    prefix = export.bucket_prefix.rstrip("/")
    return [
        TableDeployment(
            table_name=table,
            deployment_alias=f"{export.deployment_alias}-{short_table_name(table)}",
            bucket_name=export.bucket_name,
            bucket_prefix=f"{prefix}/{table}" if prefix else table,
            bucket_owner_account_id=export.bucket_owner_account_id,
            export_format=export.export_format,
            schedule=schedule,
        )
        for table in tables
    ]
