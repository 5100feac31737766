"""Export service models: PITR status, export jobs and export windows."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel


class ExportStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ExportType(StrEnum):
    FULL_EXPORT = "FULL_EXPORT"
    INCREMENTAL_EXPORT = "INCREMENTAL_EXPORT"


class PitrStatus(BaseModel):
    """Point-in-time recovery description of the source table."""

    enabled: bool
    earliest_restorable_time: Optional[datetime] = None
    latest_restorable_time: Optional[datetime] = None


class ExportJob(BaseModel):
    """An export started on the export service; only kept while it is polled."""

    export_id: str
    export_type: ExportType
    status: ExportStatus = ExportStatus.IN_PROGRESS
    export_time: Optional[datetime] = None  # point in time of a full export
    failure_message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExportStatus.COMPLETED, ExportStatus.FAILED)


class ExportWindow(BaseModel):
    """Half-open export range [export_from_time, export_to_time)."""

    export_from_time: datetime
    export_to_time: datetime
    reference_time: Optional[datetime] = None  # "now" used when the window was computed

    @property
    def export_needed(self) -> bool:
        """A window can only be exported once it has fully closed."""
        if self.reference_time is None:
            return True
        return self.export_to_time <= self.reference_time
