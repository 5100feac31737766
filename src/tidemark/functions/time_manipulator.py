"""Incremental export time manipulator.

Computes the next export window from the last watermark. Also deployable as a
Lambda function through ``handler``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any

from tidemark.core.types import JsonDict
from tidemark.models.exports import ExportWindow
from tidemark.models.workflow import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def compute_export_window(
    reference_time: datetime | str,
    last_watermark: datetime | str,
    window_size_minutes: int,
) -> ExportWindow:
    """Return the window starting at ``last_watermark`` and spanning ``window_size_minutes``.

    ``reference_time`` is recorded on the window so callers can tell whether
    the window has closed yet. Naive datetimes are treated as UTC.
    """
    reference = parse_timestamp(reference_time)
    watermark = parse_timestamp(last_watermark)
    if reference is None:
        raise ValueError(f"Invalid reference time: {reference_time!r}")
    if watermark is None:
        raise ValueError(f"Invalid last export time: {last_watermark!r}")
    if window_size_minutes <= 0:
        raise ValueError(f"Window size must be positive, got {window_size_minutes}")

    return ExportWindow(
        export_from_time=watermark,
        export_to_time=watermark + timedelta(minutes=window_size_minutes),
        reference_time=reference,
    )


def handler(event: JsonDict, context: Any = None) -> JsonDict:
    """Lambda entry point.

    Event keys: ``lastExportTime``, ``windowSizeInMinutes`` and optionally
    ``referenceTime`` (defaults to the invocation time).
    """
    reference_time = event.get("referenceTime") or datetime.now().astimezone()
    window = compute_export_window(
        reference_time,
        event["lastExportTime"],
        int(event["windowSizeInMinutes"]),
    )
    result = {
        "exportFromTime": format_timestamp(window.export_from_time),
        "exportToTime": format_timestamp(window.export_to_time),
        "exportNeeded": window.export_needed,
    }
    logger.info(json.dumps(result))
    return result
