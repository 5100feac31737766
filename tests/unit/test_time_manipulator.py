"""Tests for the incremental export time manipulator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.fakes import utc_datetime
from tidemark.functions.time_manipulator import compute_export_window, handler


class TestComputeExportWindow:
    def test_window_starts_at_watermark(self):
        watermark = utc_datetime(2026, 1, 1, 0, 0)
        window = compute_export_window(utc_datetime(2026, 1, 1, 1, 0), watermark, 15)
        assert window.export_from_time == watermark
        assert window.export_to_time == watermark + timedelta(minutes=15)
        assert window.export_needed

    def test_not_needed_while_window_is_open(self):
        window = compute_export_window(
            utc_datetime(2026, 1, 1, 0, 10), utc_datetime(2026, 1, 1, 0, 0), 15,
        )
        assert not window.export_needed

    def test_needed_exactly_at_window_end(self):
        window = compute_export_window(
            utc_datetime(2026, 1, 1, 0, 15), utc_datetime(2026, 1, 1, 0, 0), 15,
        )
        assert window.export_needed

    def test_accepts_iso_strings(self):
        window = compute_export_window("2026-01-01T02:00:00+00:00", "2026-01-01T00:00:00Z", 60)
        assert window.export_to_time == utc_datetime(2026, 1, 1, 1, 0)

    def test_rejects_unparseable_watermark(self):
        with pytest.raises(ValueError, match="last export time"):
            compute_export_window(utc_datetime(2026, 1, 1), "not-a-time", 15)

    def test_rejects_non_positive_window(self):
        with pytest.raises(ValueError):
            compute_export_window(utc_datetime(2026, 1, 1), utc_datetime(2026, 1, 1), 0)


class TestHandler:
    def test_returns_window_fields(self):
        result = handler({
            "lastExportTime": "2026-01-01T00:00:00+00:00",
            "windowSizeInMinutes": "15",
            "referenceTime": "2026-01-01T00:05:00+00:00",
        })
        assert result == {
            "exportFromTime": "2026-01-01T00:00:00+00:00",
            "exportToTime": "2026-01-01T00:15:00+00:00",
            "exportNeeded": False,
        }

    def test_defaults_reference_time_to_now(self):
        result = handler({"lastExportTime": "2020-01-01T00:00:00+00:00", "windowSizeInMinutes": 15})
        assert result["exportNeeded"] is True
