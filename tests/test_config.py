from datetime import timedelta

import pytest

from page_tracker.config import TrackerSettings
from page_tracker.normalization import normalize_file_name, normalize_page_name
from page_tracker.reporting import format_duration, format_hours_minutes


def test_default_intervals():
    settings = TrackerSettings()

    assert settings.inactivity_threshold_ms == 5000
    assert settings.auto_start_threshold_ms == 2000
    assert settings.remote_sync_interval_ms == 300_000
    assert settings.notification_interval_ms == 1_800_000
    assert settings.daily_reset_hour is None


def test_from_intervals_overrides_only_given_values():
    settings = TrackerSettings.from_intervals(8.0, save_seconds=30, daily_reset_hour=4)

    assert settings.inactivity_threshold == timedelta(seconds=8)
    assert settings.save_interval == timedelta(seconds=30)
    assert settings.remote_sync_interval == timedelta(minutes=5)
    assert settings.daily_reset_hour == 4


def test_from_intervals_rejects_bad_reset_hour():
    with pytest.raises(ValueError):
        TrackerSettings.from_intervals(5.0, daily_reset_hour=24)


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "Untitled"), ("", "Untitled"), ("   ", "Untitled"), (" A \n  B ", "A B")],
)
def test_normalize_file_name(raw, expected):
    assert normalize_file_name(raw) == expected


def test_normalize_page_name_fallback():
    assert normalize_page_name(None) == "Page"


def test_duration_formats():
    assert format_duration(3661) == "01:01:01"
    assert format_hours_minutes(5_400_000) == "1h 30m"
    assert format_hours_minutes(-10) == "0h 0m"
