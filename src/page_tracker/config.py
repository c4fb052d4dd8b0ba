"""Configuration models and helpers for the page tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


def to_ms(value: timedelta) -> int:
    return int(value.total_seconds() * 1000)


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the tracking state machine and its driver."""

    file_check_interval: timedelta = timedelta(seconds=1)
    activity_check_interval: timedelta = timedelta(seconds=5)
    save_interval: timedelta = timedelta(seconds=60)
    remote_sync_interval: timedelta = timedelta(minutes=5)
    notification_interval: timedelta = timedelta(minutes=30)
    inactivity_threshold: timedelta = timedelta(seconds=5)
    auto_start_threshold: timedelta = timedelta(seconds=2)
    remote_timeout: timedelta = timedelta(seconds=10)
    daily_reset_hour: Optional[int] = None

    @classmethod
    def from_intervals(
        cls,
        inactivity_seconds: float,
        save_seconds: float | None = None,
        remote_sync_minutes: float | None = None,
        notification_minutes: float | None = None,
        daily_reset_hour: int | None = None,
    ) -> "TrackerSettings":
        defaults = cls()
        save = (
            timedelta(seconds=save_seconds)
            if save_seconds is not None
            else defaults.save_interval
        )
        remote_sync = (
            timedelta(minutes=remote_sync_minutes)
            if remote_sync_minutes is not None
            else defaults.remote_sync_interval
        )
        notification = (
            timedelta(minutes=notification_minutes)
            if notification_minutes is not None
            else defaults.notification_interval
        )
        if daily_reset_hour is not None and not 0 <= daily_reset_hour <= 23:
            raise ValueError("daily_reset_hour must be between 0 and 23")
        return cls(
            inactivity_threshold=timedelta(seconds=inactivity_seconds),
            save_interval=save,
            remote_sync_interval=remote_sync,
            notification_interval=notification,
            daily_reset_hour=daily_reset_hour,
        )

    @property
    def inactivity_threshold_ms(self) -> int:
        return to_ms(self.inactivity_threshold)

    @property
    def auto_start_threshold_ms(self) -> int:
        return to_ms(self.auto_start_threshold)

    @property
    def remote_sync_interval_ms(self) -> int:
        return to_ms(self.remote_sync_interval)

    @property
    def notification_interval_ms(self) -> int:
        return to_ms(self.notification_interval)
