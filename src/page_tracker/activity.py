"""Turns raw host events and heartbeats into a single activity signal."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import HostUnavailable
from .host import HostEnvironment, Viewport
from .models import ActivitySignal, Target
from .normalization import normalize_file_name, normalize_page_name

logger = logging.getLogger(__name__)


class ActivityAggregator:
    """Answers "was there user activity since the last check"."""

    def __init__(self, host: HostEnvironment) -> None:
        self._host = host
        self._pending_event_at: Optional[int] = None
        self._last_viewport: Optional[Viewport] = None
        self.last_activity_time: Optional[int] = None

    def note_event(self, at: int) -> None:
        """Record an explicit activity event to be reported on the next tick."""
        if self._pending_event_at is None or at > self._pending_event_at:
            self._pending_event_at = at

    def read_target(self) -> Target:
        try:
            return Target(
                str(self._host.current_file_id()),
                str(self._host.current_page_id()),
                normalize_file_name(self._host.current_file_name()),
                normalize_page_name(self._host.current_page_name()),
            )
        except HostUnavailable:
            raise
        except Exception as exc:
            raise HostUnavailable(f"Host state unreadable: {exc}") from exc

    def observe_tick(self, now: int, known_target: Optional[Target] = None) -> ActivitySignal:
        signal = self._observe(now, known_target)
        if signal.occurred:
            self.last_activity_time = signal.at_time
        return signal

    def _observe(self, now: int, known_target: Optional[Target]) -> ActivitySignal:
        if self._pending_event_at is not None:
            at = self._pending_event_at
            self._pending_event_at = None
            return ActivitySignal(True, min(at, now), explicit=True)

        try:
            current = self.read_target()
            has_selection = bool(self._host.has_selection())
            viewport = self._host.viewport()
        except Exception as exc:
            # Covers HostUnavailable from read_target and raw host errors alike.
            logger.debug("Activity check skipped; host unavailable: %s", exc)
            return ActivitySignal(False, now)

        if known_target is not None and not current.same_place(known_target):
            return ActivitySignal(True, now, explicit=True)

        viewport_moved = (
            viewport is not None
            and self._last_viewport is not None
            and viewport != self._last_viewport
        )
        if viewport is not None:
            self._last_viewport = viewport
        if has_selection or viewport_moved:
            return ActivitySignal(True, now, explicit=False)
        return ActivitySignal(False, now)
