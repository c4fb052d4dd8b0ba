"""Tracking state machine: decides when time is credited and to which page."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Union, assert_never

from .activity import ActivityAggregator
from .context import TrackerContext
from .emitter import StatusEmitter
from .errors import HostUnavailable, InvalidElapsed
from .host import (
    DocumentChanged,
    HostClosing,
    HostEnvironment,
    HostEvent,
    PageChanged,
    SelectionChanged,
)
from .ledger import TimeLedger
from .messages import (
    Command,
    GetSummary,
    Reset,
    Resize,
    SetBackgroundTracking,
    StartTracking,
    StopTracking,
    UiClosed,
    UiReady,
)
from .models import ActivitySignal, Target, TrackingSession, now_ms
from .reporting import format_hours_minutes
from .sync import PersistenceSynchronizer, RemoteLoadCompleted, RemoteSaveCompleted, SyncEvent

logger = logging.getLogger(__name__)

Event = Union[Command, HostEvent, SyncEvent]


class TrackingStateMachine:
    """Owns the tracking session and moves it between Idle and Tracking.

    Every public method takes an optional ``now`` (epoch milliseconds) so the
    driver and tests can run it against a controlled clock. Whenever tracking
    stops or the target changes, the pending elapsed delta is credited before
    any persistence call is issued.
    """

    def __init__(
        self,
        context: TrackerContext,
        host: HostEnvironment,
        synchronizer: PersistenceSynchronizer,
        emitter: StatusEmitter,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.context = context
        self.aggregator = ActivityAggregator(host)
        self.synchronizer = synchronizer
        self.emitter = emitter
        self.clock = clock
        self.closed = False
        self._streak_start: Optional[int] = None
        self._host_available = True

    @property
    def session(self) -> TrackingSession:
        return self.context.session

    @property
    def ledger(self) -> TimeLedger:
        return self.context.ledger

    @property
    def is_tracking(self) -> bool:
        return self.context.session.is_tracking

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    def initialize(self, now: Optional[int] = None) -> None:
        now = self._now(now)
        self.closed = False
        self.synchronizer.load(self.ledger, now)
        self.context.background_tracking = self.synchronizer.load_background_tracking(
            self.context.background_tracking
        )
        self.session.last_activity_time = now
        self.session.watermark = now
        logger.info(
            "Tracker initialized; background tracking %s",
            "enabled" if self.context.background_tracking else "disabled",
        )
        self.check_target(now)

    # Ticks

    def check_target(self, now: Optional[int] = None) -> None:
        """File-check tick: detect target drift, then credit elapsed time."""
        now = self._now(now)
        try:
            target = self.aggregator.read_target()
        except HostUnavailable as exc:
            self._host_lost(exc, now)
            return
        if not self._host_available:
            logger.info("Host context available again")
            self._host_available = True

        if not target.same_place(self.session.target):
            self.switch_target(target, now)
            return
        if (target.file_name, target.page_name) != (
            self.session.active_file_name,
            self.session.active_page_name,
        ):
            self.session.set_target(target)
            self.ledger.ensure_target(
                target.file_id, target.page_id, target.file_name, target.page_name, now
            )
        self._flush(now)

    def check_activity(self, now: Optional[int] = None) -> None:
        """Activity tick: consume the activity signal, then test for inactivity."""
        now = self._now(now)
        signal = self.aggregator.observe_tick(now, self.session.target)
        if signal.occurred:
            self._on_activity(signal, now)
        else:
            self._streak_start = None

        session = self.session
        idle_for = now - session.last_activity_time
        if session.is_tracking and idle_for > self.context.settings.inactivity_threshold_ms:
            logger.info("No activity for %d ms; stopping tracking", idle_for)
            self.stop(now, reason="inactivity")

    def save_tick(self, now: Optional[int] = None, *, force: bool = False) -> None:
        now = self._now(now)
        self._flush(now)
        self._maybe_daily_reset(now)
        self._persist(now, force=force)
        self.emitter.push_summary()
        self.emitter.remind(now)

    def sync_tick(self, now: Optional[int] = None) -> None:
        now = self._now(now)
        if self.synchronizer.remote is None:
            return
        self._flush(now)
        self._persist(now)

    # Transitions

    def start(self, now: Optional[int] = None) -> bool:
        now = self._now(now)
        target = self._resolve_target(now)
        if target is None:
            logger.info("Cannot start tracking before the host reports a document")
            return False
        session = self.session
        if session.is_tracking:
            return False

        self.ledger.ensure_target(
            target.file_id, target.page_id, target.file_name, target.page_name, now
        )
        session.is_tracking = True
        session.session_start_time = now
        session.watermark = now
        session.last_activity_time = max(session.last_activity_time, now)
        self._streak_start = None
        logger.info("Started tracking %s / %s", target.file_name, target.page_name)

        self.emitter.notify("started", "Started tracking time in background", now)
        self.emitter.push_status(now)
        self._persist(now)
        return True

    def stop(self, now: Optional[int] = None, *, reason: str = "command") -> bool:
        now = self._now(now)
        session = self.session
        if not session.is_tracking:
            return False

        self._flush(now)
        duration = now - (session.session_start_time or now)
        session.is_tracking = False
        session.session_start_time = None
        logger.info("Stopped tracking (%s) after %d ms", reason, duration)

        if reason == "inactivity":
            self.emitter.notify("stopped", "Stopping tracking due to inactivity", now)
        else:
            self.emitter.notify(
                "stopped",
                f"Stopped tracking. Session duration: {format_hours_minutes(duration)}",
                now,
            )
        self.emitter.push_status(now)
        self.emitter.push_summary()
        self._persist(now)
        return True

    def switch_target(self, target: Target, now: Optional[int] = None) -> None:
        now = self._now(now)
        session = self.session
        previous = session.target
        was_tracking = session.is_tracking
        if was_tracking:
            self._flush(now)

        session.set_target(target)
        self.ledger.ensure_target(
            target.file_id, target.page_id, target.file_name, target.page_name, now
        )
        logger.info("Active target is now %s / %s", target.file_name, target.page_name)
        self.emitter.push_file_changed(previous, target)

        if not was_tracking:
            return
        if self.context.background_tracking:
            session.session_start_time = now
            session.watermark = now
        else:
            session.is_tracking = False
            session.session_start_time = None
            logger.info("Target changed with background tracking off; waiting for activity")
        self.emitter.push_status(now)
        self.emitter.push_summary()
        self._persist(now)

    def reset(self, now: Optional[int] = None) -> None:
        """Discard the pending delta and zero the whole ledger."""
        now = self._now(now)
        self.session.watermark = now
        if self.session.is_tracking:
            self.session.session_start_time = now
        self.ledger.clear()
        logger.info("Ledger reset")
        self._persist(now, force=True)
        self.emitter.push_status(now)
        self.emitter.push_summary(force=True)

    def shutdown(self, now: Optional[int] = None) -> None:
        """Flush the session and save once to both tiers without waiting."""
        if self.closed:
            return
        now = self._now(now)
        self._flush(now)
        if self.session.is_tracking:
            self.session.is_tracking = False
            self.session.session_start_time = None
        self._persist(now, force=True)
        self.closed = True
        logger.info("Tracker shut down")

    # Dispatch

    def dispatch(self, event: Event, now: Optional[int] = None) -> None:
        if self.closed:
            logger.debug("Tracker closed; ignoring %s", type(event).__name__)
            return
        now = self._now(now)
        if isinstance(event, StartTracking):
            self.aggregator.note_event(now)
            self.start(now)
        elif isinstance(event, StopTracking):
            self.stop(now, reason="command")
        elif isinstance(event, GetSummary):
            self.emitter.push_summary(force=True)
        elif isinstance(event, UiReady):
            self.context.ui_visible = True
            self.emitter.push_status(now)
            self.emitter.push_summary(force=True)
        elif isinstance(event, UiClosed):
            self.context.ui_visible = False
            if self.session.is_tracking:
                self.emitter.notify(
                    "background",
                    "Time tracking continues in background. Open the tracker to stop.",
                    now,
                )
        elif isinstance(event, Resize):
            self.emitter.resize(event.width, event.height)
        elif isinstance(event, Reset):
            self.reset(now)
        elif isinstance(event, SetBackgroundTracking):
            self.context.background_tracking = event.enabled
            self.synchronizer.save_background_tracking(event.enabled)
            self.emitter.push_status(now)
        elif isinstance(event, (SelectionChanged, DocumentChanged)):
            self.aggregator.note_event(event.at)
        elif isinstance(event, PageChanged):
            self.aggregator.note_event(event.at)
            self.check_target(now)
        elif isinstance(event, HostClosing):
            self.shutdown(now)
        elif isinstance(event, RemoteSaveCompleted):
            error = self.synchronizer.handle_remote_saved(event)
            if error:
                self.emitter.persistence_failed(error, now)
        elif isinstance(event, RemoteLoadCompleted):
            if self.synchronizer.handle_remote_loaded(event, self.ledger):
                self._revalidate_target(now)
        else:
            assert_never(event)

    # Internals

    def _on_activity(self, signal: ActivitySignal, now: int) -> None:
        session = self.session
        session.last_activity_time = max(session.last_activity_time, signal.at_time)
        if session.is_tracking or not self.context.background_tracking:
            return
        if signal.explicit:
            self.start(now)
            return
        if self._streak_start is None:
            self._streak_start = signal.at_time
        if signal.at_time - self._streak_start >= self.context.settings.auto_start_threshold_ms:
            self.start(now)

    def _flush(self, now: int) -> int:
        """Credit the time since the watermark to the active page."""
        session = self.session
        if not session.is_tracking or session.target is None:
            return 0
        delta = now - session.watermark
        session.watermark = now
        try:
            if delta >= self.context.settings.inactivity_threshold_ms:
                raise InvalidElapsed(delta)
            if self.ledger.get_page(session.active_file_id, session.active_page_id) is None:
                self._ensure_active_records(now)
            self.ledger.apply_elapsed(session.active_file_id, session.active_page_id, delta, now)
        except InvalidElapsed as exc:
            logger.debug("Discarded elapsed time: %s", exc)
            return 0
        return delta

    def _resolve_target(self, now: int) -> Optional[Target]:
        try:
            target = self.aggregator.read_target()
        except HostUnavailable as exc:
            logger.debug("Using last known target; host unavailable: %s", exc)
            return self.session.target
        if not target.same_place(self.session.target):
            self.switch_target(target, now)
        return self.session.target

    def _ensure_active_records(self, now: int) -> None:
        target = self.session.target
        if target is not None:
            self.ledger.ensure_target(
                target.file_id, target.page_id, target.file_name, target.page_name, now
            )

    def _revalidate_target(self, now: int) -> None:
        self._ensure_active_records(now)
        self.emitter.push_summary()

    def _host_lost(self, exc: HostUnavailable, now: int) -> None:
        if self._host_available:
            logger.warning("Host context lost: %s", exc)
            self._host_available = False
        if self.context.background_tracking:
            return
        self.stop(now, reason="host-unavailable")

    def _persist(self, now: int, *, force: bool = False) -> bool:
        ok = self.synchronizer.save(self.ledger, now, force=force)
        if not ok:
            self.emitter.persistence_failed(
                self.synchronizer.last_error or "Local save failed", now
            )
        return ok

    def _maybe_daily_reset(self, now: int) -> None:
        reset_hour = self.context.settings.daily_reset_hour
        if reset_hour is None:
            return
        current = datetime.fromtimestamp(now / 1000)
        if current.hour < reset_hour:
            return
        today = current.date()
        last = self.synchronizer.last_daily_reset()
        if last == today.isoformat():
            return
        if last is None:
            self.synchronizer.mark_daily_reset(today)
            return

        try:
            period_start = date.fromisoformat(last)
        except ValueError:
            period_start = today - timedelta(days=1)
        if not self.synchronizer.archive(period_start, self.ledger.snapshot()):
            return
        self.ledger.clear()
        self.synchronizer.mark_daily_reset(today)
        logger.info("Daily reset: archived ledger started %s", period_start)
        self.emitter.push_summary()
