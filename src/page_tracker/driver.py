"""Tick driver: runs the tracker's cadences and its inbound event queue."""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Callable, Optional

from .config import TrackerSettings, to_ms
from .models import now_ms
from .tracker import Event, TrackingStateMachine

logger = logging.getLogger(__name__)


class Cadence(str, Enum):
    FILE_CHECK = "file-check"
    ACTIVITY_CHECK = "activity-check"
    SAVE = "save"
    REMOTE_SYNC = "remote-sync"


# Within one round: target detection, then crediting, then persistence.
CADENCE_ORDER = (Cadence.FILE_CHECK, Cadence.ACTIVITY_CHECK, Cadence.SAVE, Cadence.REMOTE_SYNC)


class TickDriver:
    """Single-threaded dispatcher for ticks and queued events.

    Other threads (web handlers, remote workers) only call :meth:`post`; all
    tracker state is touched from the thread running the loop.
    """

    def __init__(
        self,
        tracker: TrackingStateMachine,
        settings: TrackerSettings,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.tracker = tracker
        self.settings = settings
        self.clock = clock
        self._events: "queue.Queue[Event]" = queue.Queue()
        self._intervals = {
            Cadence.FILE_CHECK: to_ms(settings.file_check_interval),
            Cadence.ACTIVITY_CHECK: to_ms(settings.activity_check_interval),
            Cadence.SAVE: to_ms(settings.save_interval),
            Cadence.REMOTE_SYNC: to_ms(settings.remote_sync_interval),
        }
        self._handlers: dict[Cadence, Callable[[int], None]] = {
            Cadence.FILE_CHECK: tracker.check_target,
            Cadence.ACTIVITY_CHECK: tracker.check_activity,
            Cadence.SAVE: tracker.save_tick,
            Cadence.REMOTE_SYNC: tracker.sync_tick,
        }
        self._next_due: dict[Cadence, int] = {}

    def post(self, event: Event) -> None:
        self._events.put(event)

    def pending(self) -> int:
        return self._events.qsize()

    def start(self, now: Optional[int] = None) -> None:
        now = self.clock() if now is None else now
        self.tracker.initialize(now)
        self._next_due = {cadence: now + self._intervals[cadence] for cadence in CADENCE_ORDER}

    def run_pending(self, now: Optional[int] = None) -> None:
        """Dispatch queued events, then every cadence that is due."""
        now = self.clock() if now is None else now
        self._drain_events(now)
        for cadence in CADENCE_ORDER:
            if self.tracker.closed:
                return
            due = self._next_due.get(cadence)
            if due is None or now < due:
                continue
            self._run_tick(cadence, now)
            self._next_due[cadence] = now + self._intervals[cadence]

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the loop until the provided event is set or the host closes."""
        self.start()
        logger.info("Tick driver started")
        try:
            while not stop_event.is_set() and not self.tracker.closed:
                self.run_pending()
                if self.tracker.closed:
                    break
                timeout = self._seconds_until_next_due()
                try:
                    event = self._events.get(timeout=timeout)
                except queue.Empty:
                    continue
                self._dispatch(event, self.clock())
        finally:
            self.tracker.shutdown()
            logger.info("Tick driver stopped")

    def _drain_events(self, now: int) -> None:
        while not self.tracker.closed:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            self._dispatch(event, now)

    def _dispatch(self, event: Event, now: int) -> None:
        try:
            self.tracker.dispatch(event, now)
        except Exception:
            logger.exception("Failed to handle %s", type(event).__name__)

    def _run_tick(self, cadence: Cadence, now: int) -> None:
        try:
            self._handlers[cadence](now)
        except Exception:
            logger.exception("%s tick failed", cadence.value)

    def _seconds_until_next_due(self) -> float:
        if not self._next_due:
            return 0.0
        wait_ms = min(self._next_due.values()) - self.clock()
        return max(0.0, wait_ms / 1000.0)
