import threading

from page_tracker.config import TrackerSettings
from page_tracker.driver import TickDriver
from page_tracker.host import HostClosing
from page_tracker.messages import StartTracking


class RecordingTracker:
    def __init__(self):
        self.calls = []
        self.closed = False
        self.fail_on = None

    def _record(self, name, now):
        self.calls.append((name, now))
        if name == self.fail_on:
            raise RuntimeError(f"{name} exploded")

    def initialize(self, now):
        self.closed = False
        self._record("initialize", now)

    def check_target(self, now):
        self._record("file-check", now)

    def check_activity(self, now):
        self._record("activity-check", now)

    def save_tick(self, now):
        self._record("save", now)

    def sync_tick(self, now):
        self._record("remote-sync", now)

    def dispatch(self, event, now):
        self.calls.append((type(event).__name__, now))
        if isinstance(event, HostClosing):
            self.closed = True

    def shutdown(self, now=None):
        self.calls.append(("shutdown", now))
        self.closed = True


def _names(tracker):
    return [name for name, _ in tracker.calls]


def _driver(tracker):
    driver = TickDriver(tracker, TrackerSettings(), clock=lambda: 0)
    driver.start(0)
    tracker.calls.clear()
    return driver


def test_cadences_run_when_due():
    tracker = RecordingTracker()
    driver = _driver(tracker)

    driver.run_pending(999)
    assert tracker.calls == []

    driver.run_pending(1000)
    assert _names(tracker) == ["file-check"]

    tracker.calls.clear()
    driver.run_pending(5000)
    assert _names(tracker) == ["file-check", "activity-check"]


def test_all_due_cadences_run_in_fixed_order():
    tracker = RecordingTracker()
    driver = _driver(tracker)

    driver.run_pending(300_000)

    assert _names(tracker) == ["file-check", "activity-check", "save", "remote-sync"]


def test_queued_events_are_dispatched_before_ticks():
    tracker = RecordingTracker()
    driver = _driver(tracker)
    driver.post(StartTracking())
    assert driver.pending() == 1

    driver.run_pending(1000)

    assert _names(tracker) == ["StartTracking", "file-check"]
    assert driver.pending() == 0


def test_failing_tick_does_not_stop_the_round():
    tracker = RecordingTracker()
    tracker.fail_on = "file-check"
    driver = _driver(tracker)

    driver.run_pending(5000)

    assert _names(tracker) == ["file-check", "activity-check"]


def test_closed_tracker_runs_no_more_ticks():
    tracker = RecordingTracker()
    driver = _driver(tracker)
    driver.post(HostClosing(at=10))

    driver.run_pending(300_000)

    assert _names(tracker) == ["HostClosing"]


def test_run_until_stopped_shuts_down_tracker():
    tracker = RecordingTracker()
    driver = TickDriver(tracker, TrackerSettings(), clock=lambda: 0)
    stop_event = threading.Event()
    stop_event.set()

    driver.run_until_stopped(stop_event)

    assert _names(tracker) == ["initialize", "shutdown"]
    assert tracker.closed


def test_events_after_host_closing_stay_queued():
    tracker = RecordingTracker()
    driver = TickDriver(tracker, TrackerSettings(), clock=lambda: 0)
    driver.post(HostClosing(at=0))
    driver.post(StartTracking())

    driver.run_until_stopped(threading.Event())

    assert _names(tracker) == ["initialize", "HostClosing", "shutdown"]
    assert driver.pending() == 1
