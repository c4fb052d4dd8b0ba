from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest

from page_tracker.config import TrackerSettings
from page_tracker.context import TrackerContext
from page_tracker.db import LocalCache
from page_tracker.emitter import StatusEmitter
from page_tracker.sync import PersistenceSynchronizer
from page_tracker.tracker import TrackingStateMachine

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeHost:
    def __init__(
        self,
        file_id: str = "F1",
        page_id: str = "P1",
        file_name: str = "Design System",
        page_name: str = "Buttons",
    ) -> None:
        self.file_id = file_id
        self.page_id = page_id
        self.file_name = file_name
        self.page_name = page_name
        self.selection = False
        self.viewport_value: Optional[tuple[float, float, float]] = None
        self.fail = False

    def move_to(self, file_id: str, page_id: str, file_name: str, page_name: str) -> None:
        self.file_id = file_id
        self.page_id = page_id
        self.file_name = file_name
        self.page_name = page_name

    def _check(self) -> None:
        if self.fail:
            raise RuntimeError("document handle lost")

    def current_file_id(self) -> str:
        self._check()
        return self.file_id

    def current_page_id(self) -> str:
        self._check()
        return self.page_id

    def current_file_name(self) -> str:
        self._check()
        return self.file_name

    def current_page_name(self) -> str:
        self._check()
        return self.page_name

    def has_selection(self) -> bool:
        self._check()
        return self.selection

    def viewport(self) -> Optional[tuple[float, float, float]]:
        self._check()
        return self.viewport_value


class RecordingChannel:
    def __init__(self) -> None:
        self.messages: list[Any] = []
        self.notifications: list[str] = []

    def post(self, message: Any) -> None:
        self.messages.append(message)

    def notify(self, text: str) -> None:
        self.notifications.append(text)

    def of_type(self, message_type: str) -> list[Any]:
        return [message for message in self.messages if message.type == message_type]


class FakeRemote:
    def __init__(
        self,
        payload: Optional[dict[str, Any]] = None,
        save_error: Optional[Exception] = None,
        load_error: Optional[Exception] = None,
    ) -> None:
        self.payload = payload
        self.save_error = save_error
        self.load_error = load_error
        self.saved: list[tuple[str, dict[str, Any]]] = []
        self.loads = 0

    def save(self, user_id: str, payload: dict[str, Any]) -> None:
        self.saved.append((user_id, payload))
        if self.save_error is not None:
            raise self.save_error

    def load(self, user_id: str) -> Optional[dict[str, Any]]:
        self.loads += 1
        if self.load_error is not None:
            raise self.load_error
        return self.payload


def run_inline(job: Callable[[], None]) -> None:
    job()


@dataclass
class Harness:
    tracker: TrackingStateMachine
    context: TrackerContext
    host: FakeHost
    channel: RecordingChannel
    synchronizer: PersistenceSynchronizer
    cache: LocalCache
    clock: FakeClock
    events: list[Any] = field(default_factory=list)

    def pump(self) -> None:
        """Deliver queued persistence completions, as the driver would."""
        while self.events:
            self.tracker.dispatch(self.events.pop(0), self.clock())

    def page_total(self, file_id: str = "F1", page_id: str = "P1") -> int:
        page = self.context.ledger.get_page(file_id, page_id)
        assert page is not None
        return page.total_time_ms

    def file_total(self, file_id: str = "F1") -> int:
        file = self.context.ledger.get_file(file_id)
        assert file is not None
        return file.total_time_ms


@pytest.fixture
def cache(tmp_path):
    local = LocalCache(tmp_path / "ledger.sqlite3")
    yield local
    local.close()


@pytest.fixture
def make_harness(cache):
    def factory(
        *,
        background: bool = True,
        visible: bool = False,
        remote: Optional[FakeRemote] = None,
        settings: Optional[TrackerSettings] = None,
        spawn: Callable[[Callable[[], None]], None] = run_inline,
        initialize: bool = True,
    ) -> Harness:
        clock = FakeClock()
        resolved = settings or TrackerSettings()
        context = TrackerContext(
            settings=resolved, background_tracking=background, ui_visible=visible
        )
        host = FakeHost()
        channel = RecordingChannel()
        events: list[Any] = []
        synchronizer = PersistenceSynchronizer(
            cache, resolved, remote, post=events.append, spawn=spawn
        )
        emitter = StatusEmitter(channel, context)
        tracker = TrackingStateMachine(context, host, synchronizer, emitter, clock=clock)
        harness = Harness(tracker, context, host, channel, synchronizer, cache, clock, events)
        if initialize:
            tracker.initialize(clock())
        return harness

    return factory


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def make_remote():
    return FakeRemote


@pytest.fixture
def inline_spawn():
    return run_inline
