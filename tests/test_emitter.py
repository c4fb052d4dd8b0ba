from page_tracker.context import TrackerContext
from page_tracker.emitter import MessageOutbox, StatusEmitter
from page_tracker.messages import TrackingStatus
from page_tracker.models import Target

HALF_HOUR = 30 * 60 * 1000


def _tracking_context(visible=False):
    context = TrackerContext(ui_visible=visible)
    session = context.session
    session.set_target(Target("F1", "P1", "Design System", "Buttons"))
    session.is_tracking = True
    session.session_start_time = 0
    context.ledger.ensure_target("F1", "P1", "Design System", "Buttons", 0)
    return context


def test_notifications_are_throttled_per_kind():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context())

    assert emitter.notify("started", "Started", 1000)
    assert not emitter.notify("started", "Started", 2000)
    assert emitter.notify("stopped", "Stopped", 2000)
    assert emitter.notify("started", "Started", 1000 + HALF_HOUR)

    texts = [message["message"] for message in outbox.drain()]
    assert texts == ["Started", "Stopped", "Started"]


def test_visible_ui_gets_status_instead_of_notifications():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context(visible=True))

    assert not emitter.notify("started", "Started", 1000)
    emitter.push_status(1000)

    wire = outbox.drain()
    assert wire == [
        {
            "type": "tracking-status",
            "isTracking": True,
            "backgroundTracking": True,
            "fileId": "F1",
            "pageId": "P1",
            "fileName": "Design System",
            "pageName": "Buttons",
            "startTime": 0,
        }
    ]
    assert len(outbox) == 0


def test_hidden_status_push_becomes_reminder():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context())

    emitter.push_status(90 * 60 * 1000)

    (message,) = outbox.drain()
    assert message["type"] == "notification"
    assert message["message"] == "Still tracking on Design System / Buttons: 1h 30m"


def test_summary_is_only_pushed_to_visible_ui_unless_forced():
    outbox = MessageOutbox()
    context = _tracking_context()
    emitter = StatusEmitter(outbox, context)

    emitter.push_summary()
    assert len(outbox) == 0

    emitter.push_summary(force=True)
    (message,) = outbox.drain()
    assert message["type"] == "summary-data"
    assert message["currentFileId"] == "F1"
    assert message["data"]["F1"]["pages"]["P1"]["name"] == "Buttons"


def test_persistence_failure_while_hidden_is_a_throttled_notification():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context())

    emitter.persistence_failed("disk full", 1000)
    emitter.persistence_failed("disk full", 2000)

    messages = outbox.drain()
    assert [m["type"] for m in messages] == ["notification"]


def test_outbox_drops_oldest_when_full():
    outbox = MessageOutbox(maxlen=2)
    for start in (1, 2, 3):
        outbox.post(TrackingStatus(is_tracking=True, background_tracking=True, start_time=start))

    assert [m["startTime"] for m in outbox.drain()] == [2, 3]


def test_short_sessions_get_no_reminder():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context())

    assert not emitter.remind(59_999)
    assert emitter.remind(60_000)
    assert len(outbox) == 1


def test_visible_summary_is_resent_only_after_ledger_changes():
    outbox = MessageOutbox()
    context = _tracking_context(visible=True)
    emitter = StatusEmitter(outbox, context)

    emitter.push_summary()
    emitter.push_summary()
    assert len(outbox.drain()) == 1

    context.ledger.ensure_target("F1", "P1", "Design System", "Buttons", 10)
    emitter.push_summary()
    assert len(outbox) == 0

    context.ledger.apply_elapsed("F1", "P1", 1000, 20)
    emitter.push_summary()
    (message,) = outbox.drain()
    assert message["data"]["F1"]["totalTimeMs"] == 1000

    emitter.push_summary(force=True)
    assert len(outbox) == 1


def test_file_change_is_buffered_while_hidden():
    outbox = MessageOutbox()
    emitter = StatusEmitter(outbox, _tracking_context())

    emitter.push_file_changed(
        Target("F1", "P1", "Design System", "Buttons"),
        Target("F2", "P2", "Spec", "Intro"),
    )

    (message,) = outbox.drain()
    assert message["type"] == "file-changed"
    assert message["fileId"] == "F2"
    assert message["previousPageId"] == "P1"
