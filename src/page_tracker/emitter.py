"""Pushes status and summary snapshots to the presentation layer."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Optional, Protocol

from .context import TrackerContext
from .messages import (
    FileChanged,
    Notification,
    OutboundMessage,
    PersistenceError,
    SummaryData,
    TrackingStatus,
    UiResize,
)
from .models import Target
from .reporting import format_hours_minutes

logger = logging.getLogger(__name__)

# Sessions shorter than this get no "still tracking" reminder.
MIN_REMINDER_SESSION_MS = 60_000


class PresentationChannel(Protocol):
    def post(self, message: OutboundMessage) -> None: ...

    def notify(self, text: str) -> None: ...


class MessageOutbox:
    """Thread-safe buffer of outbound messages, drained by the web server."""

    def __init__(self, maxlen: int = 500) -> None:
        self._messages: deque[OutboundMessage] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def post(self, message: OutboundMessage) -> None:
        with self._lock:
            self._messages.append(message)

    def notify(self, text: str) -> None:
        logger.info("Notification: %s", text)
        self.post(Notification(message=text))

    def drain(self) -> list[dict[str, Any]]:
        with self._lock:
            messages = list(self._messages)
            self._messages.clear()
        return [message.to_wire() for message in messages]


class StatusEmitter:
    """Status pushes while the UI is visible, throttled notifications otherwise."""

    def __init__(self, channel: PresentationChannel, context: TrackerContext) -> None:
        self.channel = channel
        self.context = context
        self._last_notified: dict[str, int] = {}
        self._summary_revision: Optional[int] = None

    @property
    def visible(self) -> bool:
        return self.context.ui_visible

    def status_message(self) -> TrackingStatus:
        session = self.context.session
        return TrackingStatus(
            is_tracking=session.is_tracking,
            background_tracking=self.context.background_tracking,
            file_id=session.active_file_id,
            page_id=session.active_page_id,
            file_name=session.active_file_name,
            page_name=session.active_page_name,
            start_time=session.session_start_time if session.is_tracking else None,
        )

    def push_status(self, now: int) -> None:
        if self.visible:
            self.channel.post(self.status_message())
        else:
            self.remind(now)

    def push_summary(self, *, force: bool = False) -> None:
        """Send the ledger snapshot; unforced pushes need a visible UI and a changed ledger."""
        ledger = self.context.ledger
        if not force and (not self.visible or ledger.revision == self._summary_revision):
            return
        self._summary_revision = ledger.revision
        self.channel.post(
            SummaryData(
                data=ledger.snapshot(),
                current_file_id=self.context.session.active_file_id,
            )
        )

    def push_file_changed(self, previous: Optional[Target], current: Target) -> None:
        # Buffered even while hidden so the panel catches up when reopened.
        self.channel.post(
            FileChanged(
                file_id=current.file_id,
                page_id=current.page_id,
                file_name=current.file_name,
                page_name=current.page_name,
                previous_file_id=previous.file_id if previous else None,
                previous_page_id=previous.page_id if previous else None,
            )
        )

    def notify(self, kind: str, text: str, now: int) -> bool:
        """Show a notification while hidden, at most once per interval per kind."""
        if self.visible:
            return False
        last = self._last_notified.get(kind)
        interval = self.context.settings.notification_interval_ms
        if last is not None and now - last < interval:
            logger.debug("Throttled %s notification: %s", kind, text)
            return False
        self._last_notified[kind] = now
        self.channel.notify(text)
        return True

    def remind(self, now: int) -> bool:
        session = self.context.session
        if not session.is_tracking or session.session_start_time is None:
            return False
        running = now - session.session_start_time
        if running < MIN_REMINDER_SESSION_MS:
            return False
        elapsed = format_hours_minutes(running)
        where = f"{session.active_file_name} / {session.active_page_name}"
        return self.notify("reminder", f"Still tracking on {where}: {elapsed}", now)

    def persistence_failed(self, message: str, now: int) -> None:
        if self.visible:
            self.channel.post(PersistenceError(message=message))
        else:
            self.notify("persistence", "Time tracking data could not be saved; retrying.", now)

    def resize(self, width: int, height: int) -> None:
        self.channel.post(UiResize(width=width, height=height))
