"""Keeps the in-memory ledger durable across the local and remote tiers."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional, Union

from .config import TrackerSettings
from .db import (
    ARCHIVE_PREFIX,
    BACKGROUND_TRACKING_KEY,
    LAST_DAILY_RESET_KEY,
    LAST_UPDATE_KEY,
    LEDGER_KEY,
    USER_ID_KEY,
    LocalCache,
)
from .errors import PersistenceReadCorrupt, PersistenceWriteFailed
from .ledger import TimeLedger
from .remote import RemoteStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RemoteSaveCompleted:
    started_at: int
    error: Optional[str] = None


@dataclass(slots=True, frozen=True)
class RemoteLoadCompleted:
    requested_at: int
    payload: Optional[dict[str, Any]] = None
    error: Optional[str] = None


SyncEvent = Union[RemoteSaveCompleted, RemoteLoadCompleted]


def spawn_daemon(job: Callable[[], None]) -> None:
    threading.Thread(target=job, name="page-tracker-remote", daemon=True).start()


def _discard(event: SyncEvent) -> None:
    logger.debug("No dispatcher bound; dropping %s", type(event).__name__)


class PersistenceSynchronizer:
    """Local cache first, remote store when configured and due.

    Remote requests run on a worker and report back through ``post`` so that
    their results are applied on the dispatch thread.
    """

    def __init__(
        self,
        cache: LocalCache,
        settings: TrackerSettings,
        remote: Optional[RemoteStore] = None,
        *,
        post: Optional[Callable[[SyncEvent], None]] = None,
        spawn: Callable[[Callable[[], None]], None] = spawn_daemon,
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.remote = remote
        self._post = post or _discard
        self._spawn = spawn
        self._user_id: Optional[str] = None
        self._local_updated_at: Optional[int] = None
        self._remote_lock = threading.Lock()
        self._remote_in_flight = False
        self._queued_push: Optional[tuple[dict[str, Any], int]] = None
        self.last_remote_success: Optional[int] = None
        self.last_error: Optional[str] = None

    def bind(self, post: Callable[[SyncEvent], None]) -> None:
        self._post = post

    @property
    def remote_in_flight(self) -> bool:
        with self._remote_lock:
            return self._remote_in_flight

    @property
    def user_id(self) -> str:
        if self._user_id is None:
            try:
                stored = self.cache.get(USER_ID_KEY)
            except PersistenceReadCorrupt:
                stored = None
            if isinstance(stored, str) and stored:
                self._user_id = stored
            else:
                self._user_id = uuid.uuid4().hex
                try:
                    self.cache.set(USER_ID_KEY, self._user_id)
                except PersistenceWriteFailed as exc:
                    logger.error("Failed to persist generated user id: %s", exc)
        return self._user_id

    # Ledger

    def load(self, ledger: TimeLedger, now: int) -> int:
        """Replace ``ledger`` with the local copy and return dropped entries."""
        try:
            raw = self.cache.get(LEDGER_KEY)
            last_update = self.cache.get(LAST_UPDATE_KEY)
        except PersistenceReadCorrupt as exc:
            logger.error("Local ledger unreadable; starting empty: %s", exc)
            raw, last_update = None, None

        removed = ledger.replace(raw) + ledger.cleanup_orphans()
        if removed:
            logger.warning("Dropped %d malformed or orphaned ledger entries on load", removed)
        self._local_updated_at = _as_timestamp(last_update)
        logger.info("Loaded %d tracked files from the local cache", len(ledger))

        if self.remote is not None:
            stale = (
                raw is None
                or self._local_updated_at is None
                or now - self._local_updated_at > self.settings.remote_sync_interval_ms
            )
            if stale:
                self.request_remote_load(now)
        return removed

    def save(self, ledger: TimeLedger, now: int, *, force: bool = False) -> bool:
        """Write locally, then push remotely when forced or due."""
        ledger.cleanup_orphans()
        snapshot = ledger.snapshot()
        ok = self._write_local(snapshot, now)
        if self.remote is not None and (force or self.remote_due(now)):
            self._push_remote(snapshot, now, force=force)
        return ok

    def remote_due(self, now: int) -> bool:
        """True once the sync interval has passed since the last confirmed remote write."""
        if self.last_remote_success is None:
            return True
        return now - self.last_remote_success >= self.settings.remote_sync_interval_ms

    def _write_local(self, snapshot: dict[str, Any], now: int) -> bool:
        try:
            self.cache.set_many({LEDGER_KEY: snapshot, LAST_UPDATE_KEY: now})
        except PersistenceWriteFailed as exc:
            logger.error("Local save failed; will retry next interval: %s", exc)
            self.last_error = str(exc)
            return False
        self._local_updated_at = now
        self.last_error = None
        logger.debug("Ledger saved to local cache (%d files)", len(snapshot))
        return True

    def _push_remote(self, snapshot: dict[str, Any], now: int, *, force: bool) -> None:
        remote = self.remote
        if remote is None:
            return
        user_id = self.user_id
        payload = {"files": snapshot, "updatedAt": now, "userId": user_id}
        with self._remote_lock:
            if self._remote_in_flight:
                if force or self._queued_push is not None:
                    # Sent by the running worker once the current write finishes.
                    self._queued_push = (payload, now)
                    logger.debug("Remote save in flight; queued snapshot taken at %d", now)
                else:
                    logger.debug("Remote save still in flight; skipping this round")
                return
            self._remote_in_flight = True
        self._spawn(lambda: self._run_remote_saves(remote, user_id, payload, now))

    def _run_remote_saves(
        self, remote: RemoteStore, user_id: str, payload: dict[str, Any], started_at: int
    ) -> None:
        """Worker body: write snapshots one at a time, oldest first."""
        while True:
            try:
                remote.save(user_id, payload)
            except Exception as exc:
                event = RemoteSaveCompleted(started_at, error=str(exc))
            else:
                event = RemoteSaveCompleted(started_at)
            self._post(event)
            with self._remote_lock:
                if self._queued_push is None:
                    self._remote_in_flight = False
                    return
                payload, started_at = self._queued_push
                self._queued_push = None

    def request_remote_load(self, now: int) -> None:
        remote = self.remote
        if remote is None:
            return
        user_id = self.user_id

        def job() -> None:
            try:
                payload = remote.load(user_id)
            except Exception as exc:
                event = RemoteLoadCompleted(now, error=str(exc))
            else:
                event = RemoteLoadCompleted(now, payload=payload)
            self._post(event)

        logger.info("Requesting ledger from remote store")
        self._spawn(job)

    def handle_remote_saved(self, event: RemoteSaveCompleted) -> Optional[str]:
        """Record a remote save outcome; returns the error message on failure."""
        if event.error:
            logger.warning("Remote save failed; will retry at next sync: %s", event.error)
            return event.error
        if self.last_remote_success is not None and event.started_at <= self.last_remote_success:
            logger.debug("Ignoring completion for older snapshot taken at %d", event.started_at)
            return None
        self.last_remote_success = event.started_at
        logger.debug("Remote save confirmed for snapshot taken at %d", event.started_at)
        return None

    def handle_remote_loaded(self, event: RemoteLoadCompleted, ledger: TimeLedger) -> bool:
        """Apply a remote snapshot if it is at least as new as the local one."""
        if event.error:
            logger.warning("Remote load failed; continuing with local data: %s", event.error)
            return False
        payload = event.payload
        if not payload:
            logger.info("Remote store has no ledger for this user yet")
            return False

        remote_updated = _as_timestamp(payload.get("updatedAt"))
        local_updated = self._local_updated_at
        if local_updated is not None and (remote_updated is None or remote_updated < local_updated):
            logger.info("Remote ledger is older than the local copy; keeping local")
            return False

        removed = ledger.replace(payload.get("files")) + ledger.cleanup_orphans()
        if removed:
            logger.warning("Dropped %d malformed entries from remote ledger", removed)
        self._write_local(ledger.snapshot(), remote_updated or event.requested_at)
        logger.info("Replaced local ledger with remote snapshot (%d files)", len(ledger))
        return True

    # Preferences and archives

    def load_background_tracking(self, default: bool = True) -> bool:
        try:
            value = self.cache.get(BACKGROUND_TRACKING_KEY)
        except PersistenceReadCorrupt as exc:
            logger.warning("Background tracking preference unreadable: %s", exc)
            return default
        return value if isinstance(value, bool) else default

    def save_background_tracking(self, enabled: bool) -> None:
        try:
            self.cache.set(BACKGROUND_TRACKING_KEY, enabled)
        except PersistenceWriteFailed as exc:
            logger.error("Failed to persist background tracking preference: %s", exc)

    def last_daily_reset(self) -> Optional[str]:
        try:
            value = self.cache.get(LAST_DAILY_RESET_KEY)
        except PersistenceReadCorrupt:
            return None
        return value if isinstance(value, str) else None

    def archive(self, day: date, snapshot: dict[str, Any]) -> bool:
        key = ARCHIVE_PREFIX + day.isoformat()
        try:
            self.cache.set(key, snapshot)
        except PersistenceWriteFailed as exc:
            logger.error("Failed to archive ledger for %s: %s", day, exc)
            return False
        logger.info("Archived ledger under %s", key)
        return True

    def mark_daily_reset(self, day: date) -> None:
        try:
            self.cache.set(LAST_DAILY_RESET_KEY, day.isoformat())
        except PersistenceWriteFailed as exc:
            logger.error("Failed to record daily reset date: %s", exc)


def _as_timestamp(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)
