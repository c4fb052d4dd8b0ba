"""Exceptions raised by the tracker components."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for recoverable tracker failures."""


class HostUnavailable(TrackerError):
    """The host editor state could not be read during this tick."""


class InvalidElapsed(TrackerError, ValueError):
    """An elapsed delta is non-positive or exceeds the inactivity threshold."""

    def __init__(self, delta_ms: int) -> None:
        super().__init__(f"Invalid elapsed delta: {delta_ms} ms")
        self.delta_ms = delta_ms


class PersistenceWriteFailed(TrackerError):
    """Writing to the local cache or the remote store failed."""


class PersistenceReadCorrupt(TrackerError):
    """Data read back from storage failed structural validation."""


class RemoteStoreError(PersistenceWriteFailed):
    """The remote store rejected a request or could not be reached."""
