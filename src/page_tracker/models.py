"""Domain models for tracked files, pages and the live session."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Mapping, NamedTuple, Optional


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Target(NamedTuple):
    """The (file, page) pair being tracked or about to be tracked."""

    file_id: str
    page_id: str
    file_name: str
    page_name: str

    def same_place(self, other: Optional["Target"]) -> bool:
        return (
            other is not None
            and self.file_id == other.file_id
            and self.page_id == other.page_id
        )


@dataclass(slots=True)
class PageRecord:
    """Accumulated time for one page of one file."""

    id: Any
    name: Any
    file_id: Any
    total_time_ms: Any = 0
    last_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fileId": self.file_id,
            "totalTimeMs": self.total_time_ms,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "PageRecord":
        # Values are copied as found; cleanup decides what is valid.
        return cls(
            id=raw.get("id"),
            name=raw.get("name"),
            file_id=raw.get("fileId"),
            total_time_ms=raw.get("totalTimeMs"),
            last_updated=_as_int(raw.get("lastUpdated")),
        )


@dataclass(slots=True)
class FileRecord:
    """A tracked document and the pages that own its time."""

    id: Any
    name: Any
    total_time_ms: int = 0
    last_updated: int = 0
    pages: dict[str, PageRecord] = field(default_factory=dict)

    def recompute_total(self) -> int:
        self.total_time_ms = sum(int(page.total_time_ms) for page in self.pages.values())
        return self.total_time_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "totalTimeMs": self.total_time_ms,
            "lastUpdated": self.last_updated,
            "pages": {key: page.to_dict() for key, page in self.pages.items()},
        }


@dataclass(slots=True)
class TrackingSession:
    """Ephemeral tracking state; rebuilt on every process start."""

    is_tracking: bool = False
    active_file_id: Optional[str] = None
    active_page_id: Optional[str] = None
    active_file_name: str = ""
    active_page_name: str = ""
    session_start_time: Optional[int] = None
    last_activity_time: int = 0
    watermark: int = 0

    @property
    def target(self) -> Optional[Target]:
        if self.active_file_id is None or self.active_page_id is None:
            return None
        return Target(
            self.active_file_id,
            self.active_page_id,
            self.active_file_name,
            self.active_page_name,
        )

    def set_target(self, target: Target) -> None:
        self.active_file_id = target.file_id
        self.active_page_id = target.page_id
        self.active_file_name = target.file_name
        self.active_page_name = target.page_name


@dataclass(slots=True, frozen=True)
class ActivitySignal:
    occurred: bool
    at_time: int
    explicit: bool = False


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0
