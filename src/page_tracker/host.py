"""Host editor contract and an HTTP-fed implementation of it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from .errors import HostUnavailable
from .models import now_ms

Viewport = tuple[float, float, float]


class HostEnvironment(Protocol):
    """What the tracker reads from the host editor. Any call may raise."""

    def current_file_id(self) -> str: ...

    def current_page_id(self) -> str: ...

    def current_file_name(self) -> str: ...

    def current_page_name(self) -> str: ...

    def has_selection(self) -> bool: ...

    def viewport(self) -> Optional[Viewport]: ...


@dataclass(slots=True, frozen=True)
class SelectionChanged:
    at: int = field(default_factory=now_ms)


@dataclass(slots=True, frozen=True)
class DocumentChanged:
    at: int = field(default_factory=now_ms)


@dataclass(slots=True, frozen=True)
class PageChanged:
    at: int = field(default_factory=now_ms)


@dataclass(slots=True, frozen=True)
class HostClosing:
    at: int = field(default_factory=now_ms)


HostEvent = Union[SelectionChanged, DocumentChanged, PageChanged, HostClosing]

HOST_EVENT_TYPES: dict[str, type] = {
    "selection-changed": SelectionChanged,
    "document-changed": DocumentChanged,
    "page-changed": PageChanged,
    "host-closing": HostClosing,
}


@dataclass(slots=True, frozen=True)
class HostContext:
    file_id: str
    page_id: str
    file_name: str = ""
    page_name: str = ""
    has_selection: bool = False
    viewport: Optional[Viewport] = None
    reported_at: int = field(default_factory=now_ms)


class ReportedHostState:
    """Host state pushed to us by an editor extension.

    Reads raise :class:`HostUnavailable` until a context has been reported,
    or after :meth:`lose` marks the document handle as gone.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._context: Optional[HostContext] = None

    def update(self, context: HostContext) -> None:
        with self._lock:
            self._context = context

    def lose(self) -> None:
        with self._lock:
            self._context = None

    def _require(self) -> HostContext:
        with self._lock:
            context = self._context
        if context is None:
            raise HostUnavailable("No document context has been reported by the host.")
        return context

    def current_file_id(self) -> str:
        return self._require().file_id

    def current_page_id(self) -> str:
        return self._require().page_id

    def current_file_name(self) -> str:
        return self._require().file_name

    def current_page_name(self) -> str:
        return self._require().page_name

    def has_selection(self) -> bool:
        return self._require().has_selection

    def viewport(self) -> Optional[Viewport]:
        return self._require().viewport
