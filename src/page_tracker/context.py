"""The single process-wide tracker state shared by the components."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import TrackerSettings
from .ledger import TimeLedger
from .models import TrackingSession


@dataclass(slots=True)
class TrackerContext:
    settings: TrackerSettings = field(default_factory=TrackerSettings)
    ledger: TimeLedger = field(default_factory=TimeLedger)
    session: TrackingSession = field(default_factory=TrackingSession)
    background_tracking: bool = True
    ui_visible: bool = False
