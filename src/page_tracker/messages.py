"""Messages exchanged with the presentation layer.

Inbound commands and outbound pushes are closed unions discriminated on the
``type`` field. Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _Message(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# Inbound


class StartTracking(_Message):
    type: Literal["start-tracking"] = "start-tracking"


class StopTracking(_Message):
    type: Literal["stop-tracking"] = "stop-tracking"


class GetSummary(_Message):
    type: Literal["get-summary"] = "get-summary"


class UiReady(_Message):
    type: Literal["ui-ready"] = "ui-ready"


class UiClosed(_Message):
    type: Literal["ui-closed"] = "ui-closed"


class Resize(_Message):
    type: Literal["resize"] = "resize"
    height: int = Field(gt=0, le=4000)
    width: int = Field(default=300, gt=0, le=4000)


class Reset(_Message):
    type: Literal["reset"] = "reset"


class SetBackgroundTracking(_Message):
    type: Literal["set-background-tracking"] = "set-background-tracking"
    enabled: bool


Command = Annotated[
    Union[
        StartTracking,
        StopTracking,
        GetSummary,
        UiReady,
        UiClosed,
        Resize,
        Reset,
        SetBackgroundTracking,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(raw: Any) -> Command:
    """Validate a raw inbound payload; raises ``pydantic.ValidationError``."""
    return _COMMAND_ADAPTER.validate_python(raw)


# Outbound


class TrackingStatus(_Message):
    type: Literal["tracking-status"] = "tracking-status"
    is_tracking: bool
    background_tracking: bool
    file_id: Optional[str] = None
    page_id: Optional[str] = None
    file_name: str = ""
    page_name: str = ""
    start_time: Optional[int] = None


class SummaryData(_Message):
    type: Literal["summary-data"] = "summary-data"
    data: dict[str, Any]
    current_file_id: Optional[str] = None


class FileChanged(_Message):
    type: Literal["file-changed"] = "file-changed"
    file_id: str
    page_id: str
    file_name: str
    page_name: str
    previous_file_id: Optional[str] = None
    previous_page_id: Optional[str] = None


class Notification(_Message):
    type: Literal["notification"] = "notification"
    message: str


class PersistenceError(_Message):
    type: Literal["persistence-error"] = "persistence-error"
    message: str


class UiResize(_Message):
    type: Literal["ui-resize"] = "ui-resize"
    width: int
    height: int


OutboundMessage = Annotated[
    Union[TrackingStatus, SummaryData, FileChanged, Notification, PersistenceError, UiResize],
    Field(discriminator="type"),
]
