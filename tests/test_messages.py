import pytest
from pydantic import ValidationError

from page_tracker.messages import (
    FileChanged,
    Resize,
    SetBackgroundTracking,
    StartTracking,
    parse_command,
)


def test_parse_known_commands():
    assert isinstance(parse_command({"type": "start-tracking"}), StartTracking)

    resize = parse_command({"type": "resize", "height": 480})
    assert isinstance(resize, Resize)
    assert (resize.width, resize.height) == (300, 480)

    toggle = parse_command({"type": "set-background-tracking", "enabled": False})
    assert isinstance(toggle, SetBackgroundTracking)
    assert toggle.enabled is False


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "launch-rockets"},
        {"type": "resize", "height": 0},
        {"type": "resize", "height": 5000},
        {"type": "start-tracking", "extra": 1},
        {"height": 100},
    ],
)
def test_parse_rejects_invalid_commands(raw):
    with pytest.raises(ValidationError):
        parse_command(raw)


def test_outbound_messages_use_camel_case_on_the_wire():
    message = FileChanged(
        file_id="F2",
        page_id="P2",
        file_name="Spec",
        page_name="Intro",
        previous_file_id="F1",
    )

    assert message.to_wire() == {
        "type": "file-changed",
        "fileId": "F2",
        "pageId": "P2",
        "fileName": "Spec",
        "pageName": "Intro",
        "previousFileId": "F1",
        "previousPageId": None,
    }
