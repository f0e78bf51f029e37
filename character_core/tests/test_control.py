import pytest

from character_core.domain.exceptions import ControlMessageError
from character_core.realtime.control import ControlMessage, parse_control


def test_parse_json_directives():
    assert parse_control('{"type": "start"}') == ControlMessage(kind="start")
    assert parse_control('{"type": "end"}') == ControlMessage(kind="end")
    assert parse_control('{"type": "sampleRate", "value": 48000}') == ControlMessage(kind="sampleRate", sample_rate=48000)


def test_parse_shorthand_forms():
    assert parse_control(" START ").kind == "start"
    assert parse_control("end").kind == "end"
    assert parse_control('{"sampleRate": 44100}').sample_rate == 44100
    assert parse_control('{"type": "sampleRate", "sampleRate": "22050"}').sample_rate == 22050


@pytest.mark.parametrize(
    "payload",
    [
        "",
        "hello",
        "[1, 2]",
        '{"type": "pause"}',
        '{"type": "sampleRate"}',
        '{"type": "sampleRate", "value": "fast"}',
        '{"type": "sampleRate", "value": true}',
        '{"type": "sampleRate", "value": 100}',
        '{"sampleRate": 1000000}',
        "[" * 100000,
    ],
)
def test_invalid_control_messages(payload):
    with pytest.raises(ControlMessageError) as exc_info:
        parse_control(payload)
    assert exc_info.value.code == "INVALID_CONTROL_MESSAGE"
