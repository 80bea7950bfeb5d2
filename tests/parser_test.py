"""This file contains the test functions that verify the message reconstruction and resynchronization behavior of the
MessageParser class.
"""

import pytest

from ataraxis_firmata import MessageParser


class Recorder:
    """Collects the messages dispatched by the parser."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def version(self, major, minor):
        self.calls.append(("version", major, minor))

    def analog(self, channel, value):
        self.calls.append(("analog", channel, value))

    def digital(self, port, mask):
        self.calls.append(("digital", port, mask))

    def sysex(self, command, body):
        self.calls.append(("sysex", command, body.tolist()))


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def parser(recorder) -> MessageParser:
    """Returns a parser that has already received the version report."""
    parser = MessageParser(recorder.version, recorder.analog, recorder.digital, recorder.sysex)
    parser.feed_all(b"\xf9\x02\x05")
    recorder.calls.clear()
    return parser


def test_version_report(recorder):
    parser = MessageParser(recorder.version, recorder.analog, recorder.digital, recorder.sysex)
    assert not parser.version_received
    parser.feed_all(b"\xf9\x02\x06")
    assert parser.version_received
    assert recorder.calls == [("version", 2, 6)]


def test_analog_and_digital_reports(parser, recorder):
    parser.feed_all(bytes([0xE3, 0x7F, 0x07, 0x91, 0x05, 0x01]))
    assert recorder.calls == [("analog", 3, 0x3FF), ("digital", 1, 0x85)]


def test_sysex_dispatch_strips_envelope(parser, recorder):
    parser.feed_all(bytes([0xF0, 0x71, 0x41, 0x00, 0x42, 0x00, 0xF7]))
    assert recorder.calls == [("sysex", 0x71, [0x41, 0x00, 0x42, 0x00])]
    assert not parser.pending_sysex


def test_byte_by_byte_feeding_matches_chunked_feeding(parser, recorder):
    stream = bytes([0xE0, 0x01, 0x02, 0xF0, 0x79, 0x02, 0x05, 0xF7, 0x90, 0x03, 0x00])
    for byte in stream:
        parser.feed(byte)
    byte_calls = list(recorder.calls)

    recorder.calls.clear()
    parser.feed_all(stream)
    assert recorder.calls == byte_calls
    assert len(byte_calls) == 3


def test_command_byte_resynchronizes_incomplete_base_message(parser, recorder):
    # The truncated analog message is discarded when the digital message starts.
    parser.feed_all(bytes([0xE0, 0x01, 0x90, 0x01, 0x00]))
    assert recorder.calls == [("digital", 0, 1)]


def test_command_byte_resynchronizes_unterminated_sysex(parser, recorder):
    parser.feed_all(bytes([0xF0, 0x71, 0x41, 0x00]))
    assert parser.pending_sysex
    parser.feed_all(bytes([0xF9, 0x02, 0x05]))
    assert recorder.calls == [("version", 2, 5)]
    assert not parser.pending_sysex


def test_leading_data_bytes_are_dropped(parser, recorder):
    parser.feed_all(bytes([0x01, 0x02, 0x03, 0xE1, 0x10, 0x00]))
    assert recorder.calls == [("analog", 1, 0x10)]


def test_unknown_commands_are_dropped(parser, recorder):
    parser.feed_all(bytes([0xF4, 0x01, 0x01, 0xE0, 0x05, 0x00]))
    assert recorder.calls == [("analog", 0, 5)]


def test_stray_end_sysex_is_ignored(parser, recorder):
    parser.feed_all(bytes([0xF7, 0xE0, 0x05, 0x00]))
    assert recorder.calls == [("analog", 0, 5)]


def test_sysex_before_version_is_discarded(recorder):
    parser = MessageParser(recorder.version, recorder.analog, recorder.digital, recorder.sysex)
    parser.feed_all(bytes([0xF0, 0x79, 0x02, 0x05, 0xF7]))
    assert recorder.calls == []

    parser.feed_all(bytes([0xF9, 0x02, 0x05, 0xF0, 0x79, 0x02, 0x05, 0xF7]))
    assert recorder.calls == [("version", 2, 5), ("sysex", 0x79, [2, 5])]


def test_sysex_before_version_is_kept_when_not_required(recorder):
    parser = MessageParser(recorder.version, recorder.analog, recorder.digital, recorder.sysex, require_version=False)
    parser.feed_all(bytes([0xF0, 0x79, 0x02, 0x05, 0xF7]))
    assert recorder.calls == [("sysex", 0x79, [2, 5])]


def test_reset_discards_buffered_message(parser, recorder):
    parser.feed_all(bytes([0xF0, 0x71, 0x41]))
    parser.reset()
    assert not parser.pending_sysex
    parser.feed_all(bytes([0x00, 0xF7]))
    assert recorder.calls == []


def test_restart_filters_sysex_until_the_next_version(parser, recorder):
    parser.feed_all(bytes([0xF9, 0x02, 0x05, 0xF0, 0x71, 0x41]))
    parser.restart()
    assert not parser.pending_sysex
    assert not parser.version_received

    parser.feed_all(bytes([0xF0, 0x79, 0x02, 0x05, 0xF7]))
    assert recorder.calls == [("version", 2, 5)]
