"""This file contains the test functions that verify the startup sequence driven by the HandshakeController class."""

import pytest

from ataraxis_firmata import UsageError, HandshakeError, HandshakeStates, HandshakeController

FIRMWARE_QUERY = bytes([0xF0, 0x79, 0xF7])
CAPABILITY_QUERY = bytes([0xF0, 0x6B, 0xF7])
ANALOG_MAPPING_QUERY = bytes([0xF0, 0x69, 0xF7])


class Session:
    """Records the messages and notifications produced by a HandshakeController."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.ready = 0
        self.errors: list[Exception] = []

    def controller(self, **kwargs) -> HandshakeController:
        return HandshakeController(self.sent.append, self.on_ready, self.errors.append, **kwargs)

    def on_ready(self) -> None:
        self.ready += 1


def test_full_handshake_sequence():
    session = Session()
    controller = session.controller()
    assert controller.state == HandshakeStates.DISCONNECTED

    controller.connected()
    assert controller.state == HandshakeStates.AWAITING_VERSION
    assert session.sent == []

    controller.version_received()
    assert session.sent == [FIRMWARE_QUERY]

    controller.firmware_received()
    assert controller.state == HandshakeStates.AWAITING_CAPABILITIES
    assert session.sent[-1] == CAPABILITY_QUERY

    controller.capabilities_received()
    assert controller.state == HandshakeStates.AWAITING_ANALOG_MAPPING
    assert session.sent[-1] == ANALOG_MAPPING_QUERY

    controller.analog_mapping_received()
    assert controller.is_complete
    assert session.ready == 1


def test_skip_capabilities_finishes_after_firmware():
    session = Session()
    controller = session.controller(skip_capabilities=True)
    controller.connected()
    controller.version_received()
    controller.firmware_received()

    assert controller.is_complete
    assert session.ready == 1
    assert CAPABILITY_QUERY not in session.sent


def test_sampling_interval_is_sent_after_firmware():
    session = Session()
    controller = session.controller(sampling_interval=100)
    controller.connected()
    controller.version_received()
    controller.firmware_received()

    assert session.sent == [FIRMWARE_QUERY, bytes([0xF0, 0x7A, 100, 0, 0xF7]), CAPABILITY_QUERY]


def test_replies_out_of_order_are_ignored():
    session = Session()
    controller = session.controller()
    controller.connected()

    controller.capabilities_received()
    controller.firmware_received()
    assert controller.state == HandshakeStates.AWAITING_VERSION
    assert session.sent == []


def test_ready_fires_only_once():
    session = Session()
    controller = session.controller(skip_capabilities=True)
    controller.connected()
    controller.version_received()
    controller.firmware_received()
    controller.firmware_received()
    controller.version_received()
    assert session.ready == 1


def test_version_timeout_resends_queries():
    session = Session()
    controller = session.controller(timeout=0)
    controller.connected()

    controller.poll()
    assert controller.retries == 1
    assert session.sent == [bytes([0xF9]), FIRMWARE_QUERY]
    assert controller.state == HandshakeStates.AWAITING_VERSION


def test_poll_has_no_effect_outside_awaiting_version():
    session = Session()
    controller = session.controller(timeout=0)
    controller.poll()
    assert session.sent == []

    controller.connected()
    controller.version_received()
    controller.poll()
    assert session.sent == [FIRMWARE_QUERY]


def test_exhausted_retries_report_handshake_error():
    session = Session()
    controller = session.controller(timeout=0, max_retries=2)
    controller.connected()

    controller.poll()
    controller.poll()
    assert controller.retries == 2
    assert session.errors == []

    controller.poll()
    assert controller.state == HandshakeStates.DISCONNECTED
    assert len(session.errors) == 1
    assert isinstance(session.errors[0], HandshakeError)


def test_reconnect_restarts_handshake():
    session = Session()
    controller = session.controller(skip_capabilities=True)
    controller.connected()
    controller.version_received()
    controller.firmware_received()

    controller.disconnected()
    assert controller.state == HandshakeStates.DISCONNECTED
    controller.connected()
    assert controller.state == HandshakeStates.AWAITING_VERSION
    assert controller.retries == 0


@pytest.mark.parametrize(
    "kwargs, pattern",
    [
        ({"timeout": -1}, r"Expected a non-negative integer value for 'timeout'"),
        ({"max_retries": -1}, r"Expected None or a non-negative integer value for 'max_retries'"),
    ],
)
def test_invalid_arguments(kwargs, pattern):
    with pytest.raises(UsageError, match=pattern):
        Session().controller(**kwargs)
