"""This file contains the fixtures and helpers shared by the test files. The helpers build the replies a typical
ATmega328-based board sends during the startup handshake, so that the tests can drive a Board instance through a
MockTransport without connected hardware.
"""

import pytest

from ataraxis_firmata import SYSEX_RESPONSE, Board, PinModes, MockTransport, BoardConfiguration, encode

# The number of pins of the simulated board. Pins 14-19 double as analog channels 0-5.
PIN_COUNT = 20
ANALOG_OFFSET = 14
PWM_PINS = (3, 5, 6, 9, 10, 11)
PING_PIN = 7


def capability_body() -> list[int]:
    """Returns the CAPABILITY_RESPONSE body of the simulated board."""
    body: list[int] = []
    for pin in range(PIN_COUNT):
        if pin < 2:
            # Serial pins do not support any modes.
            body.append(0x7F)
            continue
        body.extend((PinModes.INPUT, 1, PinModes.OUTPUT, 1, PinModes.PULLUP, 1))
        if pin in PWM_PINS:
            body.extend((PinModes.PWM, 8, PinModes.SERVO, 14))
        if pin == PING_PIN:
            body.extend((PinModes.PING_READ, 1))
        if pin >= ANALOG_OFFSET:
            body.extend((PinModes.ANALOG, 10))
        body.append(0x7F)
    return body


def analog_mapping_body() -> list[int]:
    """Returns the ANALOG_MAPPING_RESPONSE body of the simulated board."""
    return [0x7F] * ANALOG_OFFSET + list(range(PIN_COUNT - ANALOG_OFFSET))


def sysex_reply(command: int, body) -> bytes:
    """Wraps the reply body into a sysex envelope."""
    return bytes([0xF0, int(command), *(int(value) for value in body), 0xF7])


def version_reply(major: int = 2, minor: int = 5) -> bytes:
    """Returns the REPORT_VERSION message."""
    return bytes([0xF9, major, minor])


def firmware_reply(name: str = "StandardFirmata.ino", major: int = 2, minor: int = 5) -> bytes:
    """Returns the QUERY_FIRMWARE reply."""
    return sysex_reply(0x79, [major, minor, *encode(name.encode("utf-8"))])


def complete_handshake(board: Board, transport: MockTransport) -> None:
    """Opens the transport and answers every handshake query, leaving the board in the ready state."""
    transport.open()
    transport.inject(version_reply())
    board.poll()
    transport.inject(firmware_reply())
    board.poll()
    if not board.is_ready:
        transport.inject(sysex_reply(0x6C, capability_body()))
        board.poll()
        transport.inject(sysex_reply(0x6A, analog_mapping_body()))
        board.poll()
    transport.clear()


@pytest.fixture(autouse=True)
def sysex_registry():
    """Restores the built-in sysex handlers after each test, as custom handlers are registered process-wide."""
    yield SYSEX_RESPONSE
    SYSEX_RESPONSE.restore_defaults()


@pytest.fixture()
def transport() -> MockTransport:
    """Returns a closed MockTransport instance."""
    return MockTransport()


@pytest.fixture()
def board(transport) -> Board:
    """Returns a Board bound to the mock transport. The transport is not opened."""
    return Board(transport, BoardConfiguration(report_version_timeout=0, max_version_retries=None))


@pytest.fixture()
def ready_board(transport) -> Board:
    """Returns a Board that has completed the full handshake. The recorded writes are cleared."""
    board = Board(transport)
    complete_handshake(board, transport)
    return board
