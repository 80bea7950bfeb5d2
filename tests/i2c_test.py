"""This file contains the test functions that verify the requests and reply routing of the I2CInterface class."""

import pytest

from ataraxis_firmata import ProtocolError

from conftest import sysex_reply


def test_config_enables_bus(ready_board, transport):
    ready_board.i2c.config()
    assert transport.writes == [bytes([0xF0, 0x78, 0x00, 0x00, 0xF7])]
    assert ready_board.state.i2c.enabled


def test_config_sets_delay_and_merges_settings(ready_board, transport):
    ready_board.i2c.config(delay=100, address=5, settings={"whatever": True})
    assert transport.writes == [bytes([0xF0, 0x78, 100, 0x00, 0xF7])]
    assert ready_board.state.i2c.delay == 100
    assert ready_board.state.i2c.as_dict() == {5: {"stop_tx": True, "whatever": True}}

    ready_board.i2c.config(delay=300)
    assert transport.writes[-1] == bytes([0xF0, 0x78, 300 & 0x7F, 300 >> 7, 0xF7])


def test_requests_require_config(ready_board):
    with pytest.raises(ProtocolError, match=r"i2c not enabled"):
        ready_board.i2c.write(0x53, [1, 2])


@pytest.mark.parametrize(
    "args, expected",
    [
        ((0x53, [1, 2]), [240, 118, 83, 0, 1, 0, 2, 0, 247]),
        ((0x53, 1), [240, 118, 83, 0, 1, 0, 247]),
        ((0x53, 0xB2, [1, 2]), [240, 118, 83, 0, 50, 1, 1, 0, 2, 0, 247]),
    ],
)
def test_write(ready_board, transport, args, expected):
    ready_board.i2c.config()
    transport.clear()
    ready_board.i2c.write(*args)
    assert transport.writes == [bytes(expected)]


def test_write_register(ready_board, transport):
    ready_board.i2c.config()
    transport.clear()
    ready_board.i2c.write_register(0x53, 0x2D, 0x08)
    assert transport.writes == [bytes([0xF0, 0x76, 0x53, 0x00, 0x2D, 0x00, 0x08, 0x00, 0xF7])]


def test_ten_bit_address(ready_board, transport):
    ready_board.i2c.config()
    transport.clear()
    ready_board.i2c.write(0x2A5, 1)
    assert transport.writes == [bytes([0xF0, 0x76, 0x25, 0x20 | 0x05, 0x01, 0x00, 0xF7])]


@pytest.mark.parametrize(
    "stop_tx, continuous, mode_byte",
    [
        (True, False, 8),
        (False, False, 72),
        (True, True, 16),
        (False, True, 80),
    ],
)
def test_read_mode_byte(ready_board, transport, stop_tx, continuous, mode_byte):
    ready_board.i2c.config(address=0, settings={"stop_tx": stop_tx})
    transport.clear()
    read = ready_board.i2c.read if continuous else ready_board.i2c.read_once
    read(0, 1, lambda data: None, register=1)
    assert transport.writes == [bytes([240, 118, 0, mode_byte, 1, 0, 1, 0, 247])]


def test_read_without_register(ready_board, transport):
    ready_board.i2c.config()
    transport.clear()
    ready_board.i2c.read_once(0x68, 4, lambda data: None)
    assert transport.writes == [bytes([0xF0, 0x76, 0x68, 0x08, 0x04, 0x00, 0xF7])]


REPLY = sysex_reply(0x77, [83, 0, 0, 0, 1, 0, 2, 0, 3, 0, 4, 0])


def test_read_once_fires_once(ready_board, transport):
    ready_board.i2c.config()
    received = []
    ready_board.i2c.read_once(83, 4, received.append, register=0)

    for _ in range(5):
        transport.inject(REPLY)
    ready_board.poll()
    assert received == [[1, 2, 3, 4]]


def test_continuous_read_fires_on_every_reply(ready_board, transport):
    ready_board.i2c.config()
    received = []
    ready_board.i2c.read(83, 4, received.append, register=0)

    for _ in range(5):
        transport.inject(REPLY)
    ready_board.poll()
    assert len(received) == 5
    assert all(data == [1, 2, 3, 4] for data in received)


def test_stop_removes_handlers(ready_board, transport):
    ready_board.i2c.config()
    received = []
    ready_board.i2c.read(83, 4, received.append, register=0)
    transport.clear()

    ready_board.i2c.stop(83, register=0)
    assert transport.writes == [bytes([0xF0, 0x76, 83, 0x18, 0xF7])]

    transport.inject(REPLY)
    ready_board.poll()
    assert received == []


def test_reply_with_other_register_is_not_delivered(ready_board, transport):
    ready_board.i2c.config()
    received = []
    ready_board.i2c.read_once(83, 4, received.append, register=5)
    transport.inject(REPLY)
    ready_board.poll()
    assert received == []
