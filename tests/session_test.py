"""This file contains the test functions that verify the SessionState, I2CPeripheralTable and SysexRegistry classes."""

import numpy as np
import pytest

from ataraxis_firmata import Pin, PinModes, UsageError, SessionState, SysexRegistry, I2CPeripheralTable

from conftest import PIN_COUNT, ANALOG_OFFSET, capability_body, analog_mapping_body


def test_apply_capabilities_builds_pin_table():
    state = SessionState()
    state.apply_capabilities(np.array(capability_body(), dtype=np.uint8))

    assert len(state.pins) == PIN_COUNT
    assert state.pins[0].supported_modes == ()
    assert state.pins[2].supported_modes == (PinModes.INPUT, PinModes.OUTPUT, PinModes.PULLUP)
    assert state.pins[3].supports(PinModes.PWM)
    assert state.pins[3].resolutions[PinModes.PWM] == 8
    assert state.pins[ANALOG_OFFSET].resolutions[PinModes.ANALOG] == 10
    assert all(pin.index == index for index, pin in enumerate(state.pins))


def test_apply_capabilities_deduplicates_modes():
    state = SessionState()
    state.apply_capabilities(np.array([0, 1, 1, 1, 0, 1, 0x7F], dtype=np.uint8))
    assert state.pins[0].supported_modes == (0, 1)


def test_apply_capabilities_is_idempotent():
    state = SessionState()
    body = np.array(capability_body(), dtype=np.uint8)
    state.apply_capabilities(body)
    state.pins[5].mode = PinModes.OUTPUT
    pins = list(state.pins)

    state.apply_capabilities(body)
    assert len(state.pins) == PIN_COUNT
    assert all(first is second for first, second in zip(pins, state.pins))
    assert state.pins[5].mode == PinModes.OUTPUT


def test_apply_analog_mapping():
    state = SessionState()
    state.apply_capabilities(np.array(capability_body(), dtype=np.uint8))
    state.apply_analog_mapping(np.array(analog_mapping_body(), dtype=np.uint8))

    assert state.analog_pins == list(range(ANALOG_OFFSET, PIN_COUNT))
    assert state.analog_channels[0] == ANALOG_OFFSET
    assert state.pins[ANALOG_OFFSET + 2].analog_channel == 2
    assert state.pins[2].analog_channel is None

    # Re-applying the reply produces the same mapping.
    state.apply_analog_mapping(np.array(analog_mapping_body(), dtype=np.uint8))
    assert state.analog_pins == list(range(ANALOG_OFFSET, PIN_COUNT))


def test_apply_analog_mapping_keeps_pin_table_length():
    state = SessionState()
    # Four pins that only support the INPUT mode.
    state.apply_capabilities(np.array([0, 1, 0x7F] * 4, dtype=np.uint8))
    state.apply_analog_mapping(np.array([0x7F, 0x7F, 0x7F, 0x7F, 0, 1], dtype=np.uint8))

    assert len(state.pins) == 4
    assert state.analog_pins == []
    assert state.analog_channels == {}


def test_apply_analog_mapping_skips_pins_without_analog_mode():
    state = SessionState()
    state.apply_capabilities(np.array([0, 1, 0x7F, 0, 1, 2, 10, 0x7F], dtype=np.uint8))
    state.apply_analog_mapping(np.array([0, 1], dtype=np.uint8))

    assert state.pins[0].analog_channel is None
    assert state.pins[1].analog_channel == 1
    assert state.analog_pins == [1]
    assert state.analog_channels == {1: 1}
    assert all(state.pins[index].supports(PinModes.ANALOG) for index in state.analog_pins)


def test_apply_analog_mapping_without_capabilities():
    state = SessionState()
    state.apply_analog_mapping(np.array([0x7F, 0x7F, 0, 1], dtype=np.uint8))

    assert len(state.pins) == 4
    assert state.analog_pins == [2, 3]
    assert state.pins[3].supports(PinModes.ANALOG)
    assert not state.pins[0].supports(PinModes.ANALOG)


def test_apply_pin_state():
    state = SessionState()
    state.apply_capabilities(np.array(capability_body(), dtype=np.uint8))

    pin = state.apply_pin_state(np.array([3, PinModes.PWM, 0x7F, 0x01], dtype=np.uint8))
    assert pin is state.pins[3]
    assert pin.mode == PinModes.PWM
    assert pin.state == 0xFF

    # Unknown pins and truncated replies are ignored.
    assert state.apply_pin_state(np.array([99, 1, 0], dtype=np.uint8)) is None
    assert state.apply_pin_state(np.array([3, 1], dtype=np.uint8)) is None


def test_apply_pins_from_descriptions():
    state = SessionState()
    state.apply_pins(
        [{"supported_modes": [0, 1]}, {"supported_modes": [0, 1]}, Pin(index=0, supported_modes=(0, 1, 2))],
        analog_pins=[2],
    )
    assert [pin.index for pin in state.pins] == [0, 1, 2]
    assert state.analog_pins == [2]
    assert state.analog_channels == {0: 2}
    assert state.pins[2].analog_channel == 0


def test_apply_pins_adds_analog_mode_to_analog_pins():
    state = SessionState()
    state.apply_pins([{"supported_modes": [0, 1], "analog_channel": 0}])
    assert state.pins[0].supports(PinModes.ANALOG)


def test_apply_pins_from_analog_pins_only():
    state = SessionState()
    state.apply_pins(None, analog_pins=(14, 15, 16, 17, 18, 19))

    assert len(state.pins) == 20
    assert state.analog_pins == [14, 15, 16, 17, 18, 19]
    assert state.analog_channels[1] == 15
    assert state.pins[14].supported_modes == (PinModes.ANALOG,)
    assert state.pins[2].supported_modes == ()

    state.apply_pins(None)
    assert state.pins == []


def test_i2c_peripheral_table_defaults_and_merging():
    table = I2CPeripheralTable()
    assert not table.enabled
    assert table.settings(0) == {"stop_tx": True}
    assert 0 in table

    table.configure(5, {"whatever": True})
    assert table.as_dict() == {0: {"stop_tx": True}, 5: {"stop_tx": True, "whatever": True}}
    table.configure(5, {"stop_tx": False})
    assert table.settings(5) == {"stop_tx": False, "whatever": True}
    assert len(table) == 2
    assert table.delay == 0


def test_sysex_registry_register_and_restore():
    registry = SysexRegistry()

    @registry.handler(0x71)
    def builtin(board, body):
        pass

    def custom(board, body):
        pass

    assert registry.get(0x71) is builtin
    registry.register(0x71, custom)
    assert registry.get(0x71) is custom
    registry.register(0x01, custom)

    registry.unregister(0x71)
    assert 0x71 not in registry
    assert registry.get(0x71) is None

    registry.restore_defaults()
    assert registry.get(0x71) is builtin
    assert 0x01 not in registry


@pytest.mark.parametrize("command", [-1, 0x80, 0xF0])
def test_sysex_registry_rejects_non_7bit_identifiers(command):
    with pytest.raises(UsageError, match=r"Expected a 7-bit command identifier between 0 and 127"):
        SysexRegistry().register(command, lambda board, body: None)
