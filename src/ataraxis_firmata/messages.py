"""This module provides the functions that build the base (non sub-protocol) messages sent from the host to the board.

Each function returns the complete message as a bytes object, ready to be written to the transport. Sub-protocol
messages are built by the sub-protocol interfaces (i2c, onewire, peripherals) on top of the sysex() builder defined here.
"""

from typing import Any

from ataraxis_base_utilities import console

from .codec import encode
from .errors import UsageError
from .constants import Commands, SysexCommands, MINIMUM_SAMPLING_INTERVAL, MAXIMUM_SAMPLING_INTERVAL


def check_7bit(name: str, value: Any) -> int:
    """Verifies that the input value fits into a single wire data byte and returns it as an integer.

    Raises:
        UsageError: If the value is not an integer between 0 and 127.
    """
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0x7F:
        message = (
            f"Unable to build the message. Expected an integer value between 0 and 127 for '{name}' argument, but "
            f"encountered {value} of type {type(value).__name__}."
        )
        console.error(message=message, error=UsageError)
    return int(value)


def sysex(command: int, payload: Any = ()) -> bytes:
    """Wraps the command identifier and payload into a START_SYSEX ... END_SYSEX envelope."""
    return bytes([Commands.START_SYSEX, int(command), *(int(value) for value in payload), Commands.END_SYSEX])


def custom_sysex(payload: Any) -> bytes:
    """Wraps a user-supplied message (command identifier followed by the payload) into a sysex envelope.

    Raises:
        UsageError: If the message is empty or contains values that are not 7-bit safe.
    """
    values = [int(value) for value in payload]
    if not values:
        message = "Unable to send the sysex command. Expected a non-empty message, but encountered an empty message."
        console.error(message=message, error=UsageError)
    for value in values:
        check_7bit(name="message", value=value)
    return sysex(values[0], values[1:])


def report_version() -> bytes:
    """Builds the REPORT_VERSION query."""
    return bytes([Commands.REPORT_VERSION])


def query_firmware() -> bytes:
    """Builds the QUERY_FIRMWARE query."""
    return sysex(SysexCommands.QUERY_FIRMWARE)


def query_capabilities() -> bytes:
    """Builds the CAPABILITY_QUERY query."""
    return sysex(SysexCommands.CAPABILITY_QUERY)


def query_analog_mapping() -> bytes:
    """Builds the ANALOG_MAPPING_QUERY query."""
    return sysex(SysexCommands.ANALOG_MAPPING_QUERY)


def query_pin_state(pin: int) -> bytes:
    """Builds the PIN_STATE_QUERY query for the pin."""
    return sysex(SysexCommands.PIN_STATE_QUERY, [check_7bit("pin", pin)])


def system_reset() -> bytes:
    """Builds the SYSTEM_RESET command."""
    return bytes([Commands.SYSTEM_RESET])


def pin_mode(pin: int, mode: int) -> bytes:
    """Builds the PIN_MODE command."""
    return bytes([Commands.PIN_MODE, check_7bit("pin", pin), check_7bit("mode", int(mode))])


def digital_port(port: int, value: int) -> bytes:
    """Builds the DIGITAL_MESSAGE that sets all 8 pins of the port to the bitmask value."""
    return bytes([Commands.DIGITAL_MESSAGE | (port & 0x0F), value & 0x7F, (value >> 7) & 0x7F])


def analog_write(pin: int, value: int) -> bytes:
    """Builds the message that writes the analog (PWM, servo) value to the pin.

    Pins 0-15 with values that fit into 14 bits use the compact ANALOG_MESSAGE. All other writes use the EXTENDED_ANALOG
    sysex, which carries the pin as a full data byte and as many 7-bit value groups as the value requires.
    """
    pin = check_7bit("pin", pin)
    value = int(value)
    if pin <= 0x0F and value <= 0x3FFF:
        return bytes([Commands.ANALOG_MESSAGE | pin, value & 0x7F, (value >> 7) & 0x7F])

    payload = [pin, value & 0x7F, (value >> 7) & 0x7F]
    if value > 0x00003FFF:
        payload.append((value >> 14) & 0x7F)
    if value > 0x001FFFFF:
        payload.append((value >> 21) & 0x7F)
    if value > 0x0FFFFFFF:
        payload.append((value >> 28) & 0x7F)
    return sysex(SysexCommands.EXTENDED_ANALOG, payload)


def report_analog(channel: int, enable: bool) -> bytes:
    """Builds the REPORT_ANALOG command that enables or disables the reporting of the analog channel."""
    return bytes([Commands.REPORT_ANALOG | (channel & 0x0F), 1 if enable else 0])


def report_digital(port: int, enable: bool) -> bytes:
    """Builds the REPORT_DIGITAL command that enables or disables the reporting of the digital port."""
    return bytes([Commands.REPORT_DIGITAL | (port & 0x0F), 1 if enable else 0])


def clamp_sampling_interval(interval: int) -> int:
    """Clamps the sampling interval to the range supported by the firmware."""
    return max(MINIMUM_SAMPLING_INTERVAL, min(MAXIMUM_SAMPLING_INTERVAL, int(interval)))


def sampling_interval(interval: int) -> bytes:
    """Builds the SAMPLING_INTERVAL command. The interval is clamped to the supported range first."""
    value = clamp_sampling_interval(interval)
    return sysex(SysexCommands.SAMPLING_INTERVAL, [value & 0x7F, (value >> 7) & 0x7F])


def string_data(text: str) -> bytes:
    """Builds the STRING_DATA message. The text is encoded as UTF-8, NUL-terminated and split into 7-bit pairs."""
    return sysex(SysexCommands.STRING_DATA, encode(text.encode("utf-8") + b"\x00"))
