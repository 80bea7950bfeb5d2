"""This module stores the byte-codes that make up the Firmata wire protocol.

The codes are grouped into IntEnum classes by their role on the wire: base (single-byte-header) commands, sysex
(extended) command identifiers, pin modes and the sub-command codes used by each sub-protocol. The values have to match
the codes used by the firmware (ConfigurableFirmata / StandardFirmata), so do not modify them unless the firmware is
modified accordingly.
"""

from enum import IntEnum


class Commands(IntEnum):
    """Stores the base (non-sysex) command codes.

    Channel-carrying commands (ANALOG_MESSAGE, DIGITAL_MESSAGE, REPORT_ANALOG, REPORT_DIGITAL) use the high nibble as
    the selector and pack the port or channel number into the low nibble. System commands use the full byte value.
    """

    DIGITAL_MESSAGE = 0x90
    """Carries an 8-pin bitmask for one digital port. The low nibble stores the port number."""

    REPORT_ANALOG = 0xC0
    """Enables or disables the periodic reporting of one analog channel."""

    REPORT_DIGITAL = 0xD0
    """Enables or disables the change-driven reporting of one digital port."""

    ANALOG_MESSAGE = 0xE0
    """Carries a 14-bit analog (or PWM) value for one channel. The low nibble stores the channel number."""

    START_SYSEX = 0xF0
    """Opens an extended (sysex) message envelope."""

    PIN_MODE = 0xF4
    """Sets the mode of a single pin."""

    END_SYSEX = 0xF7
    """Closes an extended (sysex) message envelope."""

    REPORT_VERSION = 0xF9
    """Requests or reports the protocol version."""

    SYSTEM_RESET = 0xFF
    """Resets the firmware to its default state."""


class SysexCommands(IntEnum):
    """Stores the identifiers of the extended (sysex) commands.

    The identifier is always the second byte of the sysex envelope and is used to look up the reply handler in the
    process-wide SYSEX_RESPONSE registry.
    """

    SERIAL_MESSAGE = 0x60
    """Hardware and software serial bridge traffic."""

    ANALOG_MAPPING_QUERY = 0x69
    """Requests the analog channel to pin mapping."""

    ANALOG_MAPPING_RESPONSE = 0x6A
    """Reports the analog channel to pin mapping."""

    CAPABILITY_QUERY = 0x6B
    """Requests the supported modes and resolutions of every pin."""

    CAPABILITY_RESPONSE = 0x6C
    """Reports the supported modes and resolutions of every pin."""

    PIN_STATE_QUERY = 0x6D
    """Requests the mode and state of a single pin."""

    PIN_STATE_RESPONSE = 0x6E
    """Reports the mode and state of a single pin."""

    EXTENDED_ANALOG = 0x6F
    """Writes an analog value to a pin above 15 or a value wider than 14 bits."""

    SERVO_CONFIG = 0x70
    """Configures the pulse range of a servo pin."""

    STRING_DATA = 0x71
    """Carries a NUL-terminated string encoded as 7-bit pairs."""

    STEPPER = 0x72
    """Stepper motor configuration, motion and completion messages."""

    ONEWIRE_DATA = 0x73
    """1-Wire bus requests and replies."""

    PULSE_IN = 0x74
    """Reserved for pulse-in measurements. Not used by the host-side engine."""

    PING_READ = 0x75
    """Ultrasonic ranging (pulse out, then time the echo)."""

    I2C_REQUEST = 0x76
    """I2C read and write requests."""

    I2C_REPLY = 0x77
    """I2C read replies."""

    I2C_CONFIG = 0x78
    """Enables the I2C bus and sets the read delay."""

    QUERY_FIRMWARE = 0x79
    """Requests or reports the firmware name and version."""

    SAMPLING_INTERVAL = 0x7A
    """Sets the analog sampling and I2C polling interval in milliseconds."""


class PinModes(IntEnum):
    """Stores the pin mode codes used by PIN_MODE commands and capability replies."""

    INPUT = 0x00
    OUTPUT = 0x01
    ANALOG = 0x02
    PWM = 0x03
    SERVO = 0x04
    SHIFT = 0x05
    I2C = 0x06
    ONEWIRE = 0x07
    STEPPER = 0x08
    SERIAL = 0x0A
    PULLUP = 0x0B
    PING_READ = 0x75
    IGNORE = 0x7F
    """Used locally to mark pins that should be skipped. Never sent to the firmware as a real mode."""


# Pins in these modes receive the values carried by digital port reports. All other pins keep their value.
INPUT_MODES: frozenset[int] = frozenset({PinModes.INPUT, PinModes.PULLUP})


class I2CModes(IntEnum):
    """Stores the read/write mode selectors packed into bits 3-4 of the I2C request mode byte."""

    WRITE = 0x00
    READ = 0x01
    CONTINUOUS_READ = 0x02
    STOP_READING = 0x03


# The I2C request mode byte layout. Bit 6 requests a restart (no stop condition) between the write of the register
# and the read. Bit 5 flags 10-bit addressing, in which case bits 0-2 carry the upper address bits.
I2C_READ_WRITE_SHIFT = 3
I2C_END_TX_MASK = 0x40
I2C_10BIT_ADDRESS_MASK = 0x20


class OneWireCommands(IntEnum):
    """Stores the 1-Wire sub-command codes.

    Requests that carry a body (device address, read length, correlation id, delay or data) are sent with one or more
    of the READ / DELAY / WRITE bits set, which the firmware uses to decide which body fields to act on.
    """

    RESET = 0x01
    SKIP = 0x02
    SELECT = 0x04
    READ = 0x08
    DELAY = 0x10
    WRITE = 0x20
    SEARCH_REQUEST = 0x40
    CONFIG_REQUEST = 0x41
    SEARCH_REPLY = 0x42
    READ_REPLY = 0x43
    SEARCH_ALARMS_REQUEST = 0x44
    SEARCH_ALARMS_REPLY = 0x45


ONEWIRE_WITHDATA_REQUEST_BITS = 0x3C


class SerialCommands(IntEnum):
    """Stores the serial bridge sub-command codes. The port identifier is OR'ed into the low nibble."""

    CONFIG = 0x10
    WRITE = 0x20
    READ = 0x30
    REPLY = 0x40
    CLOSE = 0x50
    FLUSH = 0x60
    LISTEN = 0x70


class SerialReadModes(IntEnum):
    """Stores the serial bridge read modes."""

    CONTINUOUS_READ = 0x00
    STOP_READING = 0x01


class SerialPorts(IntEnum):
    """Stores the serial port identifiers. Hardware ports use 0-3, software (bit-banged) ports use 8-11."""

    HW_SERIAL0 = 0x00
    HW_SERIAL1 = 0x01
    HW_SERIAL2 = 0x02
    HW_SERIAL3 = 0x03
    SW_SERIAL0 = 0x08
    SW_SERIAL1 = 0x09
    SW_SERIAL2 = 0x0A
    SW_SERIAL3 = 0x0B


# Port identifiers at or above this value address software serial ports, which require explicit rx and tx pins.
SOFTWARE_SERIAL_THRESHOLD = 0x08


class StepperCommands(IntEnum):
    """Stores the stepper sub-command codes."""

    CONFIG = 0x00
    STEP = 0x01


class StepperTypes(IntEnum):
    """Stores the stepper driver interface types."""

    DRIVER = 0x01
    TWO_WIRE = 0x02
    FOUR_WIRE = 0x04


class StepperDirections(IntEnum):
    """Stores the stepper rotation directions."""

    CCW = 0x00
    CW = 0x01


# Protocol limits.
MINIMUM_SAMPLING_INTERVAL = 10
MAXIMUM_SAMPLING_INTERVAL = 65535
DEFAULT_PING_TIMEOUT = 1_000_000
DEFAULT_SERIAL_BAUDRATE = 57600
