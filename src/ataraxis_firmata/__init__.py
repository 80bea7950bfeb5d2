"""This library provides classes and methods that enable bidirectional communication with microcontrollers running
Firmata-compatible firmware.

The Board class is the main entry point: it binds a byte transport (SerialTransport for real hardware, MockTransport
for testing) to a protocol session and exposes pin I/O, queries, custom sysex messages and the I2C, 1-Wire, serial
bridge, stepper, ping and servo sub-protocols.
"""

from .board import Board, BoardConfiguration
from .codec import encode, decode, join_7bit, pack_7bit, split_7bit, unpack_7bit
from .errors import CodecError, UsageError, FirmataError, ProtocolError, HandshakeError, TransportError
from .events import BoardEvents, EventEmitter
from .parser import MessageParser
from .session import SYSEX_RESPONSE, Pin, Version, Firmware, SessionState, SysexRegistry, I2CPeripheralTable
from .constants import (
    Commands,
    I2CModes,
    PinModes,
    SerialPorts,
    StepperTypes,
    SysexCommands,
    SerialCommands,
    OneWireCommands,
    SerialReadModes,
    StepperCommands,
    StepperDirections,
)
from .handshake import HandshakeStates, HandshakeController
from .transport import Transport, MockTransport, SerialTransport, find_port, is_acceptable_port, list_available_ports

__all__ = [
    "Board",
    "BoardConfiguration",
    "BoardEvents",
    "CodecError",
    "Commands",
    "EventEmitter",
    "Firmware",
    "FirmataError",
    "HandshakeController",
    "HandshakeError",
    "HandshakeStates",
    "I2CModes",
    "I2CPeripheralTable",
    "MessageParser",
    "MockTransport",
    "OneWireCommands",
    "Pin",
    "PinModes",
    "ProtocolError",
    "SYSEX_RESPONSE",
    "SerialCommands",
    "SerialPorts",
    "SerialReadModes",
    "SerialTransport",
    "SessionState",
    "StepperCommands",
    "StepperDirections",
    "StepperTypes",
    "SysexCommands",
    "SysexRegistry",
    "Transport",
    "TransportError",
    "UsageError",
    "Version",
    "decode",
    "encode",
    "find_port",
    "is_acceptable_port",
    "join_7bit",
    "list_available_ports",
    "pack_7bit",
    "split_7bit",
    "unpack_7bit",
]
