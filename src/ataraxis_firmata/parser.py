"""This module provides the MessageParser class that reconstructs Firmata messages from the unframed byte stream
received from the board.

The Firmata wire format has no packet framing. Instead, every message starts with a command byte (MSB set) and is
followed by data bytes (MSB clear). Base messages (version, analog and digital reports) have a fixed length of three
bytes, while extended (sysex) messages are bracketed by START_SYSEX and END_SYSEX bytes and can have any length. The
parser uses this self-describing structure to resynchronize after corrupted or truncated input: any command byte that
arrives in the middle of an unfinished message discards the unfinished message and starts a new one.
"""

from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import LogLevel, console

from .constants import Commands

# All base messages that the board sends to the host consist of the command byte and two 7-bit data bytes.
_BASE_MESSAGE_SIZE = 3


class MessageParser:
    """Incrementally parses the bytes received from the board and dispatches complete messages.

    The parser does not interpret the messages. Instead, it calls one of the four dispatch callbacks supplied at
    initialization, which are expected to update the session state and emit events. All callbacks are called
    synchronously from feed().

    Notes:
        Sysex messages received before the first version report are discarded. The firmware reports its version on
        every reset, so this filters out the stale replies that were in flight when the host connected.

    Args:
        on_version: Called with the (major, minor) version when a REPORT_VERSION message is parsed.
        on_analog: Called with the (channel, value) pair when an ANALOG_MESSAGE is parsed.
        on_digital: Called with the (port, bitmask) pair when a DIGITAL_MESSAGE is parsed.
        on_sysex: Called with the (command, body) pair when a complete sysex message is parsed. The body does not
            include the START_SYSEX, command and END_SYSEX bytes.
        require_version: Determines whether sysex messages are discarded until the first version report arrives.

    Attributes:
        version_received: Tracks whether at least one version report has been parsed.
        _buffer: The bytes of the message currently being assembled.
        _in_sysex: Tracks whether the buffered message is a sysex message.
    """

    def __init__(
        self,
        on_version: Callable[[int, int], Any],
        on_analog: Callable[[int, int], Any],
        on_digital: Callable[[int, int], Any],
        on_sysex: Callable[[int, NDArray[np.uint8]], Any],
        *,
        require_version: bool = True,
    ) -> None:
        self._on_version = on_version
        self._on_analog = on_analog
        self._on_digital = on_digital
        self._on_sysex = on_sysex
        self._require_version = require_version

        self.version_received: bool = False
        self._buffer: list[int] = []
        self._in_sysex: bool = False

    def __repr__(self) -> str:
        return (
            f"MessageParser(buffered={len(self._buffer)}, in_sysex={self._in_sysex}, "
            f"version_received={self.version_received})"
        )

    @property
    def pending_sysex(self) -> bool:
        """Returns True if an unterminated sysex message is currently buffered."""
        return self._in_sysex

    def reset(self) -> None:
        """Discards the buffered message."""
        self._buffer = []
        self._in_sysex = False

    def restart(self) -> None:
        """Discards the buffered message and forgets the version report. Called when a new connection is opened, so that
        sysex messages are filtered until the board reports its version again.
        """
        self.reset()
        self.version_received = False

    def feed_all(self, data: bytes | bytearray | NDArray[np.uint8]) -> None:
        """Feeds every byte of the input chunk to the parser, in order."""
        for byte in bytes(data):
            self.feed(byte)

    def feed(self, byte: int) -> None:
        """Processes a single received byte.

        Args:
            byte: The received byte value.
        """
        byte = int(byte)

        if self._in_sysex:
            if byte == Commands.END_SYSEX:
                self._dispatch_sysex()
                self.reset()
            elif byte & 0x80:
                console.echo(
                    message=f"Unterminated sysex message discarded on command byte 0x{byte:02X}.",
                    level=LogLevel.DEBUG,
                )
                self.reset()
                self._begin(byte)
            else:
                self._buffer.append(byte)
            return

        if byte & 0x80:
            if self._buffer:
                console.echo(
                    message=f"Incomplete message {self._buffer} discarded on command byte 0x{byte:02X}.",
                    level=LogLevel.DEBUG,
                )
            self.reset()
            self._begin(byte)
            return

        # A data byte can not start a message.
        if not self._buffer:
            return

        self._buffer.append(byte)
        if len(self._buffer) == _BASE_MESSAGE_SIZE:
            self._dispatch_base()
            self.reset()

    def _begin(self, byte: int) -> None:
        """Starts buffering a new message with the input command byte."""
        if byte == Commands.START_SYSEX:
            self._in_sysex = True
        elif byte == Commands.END_SYSEX:
            # A stray terminator without a matching start byte.
            return
        self._buffer = [byte]

    def _dispatch_base(self) -> None:
        """Interprets and dispatches the buffered three-byte base message."""
        first, low, high = self._buffer
        command = first & 0xF0 if first < 0xF0 else first
        value = low | (high << 7)

        if command == Commands.REPORT_VERSION:
            self.version_received = True
            self._on_version(low, high)
        elif command == Commands.ANALOG_MESSAGE:
            self._on_analog(first & 0x0F, value)
        elif command == Commands.DIGITAL_MESSAGE:
            self._on_digital(first & 0x0F, value)
        else:
            # Unknown messages are accumulated up to the base message size to give them a chance to complete and are
            # then dropped without notifying the consumer.
            console.echo(message=f"Unrecognized message {self._buffer} discarded.", level=LogLevel.DEBUG)

    def _dispatch_sysex(self) -> None:
        """Dispatches the buffered sysex message."""
        if len(self._buffer) < 2:
            return
        if self._require_version and not self.version_received:
            console.echo(
                message=f"Sysex message 0x{self._buffer[1]:02X} received before the version report discarded.",
                level=LogLevel.DEBUG,
            )
            return

        self._on_sysex(self._buffer[1], np.array(self._buffer[2:], dtype=np.uint8))
