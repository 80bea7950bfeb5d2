"""This module provides the OneWireInterface class that exposes the 1-Wire sub-protocol of a board session.

Unlike other sub-protocols, 1-Wire requests pack their body with the continuous 7-bit encoding (see
codec.pack_7bit()). The body of every data-carrying request has a fixed 16-byte header followed by the data to write:

    bytes 0-7     the address of the target device (all zeroes for requests that do not select a device)
    bytes 8-9     the number of bytes to read (little-endian)
    bytes 10-11   the correlation id echoed back by the read reply (little-endian)
    bytes 12-15   the delay in microseconds (little-endian)
    bytes 16+     the data to write

Read replies are matched to the waiting handler strictly by their correlation id. Search replies are matched by pin.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional
from collections.abc import Iterable

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import LogLevel, console

from .codec import pack_7bit, unpack_7bit
from .errors import UsageError
from .events import BoardEvents
from .session import SYSEX_RESPONSE
from .messages import sysex, check_7bit
from .constants import SysexCommands, OneWireCommands, ONEWIRE_WITHDATA_REQUEST_BITS

if TYPE_CHECKING:
    from .board import Board

_HEADER_SIZE = 16
_ADDRESS_SIZE = 8


class OneWireInterface:
    """Builds 1-Wire requests and routes 1-Wire replies for a single board session.

    Args:
        board: The board session that owns the interface.

    Attributes:
        _board: The board session that owns the interface.
        _generator: The numpy random generator used to draw correlation ids.
    """

    def __init__(self, board: "Board") -> None:
        self._board = board
        self._generator = np.random.default_rng()

    def __repr__(self) -> str:
        return "OneWireInterface()"

    def config(self, pin: int, parasitic_power: bool = True) -> None:
        """Configures the pin as a 1-Wire bus.

        Args:
            pin: The pin to use as the bus.
            parasitic_power: Determines whether the firmware powers the devices through the data line.
        """
        self._board.transmit(
            sysex(
                SysexCommands.ONEWIRE_DATA,
                [OneWireCommands.CONFIG_REQUEST, check_7bit("pin", pin), 0x01 if parasitic_power else 0x00],
            )
        )

    def search(self, pin: int, handler: Callable[[list[tuple[int, ...]]], Any]) -> None:
        """Searches the bus for devices. The handler is called once with the list of discovered device addresses."""
        self._board.events.once(BoardEvents.ONEWIRE_SEARCH_REPLY, handler, key=int(pin))
        self._board.transmit(sysex(SysexCommands.ONEWIRE_DATA, [OneWireCommands.SEARCH_REQUEST, check_7bit("pin", pin)]))

    def search_alarms(self, pin: int, handler: Callable[[list[tuple[int, ...]]], Any]) -> None:
        """Searches the bus for devices in the alarmed state. The handler is called once with their addresses."""
        self._board.events.once(BoardEvents.ONEWIRE_SEARCH_ALARMS_REPLY, handler, key=int(pin))
        self._board.transmit(
            sysex(SysexCommands.ONEWIRE_DATA, [OneWireCommands.SEARCH_ALARMS_REQUEST, check_7bit("pin", pin)])
        )

    def reset(self, pin: int) -> None:
        """Resets all devices on the bus."""
        self._request(pin, OneWireCommands.RESET)

    def delay(self, pin: int, microseconds: int) -> None:
        """Requests the firmware to pause the bus for the specified number of microseconds."""
        self._request(pin, OneWireCommands.DELAY, delay=microseconds)

    def write(self, pin: int, device: Any, data: Any) -> None:
        """Selects the device and writes the data (a single byte or a sequence of bytes) to it."""
        self._request(pin, OneWireCommands.WRITE, device=device, data=data)

    def read(self, pin: int, device: Any, length: int, handler: Callable[[list[int]], Any]) -> None:
        """Selects the device and reads the requested number of bytes from it.

        The handler is called once with the list of read bytes.
        """
        correlation_id = self._register_read(handler)
        self._request(pin, OneWireCommands.READ, device=device, length=length, correlation_id=correlation_id)

    def write_and_read(
        self, pin: int, device: Any, data: Any, length: int, handler: Callable[[list[int]], Any]
    ) -> None:
        """Selects the device, writes the data to it and then reads the requested number of bytes.

        The handler is called once with the list of read bytes. This is typically used to issue a command to a device
        and read back its response, for example to read the scratchpad of a temperature sensor.
        """
        correlation_id = self._register_read(handler)
        self._request(
            pin,
            OneWireCommands.WRITE | OneWireCommands.READ,
            device=device,
            length=length,
            correlation_id=correlation_id,
            data=data,
        )

    def handle_reply(self, body: NDArray[np.uint8]) -> None:
        """Routes the ONEWIRE_DATA reply to the handlers waiting for it."""
        if len(body) < 2:
            return
        command = int(body[0])
        pin = int(body[1])
        decoded = unpack_7bit(body[2:])

        if command in (OneWireCommands.SEARCH_REPLY, OneWireCommands.SEARCH_ALARMS_REPLY):
            devices = [
                tuple(int(value) for value in decoded[start : start + _ADDRESS_SIZE])
                for start in range(0, len(decoded) - _ADDRESS_SIZE + 1, _ADDRESS_SIZE)
            ]
            event = (
                BoardEvents.ONEWIRE_SEARCH_REPLY
                if command == OneWireCommands.SEARCH_REPLY
                else BoardEvents.ONEWIRE_SEARCH_ALARMS_REPLY
            )
            self._board.events.emit(event, devices, key=pin)
        elif command == OneWireCommands.READ_REPLY:
            if len(decoded) < 2:
                return
            correlation_id = int(decoded[0]) | (int(decoded[1]) << 8)
            if not self._board.events.emit(
                BoardEvents.ONEWIRE_READ_REPLY, decoded[2:].tolist(), key=correlation_id
            ):
                console.echo(
                    message=f"1-Wire read reply with unknown correlation id {correlation_id} dropped.",
                    level=LogLevel.DEBUG,
                )

    def _register_read(self, handler: Callable[[list[int]], Any]) -> int:
        """Draws a correlation id that is not used by any pending read and subscribes the handler to it."""
        while True:
            correlation_id = int(self._generator.integers(0, 0x10000))
            if not self._board.events.has_listeners(BoardEvents.ONEWIRE_READ_REPLY, key=correlation_id):
                break
        self._board.events.once(BoardEvents.ONEWIRE_READ_REPLY, handler, key=correlation_id)
        return correlation_id

    def _request(
        self,
        pin: int,
        command: int,
        device: Any = None,
        length: int = 0,
        correlation_id: int = 0,
        delay: int = 0,
        data: Any = None,
    ) -> None:
        """Builds and sends the 1-Wire request.

        Requests that carry a device, a read length, a correlation id, a delay or data get the with-data bits set in
        their command byte and the packed 16-byte header (plus data) appended. Other requests consist of the command
        byte and the pin only.
        """
        if data is not None and not isinstance(data, Iterable):
            data = [int(data)]
        with_data = device is not None or length or correlation_id or delay or data is not None

        payload = [int(command), check_7bit("pin", pin)]
        if with_data:
            payload[0] |= ONEWIRE_WITHDATA_REQUEST_BITS
            body = np.zeros(_HEADER_SIZE, dtype=np.uint8)
            if device is not None:
                address = np.asarray(list(device), dtype=np.uint8)
                if address.size != _ADDRESS_SIZE:
                    message = (
                        f"Unable to build the 1-Wire request. Expected an 8-byte device address, but encountered "
                        f"{address.size} bytes."
                    )
                    console.error(message=message, error=UsageError)
                body[0:8] = address
            body[8:10] = [length & 0xFF, (length >> 8) & 0xFF]
            body[10:12] = [correlation_id & 0xFF, (correlation_id >> 8) & 0xFF]
            body[12:16] = [(delay >> shift) & 0xFF for shift in (0, 8, 16, 24)]
            if data is not None:
                body = np.concatenate((body, np.asarray(list(data), dtype=np.uint8)))
            payload.extend(int(value) for value in pack_7bit(body))

        self._board.transmit(sysex(SysexCommands.ONEWIRE_DATA, payload))


@SYSEX_RESPONSE.handler(SysexCommands.ONEWIRE_DATA)
def _onewire_reply(board: "Board", body: NDArray[np.uint8]) -> None:
    board.onewire.handle_reply(body)
