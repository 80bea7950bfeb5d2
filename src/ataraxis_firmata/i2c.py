"""This module provides the I2CInterface class that exposes the I2C sub-protocol of a board session.

The firmware acts as the I2C bus controller. The host enables the bus with config(), then issues write, one-shot read
and continuous read requests addressed to peripherals. Read replies are delivered to the handlers registered for the
(address, register) pair of the request. Continuous reads repeat until stop() is called for the peripheral.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional
from collections.abc import Iterable

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import console

from .codec import encode, decode, split_7bit
from .errors import ProtocolError
from .events import BoardEvents
from .session import SYSEX_RESPONSE
from .messages import sysex
from .constants import (
    I2CModes,
    SysexCommands,
    I2C_END_TX_MASK,
    I2C_READ_WRITE_SHIFT,
    I2C_10BIT_ADDRESS_MASK,
)

if TYPE_CHECKING:
    from .board import Board


def _as_list(data: Any) -> list[int]:
    """Converts a single integer or an iterable of integers to a list of integers."""
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes)):
        return [int(value) for value in data]
    if isinstance(data, bytes):
        return list(data)
    return [int(data)]


class I2CInterface:
    """Builds I2C requests and routes I2C replies for a single board session.

    Args:
        board: The board session that owns the interface.

    Attributes:
        _board: The board session that owns the interface.
    """

    def __init__(self, board: "Board") -> None:
        self._board = board

    def __repr__(self) -> str:
        return f"I2CInterface(peripherals={self._board.state.i2c})"

    def config(self, delay: int = 0, address: Optional[int] = None, settings: Optional[dict[str, Any]] = None) -> None:
        """Enables the I2C bus and configures the session-wide read delay and, optionally, a peripheral.

        This method has to be called at least once before any other I2C method. Calling it again updates the delay and
        merges the settings of the addressed peripheral.

        Args:
            delay: The delay, in microseconds, between writing the register and reading the data of read requests.
                Some peripherals need it to prepare the data. Applies to all peripherals.
            address: The address of the peripheral to configure. If None, only the delay is configured.
            settings: The peripheral settings to merge over the existing (or default) ones. The 'stop_tx' key
                determines whether the firmware sends a stop condition between the register write and the data read.
        """
        table = self._board.state.i2c
        table.delay = int(delay)
        table.enabled = True
        if address is not None:
            table.configure(address, settings)

        self._board.transmit(sysex(SysexCommands.I2C_CONFIG, split_7bit(table.delay, 2)))

    def write(self, address: int, register_or_data: Any, data: Any = None) -> None:
        """Writes the data to the peripheral.

        Args:
            address: The address of the peripheral.
            register_or_data: If data is not provided, the byte or bytes to write. Otherwise, the register to write to.
            data: The byte or bytes to write to the register.
        """
        payload = _as_list(register_or_data) if data is None else [int(register_or_data), *_as_list(data)]
        self._request(address, I2CModes.WRITE, encode(payload))

    def write_register(self, address: int, register: int, value: Any) -> None:
        """Writes the byte (or bytes) to the register of the peripheral."""
        self._request(address, I2CModes.WRITE, encode([int(register), *_as_list(value)]))

    def read(
        self,
        address: int,
        length: int,
        handler: Callable[[list[int]], Any],
        register: Optional[int] = None,
    ) -> None:
        """Requests the firmware to continuously read data from the peripheral.

        The handler is called with the list of read bytes every time the firmware reports new data, until stop() is
        called for the peripheral.

        Args:
            address: The address of the peripheral.
            length: The number of bytes to read.
            handler: The function to call with each reply.
            register: The register to read from. If None, the data is read without writing the register first.
        """
        self._read(address, I2CModes.CONTINUOUS_READ, length, register)
        self._board.events.on(BoardEvents.I2C_REPLY, handler, key=(int(address), int(register or 0)))

    def read_once(
        self,
        address: int,
        length: int,
        handler: Callable[[list[int]], Any],
        register: Optional[int] = None,
    ) -> None:
        """Requests the firmware to read data from the peripheral once. The handler is called exactly once."""
        self._read(address, I2CModes.READ, length, register)
        self._board.events.once(BoardEvents.I2C_REPLY, handler, key=(int(address), int(register or 0)))

    def stop(self, address: int, register: Optional[int] = None) -> None:
        """Stops the continuous reading of the peripheral and removes the handlers registered for it."""
        self._request(address, I2CModes.STOP_READING, np.zeros(0, dtype=np.uint8))
        self._board.events.off(BoardEvents.I2C_REPLY, key=(int(address), int(register or 0)))

    def handle_reply(self, body: NDArray[np.uint8]) -> None:
        """Decodes the I2C_REPLY body and delivers the data to the handlers of the (address, register) pair."""
        if len(body) < 4:
            return
        address = int(body[0]) | (int(body[1]) << 7)
        register = int(body[2]) | (int(body[3]) << 7)
        data = body[4:]
        data = decode(data[: len(data) - len(data) % 2])
        self._board.events.emit(BoardEvents.I2C_REPLY, data.tolist(), key=(address, register))

    def _read(self, address: int, mode: I2CModes, length: int, register: Optional[int]) -> None:
        """Builds and sends the read request payload: the optional register and the number of bytes to read."""
        payload = [] if register is None else split_7bit(register, 2)
        payload.extend(split_7bit(length, 2))
        self._request(address, mode, payload)

    def _request(self, address: int, mode: I2CModes, payload: Any) -> None:
        """Builds and sends the I2C_REQUEST message.

        Raises:
            ProtocolError: If the I2C bus has not been enabled via config().
        """
        table = self._board.state.i2c
        if not table.enabled:
            message = (
                f"Unable to send the I2C request to address {address}: i2c not enabled. Call the config() method of "
                f"the I2C interface before sending requests."
            )
            console.error(message=message, error=ProtocolError)

        settings = table.settings(address)
        address = int(address)
        mode_byte = int(mode) << I2C_READ_WRITE_SHIFT
        if mode in (I2CModes.READ, I2CModes.CONTINUOUS_READ) and not settings.get("stop_tx", True):
            mode_byte |= I2C_END_TX_MASK
        if address > 0x7F:
            mode_byte |= I2C_10BIT_ADDRESS_MASK | ((address >> 7) & 0x07)

        self._board.transmit(sysex(SysexCommands.I2C_REQUEST, [address & 0x7F, mode_byte, *payload]))


@SYSEX_RESPONSE.handler(SysexCommands.I2C_REPLY)
def _i2c_reply(board: "Board", body: NDArray[np.uint8]) -> None:
    board.i2c.handle_reply(body)
