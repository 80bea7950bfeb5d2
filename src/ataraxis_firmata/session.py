"""This module provides the data structures that make up a board session: the Pin and SessionState classes, the
I2CPeripheralTable, and the process-wide sysex handler registry (SYSEX_RESPONSE).

SessionState is a passive container. It is populated by the Board class as handshake replies arrive (or directly from
the board configuration when capability discovery is skipped) and is mutated by incoming digital / analog reports and
by consumer-facing write operations. The parsing methods exposed by SessionState (apply_capabilities(),
apply_analog_mapping(), apply_pin_state()) are pure functions of the reply body and the current state, which makes
re-applying the same reply idempotent.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional
from dataclasses import field, dataclass

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import LogLevel, console

from .errors import UsageError
from .constants import PinModes

if TYPE_CHECKING:
    from .board import Board

# Marks the end of one pin's (mode, resolution) list in capability replies and non-analog pins in analog mapping
# replies.
_PIN_TERMINATOR = 0x7F


@dataclass
class Pin:
    """Stores the known state of a single physical pin.

    Attributes:
        index: The physical pin number.
        supported_modes: The ordered, de-duplicated modes reported by the capability query.
        resolutions: Maps each supported mode to its resolution in bits.
        mode: The last mode set by the host or reported by a pin state query. None until either happens.
        value: The last known value of the pin. Updated by reports for input pins and by writes for output pins.
        report: Determines whether the firmware has been asked to report changes of this pin.
        analog_channel: The analog channel mapped to this pin. None for pins that are not analog-capable.
        state: The last state reported by a pin state query.
    """

    index: int
    supported_modes: tuple[int, ...] = ()
    resolutions: dict[int, int] = field(default_factory=dict)
    mode: Optional[int] = None
    value: int = 0
    report: bool = False
    analog_channel: Optional[int] = None
    state: Optional[int] = None

    def supports(self, mode: int) -> bool:
        """Returns True if the pin supports the requested mode."""
        return int(mode) in self.supported_modes


@dataclass(frozen=True)
class Version:
    """Stores a {major, minor} version pair."""

    major: int = 0
    minor: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class Firmware:
    """Stores the name and version of the firmware reported by the QUERY_FIRMWARE reply."""

    name: str = ""
    version: Version = Version()


class I2CPeripheralTable:
    """Tracks the per-address settings of I2C peripherals and the session-wide I2C read delay.

    Entries are created lazily, using the default {'stop_tx': True} settings, the first time any I2C operation
    references an address. The session-wide delay is stored as a separate attribute, so it can never collide with a
    peripheral address.

    Attributes:
        delay: The delay, in microseconds, the firmware waits between writing the register and reading the data.
        enabled: Tracks whether I2C has been configured at least once for the session.
        _peripherals: Maps peripheral addresses to their settings dictionaries.
    """

    def __init__(self) -> None:
        self.delay: int = 0
        self.enabled: bool = False
        self._peripherals: dict[int, dict[str, Any]] = {}

    def __repr__(self) -> str:
        return f"I2CPeripheralTable(enabled={self.enabled}, delay={self.delay}, peripherals={self._peripherals})"

    def __contains__(self, address: int) -> bool:
        return address in self._peripherals

    def __len__(self) -> int:
        return len(self._peripherals)

    def settings(self, address: int) -> dict[str, Any]:
        """Returns the settings of the peripheral, creating the default entry if the address is new."""
        return self._peripherals.setdefault(int(address), {"stop_tx": True})

    def configure(self, address: int, settings: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Merges the input settings over the (possibly new) entry of the peripheral and returns the merged entry."""
        entry = self.settings(address)
        if settings:
            entry.update(settings)
        return entry

    def as_dict(self) -> dict[int, dict[str, Any]]:
        """Returns a snapshot of the peripheral table."""
        return {address: dict(settings) for address, settings in self._peripherals.items()}


class SessionState:
    """Aggregates the protocol state of a single board session.

    Attributes:
        pins: The ordered pin table. The list index matches the physical pin number.
        analog_pins: The ordered list of analog-capable pin numbers.
        analog_channels: Maps analog channels to pin numbers.
        version: The protocol version reported by the board.
        firmware: The firmware name and version reported by the board.
        is_ready: Tracks whether the handshake has completed.
        ports: Caches the last value written to each digital port, used to build digital port messages.
        i2c: The I2C peripheral table.
    """

    def __init__(self) -> None:
        self.pins: list[Pin] = []
        self.analog_pins: list[int] = []
        self.analog_channels: dict[int, int] = {}
        self.version: Version = Version()
        self.firmware: Firmware = Firmware()
        self.is_ready: bool = False
        self.ports: list[int] = [0] * 16
        self.i2c: I2CPeripheralTable = I2CPeripheralTable()

    def __repr__(self) -> str:
        return (
            f"SessionState(pins={len(self.pins)}, analog_pins={self.analog_pins}, version={self.version}, "
            f"firmware={self.firmware.name!r}, ready={self.is_ready})"
        )

    def pin(self, index: int) -> Optional[Pin]:
        """Returns the pin with the requested index or None, if the pin is not known."""
        if 0 <= index < len(self.pins):
            return self.pins[index]
        return None

    def apply_capabilities(self, body: NDArray[np.uint8]) -> None:
        """Populates the pin table from the body of a CAPABILITY_RESPONSE reply.

        The body stores, for each pin, a sequence of (mode, resolution) pairs terminated by 0x7F. The pin table is only
        created if it is empty. Otherwise, the supported modes of the existing pins are refreshed in place, which makes
        re-applying the same reply a no-op.
        """
        reported: list[tuple[tuple[int, ...], dict[int, int]]] = []
        modes: list[int] = []
        resolutions: dict[int, int] = {}
        index = 0
        while index < len(body):
            value = int(body[index])
            if value == _PIN_TERMINATOR:
                reported.append((tuple(modes), resolutions))
                modes, resolutions = [], {}
                index += 1
                continue

            resolution = int(body[index + 1]) if index + 1 < len(body) else 0
            if value not in modes:
                modes.append(value)
            resolutions[value] = resolution
            index += 2

        if not self.pins:
            self.pins = [Pin(index=number) for number in range(len(reported))]

        for pin, (supported, pin_resolutions) in zip(self.pins, reported):
            pin.supported_modes = supported
            pin.resolutions = pin_resolutions

        console.echo(message=f"Capability reply describes {len(reported)} pins.", level=LogLevel.DEBUG)

    def apply_analog_mapping(self, body: NDArray[np.uint8]) -> None:
        """Populates the analog channel mapping from the body of an ANALOG_MAPPING_RESPONSE reply.

        The body stores one byte per pin: the analog channel of the pin, or 0x7F for pins that are not analog-capable.
        The mapping is rebuilt from scratch, so re-applying the same reply is a no-op.

        If the pin table is empty (the mapping arrived before any capability reply), the table is created from the
        mapping and the mapped pins are marked as ANALOG-capable. Otherwise, the table length is fixed: entries past its
        end are ignored, and channels are only assigned to pins that support the ANALOG mode.
        """
        channels = [int(value) for value in body]
        if not self.pins:
            self.pins = [
                Pin(index=index, supported_modes=() if channel == _PIN_TERMINATOR else (int(PinModes.ANALOG),))
                for index, channel in enumerate(channels)
            ]

        ignored = len(channels) - len(self.pins)
        if ignored > 0:
            console.echo(
                message=f"Analog mapping reply describes {ignored} pins past the end of the pin table, ignored.",
                level=LogLevel.DEBUG,
            )

        self.analog_pins = []
        self.analog_channels = {}
        for pin, channel in zip(self.pins, channels):
            if channel == _PIN_TERMINATOR or not pin.supports(PinModes.ANALOG):
                pin.analog_channel = None
                continue

            pin.analog_channel = channel
            self.analog_pins.append(pin.index)
            self.analog_channels[channel] = pin.index

    def apply_pin_state(self, body: NDArray[np.uint8]) -> Optional[Pin]:
        """Updates the pin described by the body of a PIN_STATE_RESPONSE reply.

        The body stores the pin number, its mode and one to three 7-bit groups of the pin state, least significant
        group first.

        Returns:
            The updated pin, or None if the reply references an unknown pin or is truncated.
        """
        if len(body) < 3:
            return None
        pin = self.pin(int(body[0]))
        if pin is None:
            return None

        pin.mode = int(body[1])
        pin.state = sum(int(group) << (7 * shift) for shift, group in enumerate(body[2:5]))
        return pin

    def apply_pins(self, pins: Any, analog_pins: Any = None) -> None:
        """Populates the pin table from externally supplied descriptions. Used when capability discovery is skipped.

        Args:
            pins: A sequence of Pin instances, or of dictionaries with 'supported_modes' and (optionally)
                'analog_channel' keys. Entries are indexed in order. If None, a table of pins without known modes is
                created that extends up to the highest pin number in 'analog_pins'.
            analog_pins: The optional sequence of analog-capable pin numbers. When provided, the analog channels are
                assigned in the order of this sequence.
        """
        if pins is None:
            pins = [{} for _ in range(max((int(index) for index in analog_pins or ()), default=-1) + 1)]

        self.pins = []
        for index, description in enumerate(pins):
            if isinstance(description, Pin):
                pin = description
                pin.index = index
            else:
                pin = Pin(
                    index=index,
                    supported_modes=tuple(int(mode) for mode in description.get("supported_modes", ())),
                    analog_channel=description.get("analog_channel"),
                )
            self.pins.append(pin)

        if analog_pins is not None:
            for pin in self.pins:
                pin.analog_channel = None
            for channel, index in enumerate(analog_pins):
                if self.pin(int(index)) is not None:
                    self.pins[int(index)].analog_channel = channel

        self.analog_pins = [pin.index for pin in self.pins if pin.analog_channel is not None]
        self.analog_channels = {self.pins[index].analog_channel: index for index in self.analog_pins}  # type: ignore

        # Mirrors the capability-reply invariant: analog channels imply the analog mode.
        for index in self.analog_pins:
            pin = self.pins[index]
            if not pin.supports(PinModes.ANALOG):
                pin.supported_modes = (*pin.supported_modes, int(PinModes.ANALOG))


# The signature of all sysex reply handlers: the board that received the message and the message body.
SysexHandler = Callable[["Board", NDArray[np.uint8]], None]


class SysexRegistry:
    """Maps sysex command identifiers to the handlers that process their replies.

    A single instance of this class (SYSEX_RESPONSE) is shared by all board sessions of the process. The built-in
    handlers are registered by the library modules at import time and can be replaced by the user. Registering a
    handler for an already handled identifier overwrites it. Unregistering sets the slot back to absent, which makes
    the parser silently discard messages with that identifier.

    Notes:
        Since the registry is process-wide, replacing a handler affects all sessions. Register custom handlers before
        starting the traffic.

    Attributes:
        _handlers: Maps sysex identifiers to the currently registered handlers.
        _defaults: Maps sysex identifiers to the built-in handlers. Used by restore_defaults().
    """

    def __init__(self) -> None:
        self._handlers: dict[int, SysexHandler] = {}
        self._defaults: dict[int, SysexHandler] = {}

    def __repr__(self) -> str:
        identifiers = ", ".join(f"0x{identifier:02X}" for identifier in sorted(self._handlers))
        return f"SysexRegistry(handlers=[{identifiers}])"

    def __contains__(self, command: int) -> bool:
        return int(command) in self._handlers

    def register(self, command: int, handler: SysexHandler, *, builtin: bool = False) -> None:
        """Registers the handler for the sysex identifier, overwriting any existing handler.

        Args:
            command: The sysex identifier. Has to be a 7-bit value.
            handler: The function to call with the receiving board and the message body.
            builtin: Determines whether the handler is a library default that restore_defaults() should restore.

        Raises:
            UsageError: If the identifier is not a 7-bit value.
        """
        if not 0 <= int(command) <= 0x7F:
            message = (
                f"Unable to register the sysex handler. Expected a 7-bit command identifier between 0 and 127, but "
                f"encountered {command}."
            )
            console.error(message=message, error=UsageError)
        self._handlers[int(command)] = handler
        if builtin:
            self._defaults[int(command)] = handler

    def unregister(self, command: int) -> None:
        """Removes the handler registered for the sysex identifier, if any."""
        self._handlers.pop(int(command), None)

    def get(self, command: int) -> Optional[SysexHandler]:
        """Returns the handler registered for the sysex identifier, or None."""
        return self._handlers.get(int(command))

    def handler(self, command: int) -> Callable[[SysexHandler], SysexHandler]:
        """Returns a decorator that registers the decorated function as a built-in handler for the identifier."""

        def decorator(function: SysexHandler) -> SysexHandler:
            self.register(command, function, builtin=True)
            return function

        return decorator

    def restore_defaults(self) -> None:
        """Discards all custom handlers and restores the built-in ones."""
        self._handlers = dict(self._defaults)


SYSEX_RESPONSE = SysexRegistry()
