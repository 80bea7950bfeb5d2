"""This module provides the interfaces for the smaller sub-protocols of a board session: the serial bridge, stepper
motors, ultrasonic ping sensors and servos.

Each interface builds its requests on top of the sysex envelope and, where the sub-protocol has replies, registers a
built-in handler in the process-wide SYSEX_RESPONSE registry that routes the replies back to the interface of the
board that received them.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional
from collections.abc import Mapping

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import LogLevel, console

from .codec import encode, decode, split_7bit
from .errors import UsageError, ProtocolError
from .events import BoardEvents
from .session import SYSEX_RESPONSE
from .messages import sysex, check_7bit
from .constants import (
    PinModes,
    StepperTypes,
    SysexCommands,
    SerialCommands,
    StepperCommands,
    SerialReadModes,
    DEFAULT_PING_TIMEOUT,
    DEFAULT_SERIAL_BAUDRATE,
    SOFTWARE_SERIAL_THRESHOLD,
)

if TYPE_CHECKING:
    from .board import Board


class SerialBridgeInterface:
    """Exposes the hardware and software serial ports of the board.

    The port identifier is packed into the low nibble of each sub-command byte. Hardware ports use identifiers 0-3 and
    software ports use identifiers 8-11 (see the SerialPorts enumeration).

    Args:
        board: The board session that owns the interface.
    """

    def __init__(self, board: "Board") -> None:
        self._board = board

    def __repr__(self) -> str:
        return "SerialBridgeInterface()"

    def config(
        self,
        port_id: Optional[int] = None,
        baud: int = DEFAULT_SERIAL_BAUDRATE,
        rx_pin: Optional[int] = None,
        tx_pin: Optional[int] = None,
    ) -> None:
        """Configures the serial port.

        Args:
            port_id: The identifier of the port to configure.
            baud: The baudrate of the port.
            rx_pin: The receive pin. Required for software ports.
            tx_pin: The transmit pin. Required for software ports.

        Raises:
            UsageError: If the port identifier is not provided.
            ProtocolError: If a software port is configured without both pins.
        """
        if port_id is None:
            message = "Unable to configure the serial port. Expected a port identifier, but encountered None."
            console.error(message=message, error=UsageError)

        payload = [SerialCommands.CONFIG | int(port_id), *split_7bit(baud, 3)]  # type: ignore
        if int(port_id) >= SOFTWARE_SERIAL_THRESHOLD:  # type: ignore
            if rx_pin is None or tx_pin is None:
                message = (
                    f"Unable to configure the software serial port {port_id}: missing serial pins. Both 'rx_pin' and "
                    f"'tx_pin' have to be provided, but encountered rx_pin={rx_pin} and tx_pin={tx_pin}."
                )
                console.error(message=message, error=ProtocolError)
            payload.extend((check_7bit("rx_pin", rx_pin), check_7bit("tx_pin", tx_pin)))

        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, payload))

    def write(self, port_id: int, data: Any) -> None:
        """Writes the bytes to the serial port."""
        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, [SerialCommands.WRITE | int(port_id), *encode(data)]))

    def read(self, port_id: int, handler: Callable[[list[int]], Any], max_bytes: Optional[int] = None) -> None:
        """Starts continuously reading the serial port. The handler is called with the list of bytes of each reply.

        Args:
            port_id: The identifier of the port to read.
            handler: The function to call with each reply.
            max_bytes: The maximum number of bytes the firmware sends in each reply. If None, the firmware sends all
                available bytes.
        """
        payload = [SerialCommands.READ | int(port_id), SerialReadModes.CONTINUOUS_READ]
        if max_bytes is not None:
            payload.extend(split_7bit(max_bytes, 2))
        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, payload))
        self._board.events.on(BoardEvents.SERIAL_DATA, handler, key=int(port_id))

    def stop(self, port_id: int) -> None:
        """Stops reading the serial port and removes its handlers."""
        self._board.transmit(
            sysex(SysexCommands.SERIAL_MESSAGE, [SerialCommands.READ | int(port_id), SerialReadModes.STOP_READING])
        )
        self._board.events.off(BoardEvents.SERIAL_DATA, key=int(port_id))

    def close(self, port_id: int) -> None:
        """Closes the serial port."""
        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, [SerialCommands.CLOSE | int(port_id)]))

    def flush(self, port_id: int) -> None:
        """Flushes the transmit buffer of the serial port."""
        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, [SerialCommands.FLUSH | int(port_id)]))

    def listen(self, port_id: int) -> None:
        """Switches the active software serial port. Only one software port can receive at a time.

        Hardware ports always receive, so the request is not sent for them.
        """
        if int(port_id) < SOFTWARE_SERIAL_THRESHOLD:
            return
        self._board.transmit(sysex(SysexCommands.SERIAL_MESSAGE, [SerialCommands.LISTEN | int(port_id)]))

    def handle_reply(self, body: NDArray[np.uint8]) -> None:
        """Decodes the serial bridge reply and delivers the bytes to the handlers of the port."""
        if len(body) < 1 or int(body[0]) & 0xF0 != SerialCommands.REPLY:
            return
        port_id = int(body[0]) & 0x0F
        data = body[1:]
        data = decode(data[: len(data) - len(data) % 2])
        self._board.events.emit(BoardEvents.SERIAL_DATA, data.tolist(), key=port_id)


class StepperInterface:
    """Exposes the stepper motors driven by the board.

    Notes:
        Completion replies carry only the device number. Therefore, at most one move can be pending per device:
        step() raises ProtocolError if the previous move of the device has not completed yet.

    Args:
        board: The board session that owns the interface.

    Attributes:
        _board: The board session that owns the interface.
        _pending: The devices with a move that has not completed yet.
    """

    _PIN_COUNTS = {StepperTypes.DRIVER: 2, StepperTypes.TWO_WIRE: 2, StepperTypes.FOUR_WIRE: 4}

    def __init__(self, board: "Board") -> None:
        self._board = board
        self._pending: set[int] = set()

    def __repr__(self) -> str:
        return f"StepperInterface(pending={sorted(self._pending)})"

    def reset(self) -> None:
        """Forgets the pending moves. Called when a new connection is opened."""
        self._pending.clear()

    def config(self, device: int, stepper_type: int, steps_per_revolution: int, *pins: int) -> None:
        """Configures the stepper device.

        Args:
            device: The device number (0-5).
            stepper_type: The driver interface type (see StepperTypes).
            steps_per_revolution: The number of steps per full revolution of the motor.
            *pins: The control pins. DRIVER steppers use the step and direction pins, TWO_WIRE steppers use two motor
                pins, and FOUR_WIRE steppers use four motor pins.

        Raises:
            UsageError: If the number of pins does not match the stepper type.
        """
        expected = self._PIN_COUNTS.get(StepperTypes(stepper_type))
        if len(pins) != expected:
            message = (
                f"Unable to configure stepper {device}. Expected {expected} pins for the "
                f"{StepperTypes(stepper_type).name} stepper type, but encountered {len(pins)}."
            )
            console.error(message=message, error=UsageError)

        payload = [
            StepperCommands.CONFIG,
            check_7bit("device", device),
            int(stepper_type),
            *split_7bit(steps_per_revolution, 2),
            *(check_7bit("pin", pin) for pin in pins),
        ]
        self._board.transmit(sysex(SysexCommands.STEPPER, payload))

    def step(
        self,
        device: int,
        direction: int,
        steps: int,
        speed: int,
        handler: Callable[[bool], Any],
        accel: int = 0,
        decel: int = 0,
    ) -> None:
        """Moves the stepper by the requested number of steps. The handler is called with True once the move completes.

        Args:
            device: The device number.
            direction: The rotation direction (see StepperDirections).
            steps: The number of steps to move. Up to 21 bits.
            speed: The speed, in 0.01 rad/sec units. Up to 14 bits.
            handler: The function to call when the move completes.
            accel: The acceleration, in 0.01 rad/sec^2 units. Acceleration and deceleration are only sent if at least
                one of them is non-zero.
            decel: The deceleration, in 0.01 rad/sec^2 units.

        Raises:
            ProtocolError: If a previous move of the device is still pending.
        """
        device = check_7bit("device", device)
        if device in self._pending:
            message = (
                f"Unable to move stepper {device}. The previous move of the device has not completed yet, and "
                f"completion replies can not be matched to more than one pending move per device."
            )
            console.error(message=message, error=ProtocolError)

        payload = [StepperCommands.STEP, device, int(direction), *split_7bit(steps, 3), *split_7bit(speed, 2)]
        if accel > 0 or decel > 0:
            payload.extend((*split_7bit(accel, 2), *split_7bit(decel, 2)))

        self._pending.add(device)
        self._board.events.once(BoardEvents.STEPPER_DONE, handler, key=device)
        self._board.transmit(sysex(SysexCommands.STEPPER, payload))

    def handle_reply(self, body: NDArray[np.uint8]) -> None:
        """Delivers the move completion to the handler waiting for the device."""
        if len(body) < 1:
            return
        device = int(body[0])
        self._pending.discard(device)
        if not self._board.events.emit(BoardEvents.STEPPER_DONE, True, key=device):
            console.echo(message=f"Stepper {device} completion without a pending move dropped.", level=LogLevel.DEBUG)


def _encode_32bit(value: int) -> list[int]:
    """Splits the 32-bit value into four bytes, most significant first, and encodes them as 7-bit pairs."""
    return [int(byte) for byte in encode([(int(value) >> shift) & 0xFF for shift in (24, 16, 8, 0)])]


class PingInterface:
    """Exposes ultrasonic ranging sensors. Requires firmware with ping support (for example, PingFirmata).

    Args:
        board: The board session that owns the interface.
    """

    def __init__(self, board: "Board") -> None:
        self._board = board

    def __repr__(self) -> str:
        return "PingInterface()"

    def read(
        self,
        pin: int,
        value: int,
        handler: Callable[[int], Any],
        pulse_out: int = 0,
        timeout: int = DEFAULT_PING_TIMEOUT,
    ) -> None:
        """Sends the trigger pulse and measures the duration of the echo pulse.

        Args:
            pin: The pin the sensor is connected to.
            value: The level of the trigger pulse (1 for HIGH, 0 for LOW).
            handler: The function to call with the echo duration, in microseconds.
            pulse_out: The duration of the trigger pulse, in microseconds.
            timeout: The maximum time, in microseconds, to wait for the echo.

        Raises:
            ProtocolError: If the pin does not support the PING_READ mode.
        """
        target = self._board.state.pin(int(pin))
        if target is None or not target.supports(PinModes.PING_READ):
            message = (
                f"Unable to read the ping sensor on pin {pin}: ping not supported. Upload firmware with ping support "
                f"(for example, PingFirmata) to the board."
            )
            console.error(message=message, error=ProtocolError)

        payload = [check_7bit("pin", pin), int(value), *_encode_32bit(pulse_out), *_encode_32bit(timeout)]
        self._board.events.once(BoardEvents.PING_READ, handler, key=int(pin))
        self._board.transmit(sysex(SysexCommands.PING_READ, payload))

    def handle_reply(self, body: NDArray[np.uint8]) -> None:
        """Decodes the echo duration and delivers it to the handler waiting for the pin."""
        if len(body) < 10:
            return
        pin = int(body[0]) | (int(body[1]) << 7)
        duration = 0
        for byte in decode(body[2:10]):
            duration = (duration << 8) | int(byte)
        self._board.events.emit(BoardEvents.PING_READ, duration, key=pin)


class ServoInterface:
    """Exposes the servo configuration and control.

    Args:
        board: The board session that owns the interface.
    """

    def __init__(self, board: "Board") -> None:
        self._board = board

    def __repr__(self) -> str:
        return "ServoInterface()"

    def config(self, pin: Any = None, min_pulse: Optional[int] = None, max_pulse: Optional[int] = None) -> None:
        """Configures the pulse width range of the servo and sets the pin mode to SERVO.

        The parameters can be provided positionally or as a single mapping with 'pin', 'min' and 'max' keys.

        Args:
            pin: The servo pin, or a mapping of all parameters.
            min_pulse: The pulse width, in microseconds, that corresponds to the minimum angle.
            max_pulse: The pulse width, in microseconds, that corresponds to the maximum angle.

        Raises:
            UsageError: If any of the parameters is missing.
        """
        if isinstance(pin, Mapping):
            pin, min_pulse, max_pulse = pin.get("pin"), pin.get("min"), pin.get("max")

        if pin is None or min_pulse is None or max_pulse is None:
            message = (
                f"Unable to configure the servo. Expected the pin, minimum and maximum pulse width, but encountered "
                f"pin={pin}, min={min_pulse} and max={max_pulse}."
            )
            console.error(message=message, error=UsageError)

        payload = [check_7bit("pin", pin), *split_7bit(min_pulse, 2), *split_7bit(max_pulse, 2)]  # type: ignore
        self._board.transmit(sysex(SysexCommands.SERVO_CONFIG, payload))

        target = self._board.state.pin(int(pin))
        if target is not None:
            target.mode = int(PinModes.SERVO)

    def write(self, pin: int, value: int) -> None:
        """Writes the angle (or pulse width, for values above 544) to the servo."""
        self._board.analog_write(pin, value)


@SYSEX_RESPONSE.handler(SysexCommands.SERIAL_MESSAGE)
def _serial_reply(board: "Board", body: NDArray[np.uint8]) -> None:
    board.serial.handle_reply(body)


@SYSEX_RESPONSE.handler(SysexCommands.STEPPER)
def _stepper_reply(board: "Board", body: NDArray[np.uint8]) -> None:
    board.stepper.handle_reply(body)


@SYSEX_RESPONSE.handler(SysexCommands.PING_READ)
def _ping_reply(board: "Board", body: NDArray[np.uint8]) -> None:
    board.ping.handle_reply(body)
