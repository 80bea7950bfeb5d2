"""This module provides the Board class, the main entry point of the library, and the BoardConfiguration dataclass
used to configure it.

The Board class binds a byte transport to a protocol session. It feeds the received bytes to the MessageParser, drives
the startup handshake, keeps the session state up to date and exposes the consumer-facing API: pin I/O, queries,
custom sysex messages and the sub-protocol interfaces (i2c, onewire, serial, stepper, ping and servo). Decoded traffic
is delivered to the consumer through the events emitted by the 'events' attribute (see the BoardEvents enumeration).

All processing is single-threaded and cooperative: the Board only reads data from the transport and checks the
handshake timeout when its poll() method is called. Call poll() from the main loop of the application (or use
wait_until_ready() during startup).
"""

from typing import Any, Callable, Optional
from dataclasses import dataclass
from multiprocessing import Queue as MPQueue

import numpy as np
from numpy.typing import NDArray
from ataraxis_time import PrecisionTimer
from ataraxis_base_utilities import LogLevel, console
from ataraxis_data_structures import LogPackage

from . import messages
from .i2c import I2CInterface
from .codec import decode
from .errors import UsageError, ProtocolError, TransportError
from .events import BoardEvents, EventEmitter
from .parser import MessageParser
from .session import SYSEX_RESPONSE, Pin, Version, Firmware, SessionState
from .onewire import OneWireInterface
from .constants import INPUT_MODES, SysexCommands
from .handshake import HandshakeController
from .transport import Transport
from .peripherals import PingInterface, ServoInterface, StepperInterface, SerialBridgeInterface


@dataclass(frozen=True)
class BoardConfiguration:
    """Stores the configuration parameters of a Board session.

    Attributes:
        skip_capabilities: Determines whether the capability and analog mapping queries are skipped during the
            handshake. Use this with boards that have limited memory or slow capability replies, and supply the pin
            layout via 'pins' and 'analog_pins' instead.
        sampling_interval: The analog sampling interval, in milliseconds, to set after the firmware reply. If None, the
            firmware default (usually 19 ms) is kept.
        report_version_timeout: The time, in milliseconds, to wait for the board to volunteer its version before
            querying it explicitly.
        max_version_retries: The maximum number of explicit version queries. If None, the queries are repeated until
            the board answers.
        pins: The pin layout to use when capability discovery is skipped. A sequence of Pin instances or of
            dictionaries with the 'supported_modes' key.
        analog_pins: The analog-capable pin numbers, ordered by analog channel, to use when capability discovery is
            skipped.
        verbose: Determines whether to print sent and received data to the console. The class does NOT enable the
            console, so the console has to be enabled by the caller for this to have any effect.
        source_id: The unique identifier of the session in the data logs written through the logger queue.
    """

    skip_capabilities: bool = False
    sampling_interval: Optional[int] = None
    report_version_timeout: int = 5000
    max_version_retries: Optional[int] = None
    pins: Optional[tuple[Any, ...]] = None
    analog_pins: Optional[tuple[int, ...]] = None
    verbose: bool = False
    source_id: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.report_version_timeout, int) or self.report_version_timeout < 0:
            message = (
                f"Unable to initialize BoardConfiguration class. Expected a non-negative integer value for "
                f"'report_version_timeout' argument, but encountered {self.report_version_timeout} of type "
                f"{type(self.report_version_timeout).__name__}."
            )
            console.error(message=message, error=UsageError)
        if self.max_version_retries is not None and self.max_version_retries < 0:
            message = (
                f"Unable to initialize BoardConfiguration class. Expected None or a non-negative integer value for "
                f"'max_version_retries' argument, but encountered {self.max_version_retries}."
            )
            console.error(message=message, error=UsageError)
        if self.sampling_interval is not None and not isinstance(self.sampling_interval, int):
            message = (
                f"Unable to initialize BoardConfiguration class. Expected None or an integer value for "
                f"'sampling_interval' argument, but encountered {self.sampling_interval} of type "
                f"{type(self.sampling_interval).__name__}."
            )
            console.error(message=message, error=UsageError)
        if not 0 <= self.source_id <= 255:
            message = (
                f"Unable to initialize BoardConfiguration class. Expected an integer value between 0 and 255 for "
                f"'source_id' argument, but encountered {self.source_id}."
            )
            console.error(message=message, error=UsageError)


class Board:
    """Manages the protocol session with a single board running Firmata-compatible firmware.

    Notes:
        The Board attaches itself to the transport as its listener. Opening the transport starts the handshake: the
        CONNECT event is emitted immediately and the READY event is emitted once the board has reported its version,
        firmware and (unless skipped) pin capabilities.

        This class is designed to integrate with the DataLogger class available from the ataraxis_data_structures
        library. When the logger queue is provided, all sent and received data is packaged with the microsecond delta
        from the session start and sent to the logger.

    Args:
        transport: The byte transport connected to the board.
        configuration: The session configuration. If None, the default configuration is used.
        logger_queue: The multiprocessing Queue object exposed by the DataLogger class (via 'input_queue' property).
            If None, the traffic is not logged.

    Attributes:
        state: The protocol state of the session.
        events: The emitter used to deliver decoded traffic to the consumer.
        i2c: The I2C sub-protocol interface.
        onewire: The 1-Wire sub-protocol interface.
        serial: The serial bridge sub-protocol interface.
        stepper: The stepper sub-protocol interface.
        ping: The ultrasonic ping sub-protocol interface.
        servo: The servo sub-protocol interface.
        _transport: The byte transport connected to the board.
        _configuration: The session configuration.
        _parser: The parser that reconstructs messages from the received bytes.
        _handshake: The controller that drives the startup handshake.
        _logger_queue: The queue used to send traffic logs to the DataLogger.
        _timestamp_timer: The PrecisionTimer used to stamp logged traffic.
    """

    def __init__(
        self,
        transport: Transport,
        configuration: Optional[BoardConfiguration] = None,
        logger_queue: Optional[MPQueue] = None,  # type: ignore
    ) -> None:
        if not isinstance(transport, Transport):
            message = (
                f"Unable to initialize Board class. Expected a Transport instance for 'transport' argument, but "
                f"encountered {transport} of type {type(transport).__name__}."
            )
            console.error(message=message, error=TypeError)

        self._transport = transport
        self._configuration = configuration if configuration is not None else BoardConfiguration()
        self._logger_queue = logger_queue
        self._timestamp_timer: PrecisionTimer = PrecisionTimer("us")

        self.state = SessionState()
        self.events = EventEmitter()
        self._parser = MessageParser(
            on_version=self._handle_version,
            on_analog=self._handle_analog,
            on_digital=self._handle_digital,
            on_sysex=self._handle_sysex,
        )
        self._handshake = HandshakeController(
            send=self.transmit,
            on_ready=self._handle_ready,
            on_error=self._report_error,
            skip_capabilities=self._configuration.skip_capabilities,
            sampling_interval=self._configuration.sampling_interval,
            timeout=self._configuration.report_version_timeout,
            max_retries=self._configuration.max_version_retries,
        )

        self.i2c = I2CInterface(self)
        self.onewire = OneWireInterface(self)
        self.serial = SerialBridgeInterface(self)
        self.stepper = StepperInterface(self)
        self.ping = PingInterface(self)
        self.servo = ServoInterface(self)

        self._transport.attach(self)

    def __repr__(self) -> str:
        return (
            f"Board(transport={self._transport!r}, handshake={self._handshake.state}, "
            f"firmware={self.state.firmware.name!r}, pins={len(self.state.pins)})"
        )

    # Session properties
    @property
    def pins(self) -> list[Pin]:
        """Returns the pin table of the session."""
        return self.state.pins

    @property
    def analog_pins(self) -> list[int]:
        """Returns the analog-capable pin numbers, ordered by analog channel."""
        return self.state.analog_pins

    @property
    def firmware(self) -> Firmware:
        """Returns the firmware name and version reported by the board."""
        return self.state.firmware

    @property
    def version(self) -> Version:
        """Returns the protocol version reported by the board."""
        return self.state.version

    @property
    def is_ready(self) -> bool:
        """Returns True if the handshake has completed."""
        return self.state.is_ready

    @property
    def handshake_state(self) -> str:
        """Returns the name of the current handshake state."""
        return self._handshake.state

    # Lifecycle
    def open(self) -> None:
        """Opens the transport, which starts the handshake."""
        self._transport.open()

    def close(self) -> None:
        """Closes the transport."""
        self._transport.close()

    def poll(self) -> int:
        """Processes the data received from the transport and checks the handshake timeout.

        Returns:
            The number of processed bytes.
        """
        received = self._transport.receive()
        self._handshake.poll()
        return received

    def wait_until_ready(self, timeout: Optional[int] = None) -> bool:
        """Polls the board until the handshake completes.

        Args:
            timeout: The maximum time to wait, in milliseconds. If None, waits until the handshake completes or the
                transport closes.

        Returns:
            True if the handshake completed, False if the timeout expired or the transport closed first.
        """
        timeout_timer = PrecisionTimer("ms")
        delay_timer = PrecisionTimer("ms")
        timeout_timer.reset()
        while not self.state.is_ready:
            if not self._transport.is_open or (timeout is not None and timeout_timer.elapsed >= timeout):
                return False
            # Releases the GIL while waiting for more data.
            if self.poll() == 0:
                delay_timer.delay_noblock(delay=1, allow_sleep=True)
        return True

    def transmit(self, data: bytes) -> None:
        """Writes the message to the transport and logs it."""
        self._transport.write(data)
        self._log_data(data, output=True)

    # Subscriptions
    def on(self, event: BoardEvents, callback: Callable[..., Any], key: Any = None) -> None:
        """Subscribes the callback to the event. See EventEmitter.on()."""
        self.events.on(event, callback, key=key)

    def once(self, event: BoardEvents, callback: Callable[..., Any], key: Any = None) -> None:
        """Subscribes the callback to the next occurrence of the event. See EventEmitter.once()."""
        self.events.once(event, callback, key=key)

    def off(self, event: BoardEvents, callback: Optional[Callable[..., Any]] = None, key: Any = None) -> None:
        """Unsubscribes the callback from the event. See EventEmitter.off()."""
        self.events.off(event, callback, key=key)

    # Pin I/O
    def pin_mode(self, pin: int, mode: int) -> None:
        """Sets the mode of the pin."""
        self.transmit(messages.pin_mode(pin, mode))
        target = self.state.pin(pin)
        if target is not None:
            target.mode = int(mode)

    def digital_write(self, pin: int, value: int) -> None:
        """Sets the digital output pin to the value (0 or 1).

        Digital writes address whole 8-pin ports, so the last written value of every pin is cached to preserve the
        state of the other pins of the port.
        """
        pin = messages.check_7bit("pin", pin)
        port = pin >> 3
        bit = 1 << (pin & 0x07)
        if value:
            self.state.ports[port] |= bit
        else:
            self.state.ports[port] &= ~bit

        target = self.state.pin(pin)
        if target is not None:
            target.value = 1 if value else 0
        self.transmit(messages.digital_port(port, self.state.ports[port]))

    def digital_read(self, pin: int, callback: Callable[[int], Any]) -> None:
        """Enables the reporting of the pin's port and calls the callback with the pin value on every report."""
        self.report_digital_pin(pin, True)
        self.events.on(BoardEvents.DIGITAL_READ, callback, key=int(pin))

    def analog_write(self, pin: int, value: int) -> None:
        """Writes the analog (PWM or servo) value to the pin. Pins above 15 use the extended analog message."""
        target = self.state.pin(pin)
        if target is not None:
            target.value = int(value)
        self.transmit(messages.analog_write(pin, value))

    def analog_read(self, channel: int, callback: Callable[[int], Any]) -> None:
        """Enables the reporting of the analog channel and calls the callback with the value on every report."""
        self.report_analog_pin(channel, True)
        self.events.on(BoardEvents.ANALOG_READ, callback, key=int(channel))

    def report_analog_pin(self, channel: int, enable: bool) -> None:
        """Enables or disables the reporting of the analog channel."""
        self.transmit(messages.report_analog(channel, enable))
        index = self.state.analog_channels.get(int(channel))
        if index is not None:
            self.state.pins[index].report = bool(enable)

    def report_digital_pin(self, pin: int, enable: bool) -> None:
        """Enables or disables the reporting of the digital port that contains the pin."""
        self.transmit(messages.report_digital(pin >> 3, enable))
        target = self.state.pin(pin)
        if target is not None:
            target.report = bool(enable)

    def set_sampling_interval(self, interval: int) -> None:
        """Sets the analog sampling interval, in milliseconds. The value is clamped to the 10 - 65535 range."""
        self.transmit(messages.sampling_interval(interval))

    def query_pin_state(self, pin: int, callback: Optional[Callable[[Pin], Any]] = None) -> None:
        """Requests the mode and state of the pin. The optional callback is called once with the updated Pin."""
        if callback is not None:
            self.events.once(BoardEvents.PIN_STATE, callback, key=int(pin))
        self.transmit(messages.query_pin_state(pin))

    def send_string(self, text: str) -> None:
        """Sends the text to the board as a STRING_DATA message."""
        self.transmit(messages.string_data(text))

    def system_reset(self) -> None:
        """Resets the firmware to its default state."""
        self.transmit(messages.system_reset())

    # Queries
    def report_version(self, callback: Optional[Callable[[Version], Any]] = None) -> None:
        """Requests the protocol version. The optional callback is called once with the reported Version."""
        if callback is not None:
            self.events.once(BoardEvents.REPORT_VERSION, callback)
        self.transmit(messages.report_version())

    def query_firmware(self, callback: Optional[Callable[[Firmware], Any]] = None) -> None:
        """Requests the firmware identity. The optional callback is called once with the reported Firmware."""
        if callback is not None:
            self.events.once(BoardEvents.QUERY_FIRMWARE, callback)
        self.transmit(messages.query_firmware())

    def query_capabilities(self, callback: Optional[Callable[[list[Pin]], Any]] = None) -> None:
        """Requests the pin capabilities. The optional callback is called once with the updated pin table."""
        if callback is not None:
            self.events.once(BoardEvents.CAPABILITY_QUERY, callback)
        self.transmit(messages.query_capabilities())

    def query_analog_mapping(self, callback: Optional[Callable[[list[int]], Any]] = None) -> None:
        """Requests the analog mapping. The optional callback is called once with the analog pin numbers."""
        if callback is not None:
            self.events.once(BoardEvents.ANALOG_MAPPING_QUERY, callback)
        self.transmit(messages.query_analog_mapping())

    # Custom sysex
    def sysex_command(self, message: Any) -> None:
        """Sends an arbitrary sysex message.

        Args:
            message: The sysex command identifier followed by the 7-bit-safe payload. The START_SYSEX and END_SYSEX
                bytes are added automatically.

        Raises:
            UsageError: If the message is empty.
        """
        self.transmit(messages.custom_sysex(message))

    def sysex_response(self, command: int, callback: Callable[[NDArray[np.uint8]], Any]) -> None:
        """Registers the callback as the handler for replies with the sysex command identifier.

        The callback receives the raw message body (without the START_SYSEX, identifier and END_SYSEX bytes). Use the
        decode() function to decode bodies that carry 7-bit pairs.

        Notes:
            Handlers are stored in the process-wide SYSEX_RESPONSE registry. Unlike registering directly with the
            registry, this method refuses to replace an existing handler.

        Raises:
            UsageError: If a handler is already registered for the identifier.
        """
        if command in SYSEX_RESPONSE:
            message = (
                f"Unable to register the sysex response handler. The identifier 0x{int(command):02X} is not available, "
                f"as a handler is already registered for it."
            )
            console.error(message=message, error=UsageError)
        SYSEX_RESPONSE.register(command, lambda board, body: callback(body))

    @staticmethod
    def clear_sysex_response(command: int) -> None:
        """Removes the handler registered for the sysex command identifier."""
        SYSEX_RESPONSE.unregister(command)

    # Transport notifications
    def on_open(self) -> None:
        console.echo(message="Transport opened.", level=LogLevel.DEBUG)
        # Every connection starts a new session: the board restarts and has to repeat the handshake.
        self.state = SessionState()
        self._parser.restart()
        self.stepper.reset()
        self._timestamp_timer.reset()
        self.events.emit(BoardEvents.CONNECT)
        self._handshake.connected()

    def on_data(self, data: bytes) -> None:
        self._log_data(data, output=False)
        self._parser.feed_all(data)

    def on_error(self, error: Exception) -> None:
        if not isinstance(error, TransportError):
            error = TransportError(str(error))
        self._report_error(error)

    def on_close(self) -> None:
        if self._parser.pending_sysex:
            self._report_error(ProtocolError("The transport closed before the pending sysex message was terminated."))
            self._parser.reset()
        self.state.is_ready = False
        self._handshake.disconnected()
        self.events.emit(BoardEvents.CLOSE)

    def on_disconnect(self) -> None:
        self.state.is_ready = False
        self._handshake.disconnected()
        self.events.emit(BoardEvents.DISCONNECT)

    # Message handlers
    def _report_error(self, error: Exception) -> None:
        """Delivers the error to the ERROR event listeners or logs it, if there are none."""
        if not self.events.emit(BoardEvents.ERROR, error):
            console.echo(message=f"Unhandled board error: {error}", level=LogLevel.ERROR)

    def _handle_version(self, major: int, minor: int) -> None:
        self.state.version = Version(major=major, minor=minor)
        self.events.emit(BoardEvents.REPORT_VERSION, self.state.version)
        self._handshake.version_received()

    def _handle_analog(self, channel: int, value: int) -> None:
        index = self.state.analog_channels.get(channel)
        if index is not None and index < len(self.state.pins):
            self.state.pins[index].value = value
        self.events.emit(BoardEvents.ANALOG_READ, value, key=channel)

    def _handle_digital(self, port: int, mask: int) -> None:
        for offset in range(8):
            pin = self.state.pin(port * 8 + offset)
            if pin is None or pin.mode not in INPUT_MODES:
                continue
            pin.value = (mask >> offset) & 0x01
            self.events.emit(BoardEvents.DIGITAL_READ, pin.value, key=pin.index)

    def _handle_sysex(self, command: int, body: NDArray[np.uint8]) -> None:
        handler = SYSEX_RESPONSE.get(command)
        if handler is None:
            console.echo(message=f"Sysex message 0x{command:02X} without a handler discarded.", level=LogLevel.DEBUG)
            return
        handler(self, body)

    def _handle_firmware(self, body: NDArray[np.uint8]) -> None:
        if len(body) < 2:
            return
        name = body[2:]
        name = decode(name[: len(name) - len(name) % 2])
        self.state.firmware = Firmware(
            name=bytes(name).decode("utf-8", errors="replace"),
            version=Version(major=int(body[0]), minor=int(body[1])),
        )
        self.events.emit(BoardEvents.QUERY_FIRMWARE, self.state.firmware)
        self._handshake.firmware_received()

    def _handle_capabilities(self, body: NDArray[np.uint8]) -> None:
        self.state.apply_capabilities(body)
        self.events.emit(BoardEvents.CAPABILITY_QUERY, self.state.pins)
        self._handshake.capabilities_received()

    def _handle_analog_mapping(self, body: NDArray[np.uint8]) -> None:
        self.state.apply_analog_mapping(body)
        self.events.emit(BoardEvents.ANALOG_MAPPING_QUERY, self.state.analog_pins)
        self._handshake.analog_mapping_received()

    def _handle_pin_state(self, body: NDArray[np.uint8]) -> None:
        pin = self.state.apply_pin_state(body)
        if pin is not None:
            self.events.emit(BoardEvents.PIN_STATE, pin, key=pin.index)

    def _handle_string(self, body: NDArray[np.uint8]) -> None:
        text = bytes(body).replace(b"\x00", b"").decode("utf-8", errors="replace")
        self.events.emit(BoardEvents.STRING, text)

    def _handle_ready(self) -> None:
        configured = self._configuration.pins is not None or self._configuration.analog_pins is not None
        if self._configuration.skip_capabilities and configured:
            self.state.apply_pins(self._configuration.pins, self._configuration.analog_pins)
        self.state.is_ready = True
        self.events.emit(BoardEvents.READY)

    def _log_data(self, data: bytes, *, output: bool) -> None:
        """Packages and sends the data to the DataLogger instance and, in verbose mode, prints it to the console.

        Args:
            data: The sent or received bytes.
            output: Determines whether the data was sent or received. Only used to format the verbose messages.
        """
        if self._logger_queue is not None:
            package = LogPackage(
                self._configuration.source_id, self._timestamp_timer.elapsed, np.frombuffer(bytes(data), np.uint8)
            )
            self._logger_queue.put(package)

        if self._configuration.verbose:
            direction = "sent" if output else "received"
            console.echo(
                message=f"Source {self._configuration.source_id} {direction} data: {list(bytes(data))}",
                level=LogLevel.INFO,
            )


# Built-in handlers for the sysex replies that belong to the base protocol.
@SYSEX_RESPONSE.handler(SysexCommands.QUERY_FIRMWARE)
def _firmware_reply(board: Board, body: NDArray[np.uint8]) -> None:
    board._handle_firmware(body)


@SYSEX_RESPONSE.handler(SysexCommands.CAPABILITY_RESPONSE)
def _capability_reply(board: Board, body: NDArray[np.uint8]) -> None:
    board._handle_capabilities(body)


@SYSEX_RESPONSE.handler(SysexCommands.ANALOG_MAPPING_RESPONSE)
def _analog_mapping_reply(board: Board, body: NDArray[np.uint8]) -> None:
    board._handle_analog_mapping(body)


@SYSEX_RESPONSE.handler(SysexCommands.PIN_STATE_RESPONSE)
def _pin_state_reply(board: Board, body: NDArray[np.uint8]) -> None:
    board._handle_pin_state(body)


@SYSEX_RESPONSE.handler(SysexCommands.STRING_DATA)
def _string_reply(board: Board, body: NDArray[np.uint8]) -> None:
    board._handle_string(body)
