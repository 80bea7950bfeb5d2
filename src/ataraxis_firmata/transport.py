"""This module provides the byte transports used by the Board class to exchange data with the microcontroller.

The Board class consumes any object that implements the Transport interface: a duplex byte channel that accepts writes
and reports open / data / error / close / disconnect notifications to the attached listener. This module provides two
implementations of the interface:

    - SerialTransport, which wraps the pySerial library and is used to communicate with real hardware over the USB or
      UART interface.
    - MockTransport, which records all written data and allows injecting received data and notifications. It is used
      to test the library without connected hardware.

Additionally, the module exposes the list_available_ports() and find_port() functions that discover the serial ports
likely to be connected to a Firmata board.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol

from serial import Serial, SerialException
from serial.tools import list_ports
from ataraxis_base_utilities import LogLevel, console

from .errors import UsageError, TransportError
from .constants import DEFAULT_SERIAL_BAUDRATE

# Port names that usually belong to USB-serial adapters and native USB boards. Bluetooth serial ports are rejected, as
# they block on open when the paired device is not in range.
_ACCEPTABLE_PORT = re.compile(r"usb|acm|^com", re.IGNORECASE)
_REJECTED_PORT = re.compile(r"bluetooth", re.IGNORECASE)


class TransportListener(Protocol):
    """Defines the notifications that a transport delivers to its listener."""

    def on_open(self) -> None: ...

    def on_data(self, data: bytes) -> None: ...

    def on_error(self, error: Exception) -> None: ...

    def on_close(self) -> None: ...

    def on_disconnect(self) -> None: ...


class Transport(ABC):
    """The abstract duplex byte channel consumed by the Board class.

    Implementations report received data through the receive() method, which the Board calls on every processing cycle.
    This keeps the whole session single-threaded: no notification is ever delivered outside of open(), close(),
    write() or receive() calls.

    Attributes:
        _listener: The object that receives the transport notifications.
    """

    def __init__(self) -> None:
        self._listener: Optional[TransportListener] = None

    def attach(self, listener: TransportListener) -> None:
        """Sets the object that receives the transport notifications."""
        self._listener = listener

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Returns True if the transport is open."""
        raise NotImplementedError

    @abstractmethod
    def open(self) -> None:
        """Opens the transport and notifies the listener."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Closes the transport and notifies the listener."""
        raise NotImplementedError

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Writes the data to the transport."""
        raise NotImplementedError

    @abstractmethod
    def receive(self) -> int:
        """Reads all data available from the transport and passes it to the listener.

        Returns:
            The number of received bytes.
        """
        raise NotImplementedError

    def _notify(self, name: str, *args: Any) -> None:
        """Calls the listener method with the input name, if a listener is attached."""
        if self._listener is not None:
            getattr(self._listener, name)(*args)


class SerialTransport(Transport):
    """Exchanges data with the board over a serial port using the pySerial library.

    Args:
        port: The name of the serial port to connect to, e.g.: 'COM3' or '/dev/ttyUSB0'. Use the list_available_ports()
            function to discover the available ports.
        baudrate: The baudrate of the connection. StandardFirmata and ConfigurableFirmata use 57600 by default.

    Attributes:
        _port_name: The name of the serial port.
        _baudrate: The baudrate of the connection.
        _port: The pySerial Serial instance. None until the transport is opened.
    """

    def __init__(self, port: str, baudrate: int = DEFAULT_SERIAL_BAUDRATE) -> None:
        super().__init__()
        if not isinstance(port, str):
            message = (
                f"Unable to initialize SerialTransport class. Expected a string value for 'port' argument, but "
                f"encountered {port} of type {type(port).__name__}."
            )
            console.error(message=message, error=TypeError)
        if not isinstance(baudrate, int) or baudrate <= 0:
            message = (
                f"Unable to initialize SerialTransport class. Expected a positive integer value for 'baudrate' "
                f"argument, but encountered {baudrate} of type {type(baudrate).__name__}."
            )
            console.error(message=message, error=ValueError)

        self._port_name = port
        self._baudrate = baudrate
        self._port: Optional[Serial] = None

    def __repr__(self) -> str:
        return f"SerialTransport(port={self._port_name}, baudrate={self._baudrate}, open={self.is_open})"

    @property
    def is_open(self) -> bool:
        return self._port is not None and bool(self._port.is_open)

    def open(self) -> None:
        """Opens the serial port and notifies the listener.

        Errors reported by pySerial are delivered to the listener as TransportError instances.
        """
        if self.is_open:
            return
        try:
            self._port = Serial(self._port_name, self._baudrate, timeout=0)
        except SerialException as error:
            self._notify("on_error", TransportError(f"Unable to open the serial port {self._port_name}: {error}"))
            return
        self._notify("on_open")

    def close(self) -> None:
        """Closes the serial port and notifies the listener."""
        if self._port is None:
            return
        self._port.close()
        self._port = None
        self._notify("on_close")

    def write(self, data: bytes) -> None:
        if not self.is_open:
            self._notify("on_error", TransportError(f"Unable to write to the closed serial port {self._port_name}."))
            return
        try:
            self._port.write(bytes(data))  # type: ignore
        except SerialException as error:
            self._notify("on_error", TransportError(f"Unable to write to the serial port {self._port_name}: {error}"))

    def receive(self) -> int:
        if not self.is_open:
            return 0
        try:
            waiting = self._port.in_waiting  # type: ignore
            data = self._port.read(waiting) if waiting else b""  # type: ignore
        except (SerialException, OSError) as error:
            # Read errors usually mean that the device has been unplugged.
            self._notify("on_error", TransportError(f"Unable to read from the serial port {self._port_name}: {error}"))
            try:
                self._port.close()  # type: ignore
            finally:
                self._port = None
                self._notify("on_disconnect")
            return 0

        if data:
            self._notify("on_data", data)
        return len(data)


class MockTransport(Transport):
    """Simulates a serial transport to support testing the library without connected hardware.

    Unlike a real transport, this class exposes its buffers: everything written by the Board accumulates in the
    tx_buffer, and everything injected via inject() is delivered to the listener on the next receive() call.

    Attributes:
        tx_buffer: Accumulates all data written to the transport.
        writes: Stores each written chunk separately, in the order of writes.
        rx_buffer: Stores the injected data that has not been received yet.
    """

    def __init__(self) -> None:
        super().__init__()
        self._open = False
        self.tx_buffer = b""
        self.writes: list[bytes] = []
        self.rx_buffer = b""

    def __repr__(self) -> str:
        return f"MockTransport(open={self._open})"

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """If the transport is closed, opens it and notifies the listener."""
        if not self._open:
            self._open = True
            self._notify("on_open")

    def close(self) -> None:
        """If the transport is open, closes it and notifies the listener."""
        if self._open:
            self._open = False
            self._notify("on_close")

    def write(self, data: bytes) -> None:
        """Appends the data to the tx_buffer.

        Raises:
            TypeError: If the data is not a bytes object.
            TransportError: If the transport is not open.
        """
        if not isinstance(data, bytes):
            raise TypeError("Data must be a 'bytes' object")
        if not self._open:
            raise TransportError("Mock transport is not open")
        self.tx_buffer += data
        self.writes.append(data)

    def receive(self) -> int:
        data, self.rx_buffer = self.rx_buffer, b""
        if data:
            self._notify("on_data", data)
        return len(data)

    def inject(self, data: Any) -> None:
        """Queues the data to be delivered to the listener on the next receive() call."""
        self.rx_buffer += bytes(data)

    def clear(self) -> None:
        """Discards all recorded writes."""
        self.tx_buffer = b""
        self.writes = []

    def fail(self, error: Exception) -> None:
        """Delivers the error notification to the listener."""
        self._notify("on_error", error)

    def disconnect(self) -> None:
        """Simulates an unexpected loss of the connection."""
        self._open = False
        self._notify("on_disconnect")


def list_available_ports() -> tuple[dict[str, Any], ...]:
    """Provides the information about each serial port addressable through the pySerial library.

    Returns:
        A tuple of dictionaries with each dictionary storing ID and descriptive information about each discovered port.
    """
    return tuple(
        {"Name": port.name, "Device": port.device, "PID": port.pid, "Description": port.description}
        for port in list_ports.comports()
    )


def is_acceptable_port(name: str) -> bool:
    """Returns True if the port name looks like a USB-serial or native USB board port."""
    return bool(_ACCEPTABLE_PORT.search(name)) and not _REJECTED_PORT.search(name)


def find_port() -> str:
    """Returns the device path of the first discovered serial port that is likely to be connected to a board.

    Raises:
        UsageError: If no acceptable port is discovered.
    """
    for port in list_available_ports():
        if is_acceptable_port(str(port["Device"])):
            console.echo(message=f"Using serial port {port['Device']}.", level=LogLevel.INFO)
            return str(port["Device"])

    message = "Unable to find a serial port connected to a board. No USB or ACM serial ports are available."
    console.error(message=message, error=UsageError)
    raise UsageError(message)  # pragma: no cover
