"""This file contains the test functions that verify the MockTransport and SerialTransport classes and the serial port
discovery functions.
"""

import pytest
from ataraxis_base_utilities import error_format

from ataraxis_firmata import UsageError, MockTransport, TransportError, SerialTransport, find_port, is_acceptable_port
from ataraxis_firmata import transport as transport_module


class Listener:
    """Records the notifications delivered by a transport."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def on_open(self):
        self.calls.append(("open",))

    def on_data(self, data):
        self.calls.append(("data", data))

    def on_error(self, error):
        self.calls.append(("error", error))

    def on_close(self):
        self.calls.append(("close",))

    def on_disconnect(self):
        self.calls.append(("disconnect",))


@pytest.fixture()
def listener() -> Listener:
    return Listener()


def test_mock_transport_lifecycle(listener):
    transport = MockTransport()
    transport.attach(listener)
    assert not transport.is_open

    transport.open()
    transport.open()
    assert transport.is_open
    transport.close()
    transport.close()
    assert listener.calls == [("open",), ("close",)]


def test_mock_transport_records_writes():
    transport = MockTransport()
    transport.open()
    transport.write(b"\xf9")
    transport.write(b"\xf0\x79\xf7")
    assert transport.tx_buffer == b"\xf9\xf0\x79\xf7"
    assert transport.writes == [b"\xf9", b"\xf0\x79\xf7"]

    transport.clear()
    assert transport.tx_buffer == b""
    assert transport.writes == []


def test_mock_transport_write_errors():
    transport = MockTransport()
    with pytest.raises(TransportError, match=r"Mock transport is not open"):
        transport.write(b"\x00")

    transport.open()
    with pytest.raises(TypeError, match=r"Data must be a 'bytes' object"):
        # noinspection PyTypeChecker
        transport.write([0])


def test_mock_transport_delivers_injected_data(listener):
    transport = MockTransport()
    transport.attach(listener)
    transport.inject([0xF9, 0x02])
    transport.inject(b"\x05")

    assert transport.receive() == 3
    assert transport.receive() == 0
    assert listener.calls == [("data", b"\xf9\x02\x05")]


def test_mock_transport_failures(listener):
    transport = MockTransport()
    transport.attach(listener)
    transport.open()
    error = TransportError("fault")
    transport.fail(error)
    transport.disconnect()

    assert listener.calls == [("open",), ("error", error), ("disconnect",)]
    assert not transport.is_open


def test_serial_transport_validation():
    message = (
        "Unable to initialize SerialTransport class. Expected a string value for 'port' argument, but encountered "
        "3 of type int."
    )
    with pytest.raises(TypeError, match=error_format(message)):
        # noinspection PyTypeChecker
        SerialTransport(3)

    with pytest.raises(ValueError, match=r"Expected a positive integer value for 'baudrate'"):
        SerialTransport("/dev/ttyACM0", baudrate=0)


def test_serial_transport_reports_open_failure(listener):
    transport = SerialTransport("/dev/this-port-does-not-exist")
    transport.attach(listener)
    transport.open()

    assert not transport.is_open
    assert len(listener.calls) == 1
    assert listener.calls[0][0] == "error"
    assert isinstance(listener.calls[0][1], TransportError)
    assert transport.receive() == 0


@pytest.mark.parametrize(
    "name, expected",
    [
        ("/dev/ttyUSB0", True),
        ("/dev/ttyACM0", True),
        ("/dev/cu.usbmodem1411", True),
        ("COM3", True),
        ("/dev/cu.Bluetooth-Incoming-Port", False),
        ("/dev/ttyS0", False),
    ],
)
def test_is_acceptable_port(name, expected):
    assert is_acceptable_port(name) is expected


def test_find_port(monkeypatch):
    ports = (
        {"Name": "Bluetooth", "Device": "/dev/cu.Bluetooth-Incoming-Port", "PID": None, "Description": "n/a"},
        {"Name": "ttyACM0", "Device": "/dev/ttyACM0", "PID": 67, "Description": "Arduino Uno"},
    )
    monkeypatch.setattr(transport_module, "list_available_ports", lambda: ports)
    assert find_port() == "/dev/ttyACM0"

    monkeypatch.setattr(transport_module, "list_available_ports", lambda: ports[:1])
    with pytest.raises(UsageError, match=r"Unable to find a serial port connected to a board"):
        find_port()


class UnpluggedSerial:
    """Simulates a pySerial port whose device has been unplugged after opening."""

    instances: list["UnpluggedSerial"] = []

    def __init__(self, *args, **kwargs) -> None:
        self.is_open = True
        UnpluggedSerial.instances.append(self)

    @property
    def in_waiting(self) -> int:
        raise transport_module.SerialException("device reports readiness to read but returned no data")

    def close(self) -> None:
        self.is_open = False


def test_serial_transport_closes_port_after_read_error(monkeypatch, listener):
    UnpluggedSerial.instances = []
    monkeypatch.setattr(transport_module, "Serial", UnpluggedSerial)
    transport = SerialTransport("/dev/ttyACM0")
    transport.attach(listener)
    transport.open()
    assert transport.is_open

    assert transport.receive() == 0
    assert not UnpluggedSerial.instances[0].is_open
    assert not transport.is_open
    assert [call[0] for call in listener.calls] == ["open", "error", "disconnect"]
    assert isinstance(listener.calls[1][1], TransportError)
