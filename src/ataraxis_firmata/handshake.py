"""This module provides the HandshakeController class that drives the startup sequence of a board session.

The handshake queries the protocol version, the firmware identity, and (unless disabled) the pin capabilities and the
analog channel mapping, in this order. Each step is started by the reply to the previous one. The only step with a
timeout is the first one: the firmware volunteers its version on reset, but boards that do not reset when the port is
opened (for example, boards with a separate USB-to-serial chip) have to be asked explicitly.

The state machine is implemented with the transitions library. Timeouts are checked cooperatively by calling poll(),
which the Board class does on every processing cycle, so the whole session stays single-threaded.
"""

from typing import Any, Callable, Optional

from ataraxis_time import PrecisionTimer
from transitions import Machine  # type: ignore
from ataraxis_base_utilities import LogLevel, console

from . import messages
from .errors import UsageError, HandshakeError


class HandshakeStates:
    """Stores the names of the handshake states."""

    DISCONNECTED = "disconnected"
    AWAITING_VERSION = "awaiting_version"
    AWAITING_FIRMWARE = "awaiting_firmware"
    AWAITING_CAPABILITIES = "awaiting_capabilities"
    AWAITING_ANALOG_MAPPING = "awaiting_analog_mapping"
    READY = "ready"


class HandshakeController:
    """Tracks the progress of the startup handshake and sends the queries that advance it.

    Notes:
        The state machine ignores triggers that are not valid for the current state. For example, a second firmware
        reply received after the session is ready does not restart capability discovery.

    Args:
        send: The function used to write messages to the board.
        on_ready: Called once, when the handshake enters the ready state.
        on_error: Called with the HandshakeError instance when the version query retries are exhausted.
        skip_capabilities: Determines whether the capability and analog mapping queries are skipped.
        sampling_interval: The sampling interval, in milliseconds, to set after the firmware reply. If None, the
            firmware default is kept.
        timeout: The time, in milliseconds, to wait for the version report before querying it explicitly.
        max_retries: The maximum number of explicit version queries. If None, the queries are repeated indefinitely.

    Attributes:
        state: The current handshake state. Maintained by the transitions Machine.
        retries: The number of explicit version queries sent during the current connection.
        _timer: The PrecisionTimer used to time the version report timeout.
    """

    state: str

    def __init__(
        self,
        send: Callable[[bytes], Any],
        on_ready: Callable[[], Any],
        on_error: Callable[[Exception], Any],
        *,
        skip_capabilities: bool = False,
        sampling_interval: Optional[int] = None,
        timeout: int = 5000,
        max_retries: Optional[int] = None,
    ) -> None:
        if timeout < 0:
            message = (
                f"Unable to initialize HandshakeController class. Expected a non-negative integer value for 'timeout' "
                f"argument, but encountered {timeout} of type {type(timeout).__name__}."
            )
            console.error(message=message, error=UsageError)
        if max_retries is not None and max_retries < 0:
            message = (
                f"Unable to initialize HandshakeController class. Expected None or a non-negative integer value for "
                f"'max_retries' argument, but encountered {max_retries} of type {type(max_retries).__name__}."
            )
            console.error(message=message, error=UsageError)

        self._send = send
        self._on_ready = on_ready
        self._on_error = on_error
        self._skip_capabilities = skip_capabilities
        self._sampling_interval = sampling_interval
        self._timeout = timeout
        self._max_retries = max_retries

        self.retries: int = 0
        self._timer: PrecisionTimer = PrecisionTimer("ms")

        self._machine = Machine(
            model=self,
            states=[
                HandshakeStates.DISCONNECTED,
                HandshakeStates.AWAITING_VERSION,
                HandshakeStates.AWAITING_FIRMWARE,
                HandshakeStates.AWAITING_CAPABILITIES,
                HandshakeStates.AWAITING_ANALOG_MAPPING,
                HandshakeStates.READY,
            ],
            initial=HandshakeStates.DISCONNECTED,
            auto_transitions=False,
            ignore_invalid_triggers=True,
        )
        self._machine.add_transition(
            "connected", HandshakeStates.DISCONNECTED, HandshakeStates.AWAITING_VERSION, after="_start_timer"
        )
        self._machine.add_transition(
            "version_received",
            HandshakeStates.AWAITING_VERSION,
            HandshakeStates.AWAITING_FIRMWARE,
            after="_query_firmware",
        )
        self._machine.add_transition(
            "firmware_received",
            HandshakeStates.AWAITING_FIRMWARE,
            HandshakeStates.READY,
            conditions="_skips_capabilities",
            before="_apply_sampling_interval",
            after="_finish",
        )
        self._machine.add_transition(
            "firmware_received",
            HandshakeStates.AWAITING_FIRMWARE,
            HandshakeStates.AWAITING_CAPABILITIES,
            unless="_skips_capabilities",
            before="_apply_sampling_interval",
            after="_query_capabilities",
        )
        self._machine.add_transition(
            "capabilities_received",
            HandshakeStates.AWAITING_CAPABILITIES,
            HandshakeStates.AWAITING_ANALOG_MAPPING,
            after="_query_analog_mapping",
        )
        self._machine.add_transition(
            "analog_mapping_received",
            HandshakeStates.AWAITING_ANALOG_MAPPING,
            HandshakeStates.READY,
            after="_finish",
        )
        self._machine.add_transition("disconnected", "*", HandshakeStates.DISCONNECTED)

    def __repr__(self) -> str:
        return (
            f"HandshakeController(state={self.state}, retries={self.retries}, timeout={self._timeout} ms, "
            f"skip_capabilities={self._skip_capabilities})"
        )

    @property
    def is_complete(self) -> bool:
        """Returns True if the handshake has reached the ready state."""
        return self.state == HandshakeStates.READY

    def poll(self) -> None:
        """Re-sends the version and firmware queries if the version report did not arrive within the timeout.

        Has no effect in any state other than awaiting_version.
        """
        if self.state != HandshakeStates.AWAITING_VERSION or self._timer.elapsed < self._timeout:
            return

        if self._max_retries is not None and self.retries >= self._max_retries:
            message = (
                f"Unable to complete the board handshake. The board did not report its version after "
                f"{self.retries} queries sent at {self._timeout} ms intervals."
            )
            console.echo(message=message, level=LogLevel.ERROR)
            self.disconnected()
            self._on_error(HandshakeError(message))
            return

        self.retries += 1
        console.echo(
            message=f"Version report timed out. Sending version query {self.retries}.", level=LogLevel.WARNING
        )
        self._send(messages.report_version())
        self._send(messages.query_firmware())
        self._timer.reset()

    # The methods below are called by the state machine.
    def _start_timer(self) -> None:
        self.retries = 0
        self._timer.reset()

    def _skips_capabilities(self) -> bool:
        return self._skip_capabilities

    def _query_firmware(self) -> None:
        self._send(messages.query_firmware())

    def _apply_sampling_interval(self) -> None:
        if self._sampling_interval is not None:
            self._send(messages.sampling_interval(self._sampling_interval))

    def _query_capabilities(self) -> None:
        self._send(messages.query_capabilities())

    def _query_analog_mapping(self) -> None:
        self._send(messages.query_analog_mapping())

    def _finish(self) -> None:
        console.echo(message="Board handshake complete.", level=LogLevel.DEBUG)
        self._on_ready()
